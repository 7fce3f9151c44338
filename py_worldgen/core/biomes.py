"""
Biome classification based on temperature and moisture.

This module implements:
- Five temperature bands (hot to cold)
- Twenty-six moisture levels (0-100% mapped to 0-25)
- Matrix lookup BIOME_MATRIX[band][level], with ocean decided by elevation first
"""

from enum import IntEnum
from typing import List, Optional

import numpy as np
import structlog
from pydantic import BaseModel, ConfigDict

from .grid import SEA_LEVEL, as_elevation_grid, validate_dimensions, validate_grid

logger = structlog.get_logger()


class BiomeType(IntEnum):
    """Biome types stored in the biome grid."""

    OCEAN = 0
    DESERT = 1
    SAVANNA = 2
    GRASSLAND = 3
    FOREST = 4
    RAINFOREST = 5
    TAIGA = 6
    TUNDRA = 7
    SWAMP = 8
    GLACIER = 9


# Biome names for display
BIOME_NAMES = {
    BiomeType.OCEAN: "Ocean",
    BiomeType.DESERT: "Desert",
    BiomeType.SAVANNA: "Savanna",
    BiomeType.GRASSLAND: "Grassland",
    BiomeType.FOREST: "Forest",
    BiomeType.RAINFOREST: "Rainforest",
    BiomeType.TAIGA: "Taiga",
    BiomeType.TUNDRA: "Tundra",
    BiomeType.SWAMP: "Swamp",
    BiomeType.GLACIER: "Glacier",
}

# (lower bound inclusive, upper bound exclusive) in °C, hottest first
TEMPERATURE_BANDS = (
    (19, float("inf")),  # 0: hot
    (10, 19),  # 1: warm
    (0, 10),  # 2: temperate
    (-10, 0),  # 3: cool
    (float("-inf"), -10),  # 4: cold
)
FALLBACK_BAND = 2
MOISTURE_LEVELS = 26


def _row(*runs) -> List[BiomeType]:
    row: List[BiomeType] = []
    for biome, count in runs:
        row.extend([biome] * count)
    return row


B = BiomeType

BIOME_MATRIX = np.array(
    [
        # Hot: desert -> savanna -> dry forest -> rainforest -> swamp
        _row((B.DESERT, 4), (B.SAVANNA, 7), (B.FOREST, 5), (B.RAINFOREST, 7), (B.SWAMP, 3)),
        # Warm
        _row((B.SAVANNA, 3), (B.GRASSLAND, 6), (B.FOREST, 9), (B.RAINFOREST, 3), (B.SWAMP, 5)),
        # Temperate: cold desert at the dry end
        _row((B.DESERT, 3), (B.GRASSLAND, 5), (B.FOREST, 8), (B.TAIGA, 7), (B.SWAMP, 3)),
        # Cool
        _row((B.TUNDRA, 4), (B.GRASSLAND, 4), (B.FOREST, 4), (B.TAIGA, 11), (B.SWAMP, 3)),
        # Cold: polar desert -> tundra -> taiga -> glacier
        _row((B.DESERT, 3), (B.TUNDRA, 12), (B.TAIGA, 3), (B.GLACIER, 8)),
    ],
    dtype=np.uint8,
)

del B


def get_temperature_band(temperature: float) -> int:
    """Temperature band index (0 hottest .. 4 coldest)."""
    for index, (low, high) in enumerate(TEMPERATURE_BANDS):
        if low <= temperature < high:
            return index
    return FALLBACK_BAND


def get_moisture_level(moisture: float) -> int:
    """Map 0-100% moisture to a 0-25 level."""
    level = int(np.floor((moisture / 100) * MOISTURE_LEVELS))
    return min(MOISTURE_LEVELS - 1, max(0, level))


class BiomeMap(BaseModel):
    """Biome grid plus the climate grids it was derived from."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    width: int
    height: int
    biomes: np.ndarray
    temperature: np.ndarray
    moisture: np.ndarray

    def biome_at(self, x: int, y: int) -> BiomeType:
        return BiomeType(int(self.biomes[y * self.width + x]))

    def rows(self) -> List[List[BiomeType]]:
        """Biomes as ``rows[y][x]`` for callers that need a 2D layout."""
        grid = self.biomes.reshape(self.height, self.width)
        return [[BiomeType(int(value)) for value in row] for row in grid]

    def counts(self) -> dict:
        """Number of cells per biome, omitting biomes that do not occur."""
        values, counts = np.unique(self.biomes, return_counts=True)
        return {BiomeType(int(v)): int(c) for v, c in zip(values, counts)}


class BiomeClassifier:
    """Assigns a biome to every cell by table lookup."""

    def __init__(self, sea_level: int = SEA_LEVEL):
        self.sea_level = sea_level

    def classify(
        self, width: int, height: int, temperature, moisture, elevation
    ) -> BiomeMap:
        """
        Classify every cell.

        Args:
            width: Grid width
            height: Grid height
            temperature: Flat temperature grid in °C
            moisture: Flat moisture grid in %
            elevation: Flat elevation grid, used for ocean detection

        Returns:
            BiomeMap whose ``biomes`` is a uint8 grid of BiomeType values
        """
        validate_dimensions(width, height)
        temperature = validate_grid("temperature", temperature, width, height)
        moisture = validate_grid("moisture", moisture, width, height)
        elevation = as_elevation_grid(elevation, width, height)

        temps = temperature.astype(np.float64)
        bands = np.full(temps.shape, FALLBACK_BAND, dtype=np.intp)
        for index in reversed(range(len(TEMPERATURE_BANDS))):
            low, high = TEMPERATURE_BANDS[index]
            bands[(temps >= low) & (temps < high)] = index

        levels = np.floor((moisture.astype(np.float64) / 100) * MOISTURE_LEVELS)
        levels = np.clip(levels, 0, MOISTURE_LEVELS - 1).astype(np.intp)

        biomes = BIOME_MATRIX[bands, levels]
        biomes[elevation < self.sea_level] = BiomeType.OCEAN

        logger.info(
            "Biomes classified",
            land_cells=int(np.count_nonzero(biomes != BiomeType.OCEAN)),
            distinct=int(len(np.unique(biomes))),
        )

        return BiomeMap(
            width=width,
            height=height,
            biomes=biomes,
            temperature=temperature,
            moisture=moisture,
        )


def generate_biome_map(
    width: int,
    height: int,
    temperature,
    moisture,
    elevation,
    sea_level: int = SEA_LEVEL,
) -> BiomeMap:
    """Convenience wrapper around ``BiomeClassifier(sea_level).classify(...)``."""
    return BiomeClassifier(sea_level).classify(
        width, height, temperature, moisture, elevation
    )
