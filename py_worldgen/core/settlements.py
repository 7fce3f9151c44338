"""
Settlement and dungeon placement.

Process:
1. calculate_habitability() - score for every land cell
2. place_cities() - best-scoring cells first, with wide spacing
3. place_towns() - rejection sampling over good cells
4. place_dungeons() - rejection sampling over poor, remote land
"""

import math
from enum import Enum
from typing import Dict, List, Optional

import numpy as np
import structlog
from pydantic import BaseModel, ConfigDict, Field

from ..utils.random import create_prng
from .alea_prng import AleaPRNG
from .biomes import BiomeType
from .grid import (
    NEIGHBORS_4,
    SEA_LEVEL,
    as_elevation_grid,
    validate_dimensions,
    validate_grid,
)
from .types import Point

logger = structlog.get_logger()

OCEAN_SCORE = -1.0
RIVER_BONUS = 20
COASTAL_BONUS = 15
FLAT_BONUS = 10
STEEP_PENALTY = -20
FLAT_SLOPE = 5  # Max neighbour delta below this counts as flat
STEEP_SLOPE = 20  # Max neighbour delta above this counts as steep

BIOME_SCORES = {
    BiomeType.GRASSLAND: 10,
    BiomeType.FOREST: 10,
    BiomeType.SAVANNA: 5,
    BiomeType.TAIGA: 5,
    BiomeType.DESERT: -10,
    BiomeType.SWAMP: -10,
    BiomeType.TUNDRA: -10,
    BiomeType.GLACIER: -10,
}


class StructureType(str, Enum):
    CITY = "city"
    TOWN = "town"
    DUNGEON = "dungeon"


class SettlementOptions(BaseModel):
    """Structure placement options."""

    num_cities: int = Field(default=5, ge=0, description="Target number of cities")
    num_towns: int = Field(default=10, ge=0, description="Target number of towns")
    num_dungeons: int = Field(default=5, ge=0, description="Target number of dungeons")
    sea_level: int = Field(default=SEA_LEVEL, ge=1, le=255, description="Ocean threshold")

    # Spacing parameters
    city_spacing: float = Field(default=10, ge=0, description="Min distance for cities")
    town_spacing: float = Field(default=5, ge=0, description="Min distance for towns")
    dungeon_spacing: float = Field(default=5, ge=0, description="Min distance for dungeons")

    # Score thresholds
    town_min_score: float = Field(
        default=10, description="Towns need a score strictly above this"
    )
    dungeon_max_score: float = Field(
        default=40, description="Dungeons need a score strictly below this"
    )
    attempts_per_structure: int = Field(
        default=20, ge=1, description="Sampling attempts allowed per requested structure"
    )


class StructureLocation(BaseModel):
    """A placed point of interest."""

    type: StructureType = Field(description="city, town or dungeon")
    location: Point = Field(description="Cell the structure occupies")
    name: str = Field(description="Display name")
    score: float = Field(description="Habitability score of the cell")


class StructurePlacement(BaseModel):
    """Placed structures together with what was asked for."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    structures: List[StructureLocation]
    requested: Dict[StructureType, int]
    habitability: Optional[np.ndarray] = Field(
        default=None, description="float32 score grid used for placement"
    )

    def of_type(self, structure_type: StructureType) -> List[StructureLocation]:
        return [s for s in self.structures if s.type == structure_type]

    def placed(self, structure_type: StructureType) -> int:
        return len(self.of_type(structure_type))

    @property
    def shortfall(self) -> Dict[StructureType, int]:
        """Requested minus placed, per type."""
        return {
            kind: wanted - self.placed(kind) for kind, wanted in self.requested.items()
        }


def calculate_habitability(
    elevation: np.ndarray,
    biomes: np.ndarray,
    river_map: np.ndarray,
    width: int,
    height: int,
    sea_level: int = SEA_LEVEL,
) -> np.ndarray:
    """
    Score every cell for settlement.

    Ocean cells get -1. Land cells sum a river bonus, a biome bonus or
    penalty, a flatness term from the largest 4-neighbour elevation delta and
    a coastal bonus, floored at 0.

    Returns:
        float32 score grid
    """
    heights = np.asarray(elevation).astype(np.int32).reshape(height, width)
    ocean = heights < sea_level

    # Edge padding repeats the cell itself, so off-grid neighbours add no slope
    # and never count as coast
    padded = np.pad(heights, 1, mode="edge")
    max_slope = np.zeros((height, width), dtype=np.int32)
    coastal = np.zeros((height, width), dtype=bool)
    for dx, dy in NEIGHBORS_4:
        neighbor = padded[1 + dy:1 + dy + height, 1 + dx:1 + dx + width]
        max_slope = np.maximum(max_slope, np.abs(heights - neighbor))
        coastal |= neighbor < sea_level

    biome_table = np.zeros(256, dtype=np.int32)
    for biome, bonus in BIOME_SCORES.items():
        biome_table[int(biome)] = bonus

    score = biome_table[np.asarray(biomes).astype(np.intp).reshape(height, width)]
    score += np.where(np.asarray(river_map).reshape(height, width) > 0, RIVER_BONUS, 0)
    score += np.where(
        max_slope < FLAT_SLOPE, FLAT_BONUS, np.where(max_slope > STEEP_SLOPE, STEEP_PENALTY, 0)
    )
    score += np.where(coastal, COASTAL_BONUS, 0)

    scores = np.where(ocean, OCEAN_SCORE, np.maximum(0, score))
    return scores.reshape(-1).astype(np.float32)


class SettlementPlacer:
    """Places cities, towns and dungeons on a finished world."""

    def __init__(self, options: Optional[SettlementOptions] = None):
        """
        Initialize settlement placer.

        Args:
            options: Placement counts, spacing and thresholds
        """
        self.options = options or SettlementOptions()

    def place(
        self, seed: str, width: int, height: int, elevation, biomes, river_map
    ) -> StructurePlacement:
        """
        Place every structure type.

        Args:
            seed: World seed; sampling draws come from the ``seed + "-structures"`` stream
            width: Grid width
            height: Grid height
            elevation: Flat elevation grid
            biomes: Flat biome grid
            river_map: Flat grid, non-zero where a river runs

        Returns:
            StructurePlacement; counts may fall short when sampling runs out of attempts
        """
        validate_dimensions(width, height)
        elevation = as_elevation_grid(elevation, width, height)
        biomes = validate_grid("biome", biomes, width, height)
        river_map = validate_grid("river", river_map, width, height)
        opts = self.options

        logger.info("Placing structures", seed=seed)

        habitability = calculate_habitability(
            elevation, biomes, river_map, width, height, opts.sea_level
        )
        prng = create_prng(seed, "structures")
        structures: List[StructureLocation] = []
        occupied = set()

        self.place_cities(habitability, width, structures, occupied)
        self.place_towns(habitability, width, height, prng, structures, occupied)
        self.place_dungeons(
            habitability, elevation, width, height, prng, structures, occupied
        )

        placement = StructurePlacement(
            structures=structures,
            requested={
                StructureType.CITY: opts.num_cities,
                StructureType.TOWN: opts.num_towns,
                StructureType.DUNGEON: opts.num_dungeons,
            },
            habitability=habitability,
        )

        shortfall = {k.value: v for k, v in placement.shortfall.items() if v > 0}
        if shortfall:
            logger.info("Structure placement fell short", missing=shortfall)
        logger.info(
            "Structures placed",
            cities=placement.placed(StructureType.CITY),
            towns=placement.placed(StructureType.TOWN),
            dungeons=placement.placed(StructureType.DUNGEON),
        )
        return placement

    def place_cities(
        self,
        habitability: np.ndarray,
        width: int,
        structures: List[StructureLocation],
        occupied: set,
    ) -> int:
        """Greedy selection of the highest-scoring cells, spaced apart."""
        scores = habitability.tolist()
        candidates = [i for i, score in enumerate(scores) if score > 0]
        candidates.sort(key=lambda i: -scores[i])

        placed = 0
        for idx in candidates:
            if placed >= self.options.num_cities:
                break
            if _is_too_close(idx, structures, width, self.options.city_spacing):
                continue
            placed += 1
            self._add(structures, occupied, StructureType.CITY, idx, width, scores[idx], placed)
        return placed

    def place_towns(
        self,
        habitability: np.ndarray,
        width: int,
        height: int,
        prng: AleaPRNG,
        structures: List[StructureLocation],
        occupied: set,
    ) -> int:
        """Rejection sampling over cells scoring above the town threshold."""
        opts = self.options
        size = width * height
        budget = opts.num_towns * opts.attempts_per_structure
        placed = 0
        attempts = 0

        while placed < opts.num_towns and attempts < budget:
            attempts += 1
            idx = int(prng.random() * size)
            score = float(habitability[idx])

            if score > opts.town_min_score and idx not in occupied:
                if _is_too_close(idx, structures, width, opts.town_spacing):
                    continue
                placed += 1
                self._add(structures, occupied, StructureType.TOWN, idx, width, score, placed)

        return placed

    def place_dungeons(
        self,
        habitability: np.ndarray,
        elevation: np.ndarray,
        width: int,
        height: int,
        prng: AleaPRNG,
        structures: List[StructureLocation],
        occupied: set,
    ) -> int:
        """Rejection sampling over land with a low habitability score."""
        opts = self.options
        size = width * height
        budget = opts.num_dungeons * opts.attempts_per_structure
        placed = 0
        attempts = 0

        while placed < opts.num_dungeons and attempts < budget:
            attempts += 1
            idx = int(prng.random() * size)

            if elevation[idx] < opts.sea_level or idx in occupied:
                continue
            score = float(habitability[idx])
            if score >= opts.dungeon_max_score:
                continue
            if _is_too_close(idx, structures, width, opts.dungeon_spacing):
                continue

            placed += 1
            self._add(structures, occupied, StructureType.DUNGEON, idx, width, score, placed)

        return placed

    @staticmethod
    def _add(
        structures: List[StructureLocation],
        occupied: set,
        structure_type: StructureType,
        idx: int,
        width: int,
        score: float,
        number: int,
    ) -> None:
        structures.append(
            StructureLocation(
                type=structure_type,
                location=Point(x=idx % width, y=idx // width),
                name=f"{structure_type.value.capitalize()} {number}",
                score=score,
            )
        )
        occupied.add(idx)


def _is_too_close(
    idx: int, structures: List[StructureLocation], width: int, min_distance: float
) -> bool:
    x, y = idx % width, idx // width
    for structure in structures:
        dx = x - structure.location.x
        dy = y - structure.location.y
        if math.sqrt(dx * dx + dy * dy) < min_distance:
            return True
    return False


def place_structures(
    seed: str,
    width: int,
    height: int,
    elevation,
    biomes,
    river_map,
    options: Optional[SettlementOptions] = None,
) -> StructurePlacement:
    """Convenience wrapper around ``SettlementPlacer(options).place(...)``."""
    return SettlementPlacer(options).place(seed, width, height, elevation, biomes, river_map)
