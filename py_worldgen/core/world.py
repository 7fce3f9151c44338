"""
World generation pipeline.

Runs every stage in order against one seed:
heightmap -> climate -> biomes -> regions -> rivers -> river mask -> structures.

Each stage derives its own random stream from the seed, so the same options
always produce the same world.
"""

import time
from typing import Any, Dict, List, Optional

import numpy as np
import structlog
from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..config import get_settings
from .biomes import BIOME_NAMES, BiomeClassifier, BiomeMap, BiomeType
from .climate import Climate, ClimateOptions
from .grid import as_elevation_grid, validate_dimensions
from .heightmap import HeightmapGenerator, HeightmapOptions
from .hydrology import River, RiverNetworkBuilder, RiverOptions, rasterize_rivers
from .regions import Region, RegionOptions, RegionPartitioner
from .settlements import (
    SettlementOptions,
    SettlementPlacer,
    StructureLocation,
    StructurePlacement,
    StructureType,
)

logger = structlog.get_logger()

DISPLAY_MAX = 100


def _setting(name: str):
    return lambda: getattr(get_settings(), name)


class WorldGenOptions(BaseModel):
    """Options for a complete world. Defaults come from Settings."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    seed: str = Field(description="Deterministic world seed")
    width: int = Field(default_factory=_setting("default_map_width"), gt=0)
    height: int = Field(default_factory=_setting("default_map_height"), gt=0)
    sea_level: int = Field(default_factory=_setting("sea_level"), ge=1, le=255)

    # Terrain
    land_ratio: float = Field(default_factory=_setting("default_land_ratio"), ge=0.0, le=1.0)
    octaves: int = Field(default=6, ge=1, le=12)
    elevation: Optional[np.ndarray] = Field(
        default=None, description="Caller-supplied heightmap; skips the noise generator"
    )

    # Climate
    equator_temp: float = 30.0
    pole_temp: float = -10.0
    temperature_offset: float = 0.0
    moisture_offset: float = 0.0

    # Features
    num_regions: int = Field(default_factory=_setting("default_num_regions"), ge=0)
    num_cities: int = Field(default_factory=_setting("default_num_cities"), ge=0)
    num_towns: int = Field(default_factory=_setting("default_num_towns"), ge=0)
    num_dungeons: int = Field(default_factory=_setting("default_num_dungeons"), ge=0)
    min_river_flux: float = Field(default_factory=_setting("min_river_flux"), ge=0.0)

    @field_validator("elevation", mode="before")
    @classmethod
    def coerce_elevation(cls, value):
        """Accept any flat or 2D sequence, like the individual stages do."""
        if value is None:
            return None
        return np.asarray(value)


class GeneratedWorld(BaseModel):
    """Every product of one pipeline run."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    seed: str
    width: int
    height: int
    sea_level: int
    elevation: np.ndarray = Field(description="uint8 heightmap as used by every stage")
    temperature: np.ndarray
    moisture: np.ndarray
    biome_map: BiomeMap
    rivers: List[River]
    river_map: np.ndarray = Field(description="uint8, 1 where a river runs")
    flow_map: np.ndarray = Field(description="float32 flow accumulation, (height, width)")
    regions: List[Region]
    region_map: np.ndarray
    placement: StructurePlacement
    generation_time_seconds: float = 0.0

    @property
    def biomes(self) -> np.ndarray:
        return self.biome_map.biomes

    @property
    def structures(self) -> List[StructureLocation]:
        return self.placement.structures

    def display_elevation(self) -> np.ndarray:
        """
        Elevation rescaled for display: ocean 0, land [sea_level, 100] -> [1, 100].

        Works on a copy; ``elevation`` keeps the values the stages saw.
        """
        heights = self.elevation.astype(np.float64)
        span = DISPLAY_MAX - self.sea_level
        display = np.zeros(heights.shape, dtype=np.uint8)
        land = heights >= self.sea_level
        if span > 0:
            scaled = np.floor(1 + (heights[land] - self.sea_level) / span * 99 + 0.5)
        else:
            scaled = np.full(int(land.sum()), DISPLAY_MAX, dtype=np.float64)
        display[land] = np.clip(scaled, 1, DISPLAY_MAX).astype(np.uint8)
        return display

    def summary(self) -> Dict[str, Any]:
        """Counts suitable for logging or a status response."""
        land_cells = int(np.count_nonzero(self.elevation >= self.sea_level))
        return {
            "seed": self.seed,
            "width": self.width,
            "height": self.height,
            "land_cells": land_cells,
            "land_ratio": land_cells / (self.width * self.height),
            "biomes": {
                BIOME_NAMES[biome]: count for biome, count in self.biome_map.counts().items()
            },
            "regions": len(self.regions),
            "rivers": len(self.rivers),
            "river_cells": int(np.count_nonzero(self.river_map)),
            "cities": self.placement.placed(StructureType.CITY),
            "towns": self.placement.placed(StructureType.TOWN),
            "dungeons": self.placement.placed(StructureType.DUNGEON),
            "generation_time_seconds": self.generation_time_seconds,
        }

    def to_dict(self) -> Dict[str, Any]:
        """Plain Python structure with grids as lists, for JSON encoding."""
        return {
            "seed": self.seed,
            "width": self.width,
            "height": self.height,
            "sea_level": self.sea_level,
            "elevation": self.display_elevation().tolist(),
            "temperature": self.temperature.tolist(),
            "moisture": self.moisture.tolist(),
            "biomes": [BiomeType(int(v)).name.lower() for v in self.biomes],
            "rivers": [river.model_dump(mode="json") for river in self.rivers],
            "river_map": self.river_map.tolist(),
            "regions": [region.model_dump(mode="json") for region in self.regions],
            "region_map": self.region_map.tolist(),
            "structures": [s.model_dump(mode="json") for s in self.structures],
        }


class WorldGenerator:
    """Runs the full generation pipeline for one set of options."""

    def __init__(self, options: WorldGenOptions):
        self.options = options

    def generate(self) -> GeneratedWorld:
        """
        Generate the world.

        Raises:
            InvalidDimensionsError: if width or height is outside the configured limits
            GridShapeError: if a supplied elevation grid has the wrong size
        """
        opts = self.options
        current = get_settings()
        validate_dimensions(
            opts.width, opts.height, current.max_map_width, current.max_map_height
        )
        seed, width, height, sea_level = opts.seed, opts.width, opts.height, opts.sea_level
        started = time.perf_counter()

        logger.info("Starting world generation", seed=seed, width=width, height=height)

        # Stage 1: Heightmap
        if opts.elevation is not None:
            logger.info("Using supplied heightmap", seed=seed)
            elevation = as_elevation_grid(opts.elevation, width, height).copy()
        else:
            heightmap = HeightmapGenerator(
                HeightmapOptions(
                    land_ratio=opts.land_ratio,
                    octaves=opts.octaves,
                    sea_level=sea_level,
                    max_land_elevation=max(DISPLAY_MAX, sea_level),
                )
            )
            elevation = heightmap.generate(seed, width, height)

        # Stage 2: Climate
        climate = Climate(
            ClimateOptions(
                equator_temp=opts.equator_temp,
                pole_temp=opts.pole_temp,
                temperature_offset=opts.temperature_offset,
                moisture_offset=opts.moisture_offset,
                sea_level=sea_level,
            )
        ).generate(seed, width, height, elevation)

        # Stage 3: Biomes
        biome_map = BiomeClassifier(sea_level).classify(
            width, height, climate.temperature, climate.moisture, elevation
        )

        # Stage 4: Regions
        region_data = RegionPartitioner(
            RegionOptions(num_regions=opts.num_regions, sea_level=sea_level)
        ).partition(seed, width, height, elevation, biome_map.biomes)

        # Stage 5: Rivers, with moisture as precipitation
        river_system = RiverNetworkBuilder(
            RiverOptions(sea_level=sea_level, min_flux=opts.min_river_flux)
        ).generate(seed, width, height, elevation, climate.moisture.astype(np.float32))
        river_map = rasterize_rivers(river_system.rivers, width, height)

        # Stage 6: Structures
        placement = SettlementPlacer(
            SettlementOptions(
                num_cities=opts.num_cities,
                num_towns=opts.num_towns,
                num_dungeons=opts.num_dungeons,
                sea_level=sea_level,
            )
        ).place(seed, width, height, elevation, biome_map.biomes, river_map)

        world = GeneratedWorld(
            seed=seed,
            width=width,
            height=height,
            sea_level=sea_level,
            elevation=elevation,
            temperature=climate.temperature,
            moisture=climate.moisture,
            biome_map=biome_map,
            rivers=river_system.rivers,
            river_map=river_map,
            flow_map=river_system.flow_map,
            regions=region_data.regions,
            region_map=region_data.region_map,
            placement=placement,
            generation_time_seconds=round(time.perf_counter() - started, 4),
        )

        logger.info("World generation completed", **world.summary())
        return world


def generate_world(options: WorldGenOptions) -> GeneratedWorld:
    """Generate a complete world from ``options``."""
    return WorldGenerator(options).generate()


def quick_world(seed: str, width: int = 50, height: int = 50) -> GeneratedWorld:
    """Generate a world with default options."""
    return generate_world(WorldGenOptions(seed=seed, width=width, height=height))
