"""
Region partitioning by synchronised multi-source flood fill.

Process:
1. Shuffle land cells with the region stream and pick spaced capitals
2. Top up with unspaced land cells if spacing left too few capitals
3. Grow all regions one BFS layer at a time so territories stay compact
4. Leave land that no capital reaches as wildlands (-1)
"""

import math
from typing import List, Optional

import numpy as np
import structlog
from pydantic import BaseModel, ConfigDict, Field

from ..utils.random import create_prng
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

UNASSIGNED = -1


class RegionOptions(BaseModel):
    """Region partitioning options."""

    num_regions: int = Field(default=10, ge=0, description="Target number of regions")
    sea_level: int = Field(default=SEA_LEVEL, ge=1, le=255, description="Ocean threshold")


class Region(BaseModel):
    """A political region grown from a capital cell."""

    id: int = Field(description="Index into the region list")
    name: str = Field(description="Display name")
    capital: Point = Field(description="Capital cell")
    area: int = Field(default=0, description="Cells owned, capital included")
    biome: BiomeType = Field(description="Most frequent biome among owned cells")


class RegionMap(BaseModel):
    """Regions plus the per-cell ownership grid."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    regions: List[Region]
    region_map: np.ndarray = Field(description="int32 region id per cell, -1 if none")
    requested: int = Field(description="Number of regions asked for")
    wildland_cells: int = Field(default=0, description="Land cells left unassigned")

    @property
    def achieved(self) -> int:
        return len(self.regions)


class RegionPartitioner:
    """Partitions land into regions around randomly chosen capitals."""

    def __init__(self, options: Optional[RegionOptions] = None):
        self.options = options or RegionOptions()

    def partition(
        self, seed: str, width: int, height: int, elevation, biomes
    ) -> RegionMap:
        """
        Partition the land of a world into regions.

        Args:
            seed: World seed; randomness comes from the ``seed + "-regions"`` stream
            width: Grid width
            height: Grid height
            elevation: Flat elevation grid
            biomes: Flat biome grid (BiomeType values)

        Returns:
            RegionMap; fewer regions than requested when the land cannot hold them
        """
        validate_dimensions(width, height)
        elevation = as_elevation_grid(elevation, width, height)
        biomes = validate_grid("biome", biomes, width, height)

        num_regions = self.options.num_regions
        sea_level = self.options.sea_level
        size = width * height
        heights = elevation.tolist()

        logger.info("Partitioning regions", seed=seed, requested=num_regions)

        land = [i for i in range(size) if heights[i] >= sea_level]
        prng = create_prng(seed, "regions")
        prng.shuffle(land)

        capitals = self.select_capitals(land, num_regions, width, height)
        owner = self.grow_regions(capitals, heights, sea_level, width, height)

        region_map = np.asarray(owner, dtype=np.int32)
        regions = self._describe_regions(capitals, region_map, biomes, width)
        wildland_cells = sum(1 for i in land if owner[i] == UNASSIGNED)

        if len(regions) < num_regions:
            logger.info(
                "Fewer regions than requested",
                requested=num_regions,
                achieved=len(regions),
                land_cells=len(land),
            )
        logger.info(
            "Regions generated", count=len(regions), wildland_cells=wildland_cells
        )

        return RegionMap(
            regions=regions,
            region_map=region_map,
            requested=num_regions,
            wildland_cells=wildland_cells,
        )

    @staticmethod
    def select_capitals(
        shuffled_land: List[int], num_regions: int, width: int, height: int
    ) -> List[int]:
        """
        Accept capitals in shuffled order subject to a minimum spacing.

        The spacing heuristic is ``sqrt(width * height) / num_regions``. If fewer
        than ``num_regions`` capitals qualify, the remaining slots are filled
        from unused land cells in shuffled order, ignoring spacing.
        """
        if num_regions <= 0:
            return []

        min_distance = math.sqrt(width * height) / num_regions
        capitals: List[int] = []

        for idx in shuffled_land:
            if len(capitals) >= num_regions:
                break
            x, y = idx % width, idx // width
            too_close = False
            for other in capitals:
                ox, oy = other % width, other // width
                if math.sqrt((x - ox) ** 2 + (y - oy) ** 2) < min_distance:
                    too_close = True
                    break
            if not too_close:
                capitals.append(idx)

        if len(capitals) < num_regions:
            chosen = set(capitals)
            for idx in shuffled_land:
                if len(capitals) >= num_regions:
                    break
                if idx not in chosen:
                    capitals.append(idx)
                    chosen.add(idx)

        return capitals

    @staticmethod
    def grow_regions(
        capitals: List[int], heights: List[int], sea_level: int, width: int, height: int
    ) -> List[int]:
        """
        Layered multi-source BFS over 4-connected land.

        In every round each region, in id order, drains its entire current
        frontier before the next region runs. A cell belongs to the first
        region that reaches it.
        """
        owner = [UNASSIGNED] * (width * height)
        frontiers: List[List[int]] = []
        for region_id, idx in enumerate(capitals):
            owner[idx] = region_id
            frontiers.append([idx])

        active = bool(frontiers)
        while active:
            active = False
            for region_id, frontier in enumerate(frontiers):
                if not frontier:
                    continue

                next_frontier: List[int] = []
                for current in frontier:
                    x, y = current % width, current // width
                    for dx, dy in NEIGHBORS_4:
                        nx = x + dx
                        ny = y + dy
                        if 0 <= nx < width and 0 <= ny < height:
                            n_idx = ny * width + nx
                            if owner[n_idx] == UNASSIGNED and heights[n_idx] >= sea_level:
                                owner[n_idx] = region_id
                                next_frontier.append(n_idx)
                                active = True

                frontiers[region_id] = next_frontier

        return owner

    @staticmethod
    def _describe_regions(
        capitals: List[int], region_map: np.ndarray, biomes: np.ndarray, width: int
    ) -> List[Region]:
        regions = []
        n_biomes = len(BiomeType)
        for region_id, idx in enumerate(capitals):
            owned = biomes[region_map == region_id].astype(np.intp)
            counts = np.bincount(owned, minlength=n_biomes)
            regions.append(
                Region(
                    id=region_id,
                    name=f"Region {region_id + 1}",
                    capital=Point(x=idx % width, y=idx // width),
                    area=int(owned.size),
                    biome=BiomeType(int(np.argmax(counts))),
                )
            )
        return regions


def generate_regions(
    seed: str,
    width: int,
    height: int,
    elevation,
    biomes,
    num_regions: int = 10,
    sea_level: int = SEA_LEVEL,
) -> RegionMap:
    """Convenience wrapper around ``RegionPartitioner(...).partition(...)``."""
    options = RegionOptions(num_regions=num_regions, sea_level=sea_level)
    return RegionPartitioner(options).partition(seed, width, height, elevation, biomes)
