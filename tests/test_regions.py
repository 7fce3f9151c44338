"""Tests for region partitioning."""

from collections import deque

import pytest
import numpy as np

from py_worldgen.core.biomes import BiomeType
from py_worldgen.core.regions import (
    UNASSIGNED,
    RegionOptions,
    RegionPartitioner,
    generate_regions,
)


def connected(cells, width):
    """True if ``cells`` form a single 4-connected component."""
    cells = set(cells)
    if not cells:
        return True
    start = next(iter(cells))
    seen = {start}
    queue = deque([start])
    while queue:
        idx = queue.popleft()
        x, y = idx % width, idx // width
        for nx, ny in ((x, y - 1), (x + 1, y), (x, y + 1), (x - 1, y)):
            if 0 <= nx < width:
                n_idx = ny * width + nx
                if n_idx in cells and n_idx not in seen:
                    seen.add(n_idx)
                    queue.append(n_idx)
    return seen == cells


class TestRegionPartitioner:
    """Test capital selection and territory growth."""

    @pytest.fixture
    def island(self):
        """20x20 ocean with a 10x10 forested island in the middle."""
        width, height = 20, 20
        elevation = np.full(width * height, 5, dtype=np.uint8)
        for y in range(5, 15):
            for x in range(5, 15):
                elevation[y * width + x] = 40
        biomes = np.where(elevation >= 20, BiomeType.FOREST, BiomeType.OCEAN).astype(np.uint8)
        return width, height, elevation, biomes

    @pytest.fixture
    def two_islands(self):
        """Two separate 4x4 islands on a 20x10 map."""
        width, height = 20, 10
        elevation = np.full(width * height, 5, dtype=np.uint8)
        for y in range(3, 7):
            for x in range(2, 6):
                elevation[y * width + x] = 40
            for x in range(14, 18):
                elevation[y * width + x] = 40
        biomes = np.where(elevation >= 20, BiomeType.GRASSLAND, BiomeType.OCEAN).astype(np.uint8)
        return width, height, elevation, biomes

    def test_island_fully_covered(self, island):
        width, height, elevation, biomes = island
        result = generate_regions("regions-island", width, height, elevation, biomes, num_regions=4)

        assert result.achieved == 4
        assert result.wildland_cells == 0
        land = elevation >= 20
        assert np.all(result.region_map[land] >= 0)
        assert np.all(result.region_map[~land] == UNASSIGNED)
        assert sum(region.area for region in result.regions) == int(land.sum())

    def test_regions_are_contiguous(self, island):
        width, height, elevation, biomes = island
        result = generate_regions("regions-contiguous", width, height, elevation, biomes, num_regions=5)

        for region in result.regions:
            cells = np.flatnonzero(result.region_map == region.id).tolist()
            assert region.capital.to_index(width) in cells
            assert connected(cells, width)

    def test_region_metadata(self, island):
        width, height, elevation, biomes = island
        result = generate_regions("regions-meta", width, height, elevation, biomes, num_regions=3)

        for i, region in enumerate(result.regions):
            assert region.id == i
            assert region.name == f"Region {i + 1}"
            assert region.area >= 1
            assert region.biome == BiomeType.FOREST
            assert elevation[region.capital.to_index(width)] >= 20

    def test_deterministic(self, island):
        width, height, elevation, biomes = island
        first = generate_regions("same-seed", width, height, elevation, biomes)
        second = generate_regions("same-seed", width, height, elevation, biomes)

        assert np.array_equal(first.region_map, second.region_map)
        assert [r.capital for r in first.regions] == [r.capital for r in second.regions]

    def test_unreached_island_is_wildland(self, two_islands):
        width, height, elevation, biomes = two_islands
        result = generate_regions("wild", width, height, elevation, biomes, num_regions=1)

        assert result.achieved == 1
        assert result.wildland_cells == 16
        assert result.regions[0].area == 16
        land = elevation >= 20
        assert int(np.count_nonzero(result.region_map[land] == UNASSIGNED)) == 16

    def test_more_regions_than_land(self):
        elevation = np.array([5, 40, 40, 5, 40, 5], dtype=np.uint8)
        biomes = np.zeros(6, dtype=np.uint8)

        result = generate_regions("tiny", 6, 1, elevation, biomes, num_regions=10)

        assert result.achieved == 3
        assert result.requested == 10
        assert all(region.area == 1 for region in result.regions)

    def test_zero_regions(self, island):
        width, height, elevation, biomes = island
        result = RegionPartitioner(RegionOptions(num_regions=0)).partition(
            "none", width, height, elevation, biomes
        )

        assert result.regions == []
        assert np.all(result.region_map == UNASSIGNED)

    def test_no_land(self):
        elevation = np.zeros(25, dtype=np.uint8)
        biomes = np.zeros(25, dtype=np.uint8)

        result = generate_regions("ocean", 5, 5, elevation, biomes)

        assert result.regions == []
        assert result.wildland_cells == 0
        assert result.region_map.dtype == np.int32

    def test_capital_spacing_then_top_up(self):
        # A row of 10 cells; spacing is sqrt(10) / 2 ~ 1.58
        capitals = RegionPartitioner.select_capitals([0, 1, 5, 9], 2, 10, 1)
        assert capitals == [0, 5]

        # Spacing sqrt(5) / 2 ~ 1.12 rejects cell 1, which the top-up then adds
        capitals = RegionPartitioner.select_capitals([0, 1], 2, 5, 1)
        assert capitals == [0, 1]
