"""Tests for shared grid helpers."""

import pytest
import numpy as np

from py_worldgen.core.errors import GridShapeError, InvalidDimensionsError, WorldgenError
from py_worldgen.core.grid import (
    NEIGHBORS_4,
    NEIGHBORS_8,
    UNREACHABLE,
    as_elevation_grid,
    calculate_ocean_distance,
    from_index,
    in_bounds,
    round_half_up,
    to_index,
    validate_dimensions,
    validate_grid,
)


class TestIndexing:
    """Test flat row-major addressing."""

    def test_index_conversion(self):
        assert to_index(3, 2, 10) == 23
        assert from_index(23, 10) == (3, 2)
        assert from_index(to_index(0, 4, 7), 7) == (0, 4)

    def test_in_bounds(self):
        assert in_bounds(0, 0, 5, 5)
        assert in_bounds(4, 4, 5, 5)
        assert not in_bounds(5, 0, 5, 5)
        assert not in_bounds(0, -1, 5, 5)

    def test_neighbor_tables(self):
        """4-neighbours are N, E, S, W; 8-neighbours go clockwise from N."""
        assert NEIGHBORS_4 == ((0, -1), (1, 0), (0, 1), (-1, 0))
        assert len(NEIGHBORS_8) == 8
        assert NEIGHBORS_8[0] == (0, -1)
        assert NEIGHBORS_8[1] == (1, -1)
        assert len(set(NEIGHBORS_8)) == 8


class TestRounding:
    """Halves round toward positive infinity."""

    @pytest.mark.parametrize(
        "value,expected",
        [(2.5, 3), (2.4, 2), (-2.5, -2), (-0.5, 0), (-2.6, -3), (0.0, 0)],
    )
    def test_round_half_up(self, value, expected):
        assert round_half_up(value) == expected


class TestValidation:
    """Test precondition checks."""

    def test_validate_grid_accepts_flat_and_2d(self):
        flat = validate_grid("elevation", [1, 2, 3, 4, 5, 6], 3, 2)
        assert flat.shape == (6,)

        shaped = validate_grid("elevation", np.zeros((2, 3)), 3, 2)
        assert shaped.shape == (6,)

    def test_validate_grid_rejects_wrong_length(self):
        with pytest.raises(GridShapeError) as exc_info:
            validate_grid("moisture", [0] * 5, 3, 2)

        error = exc_info.value
        assert error.name == "moisture"
        assert error.expected == 6
        assert error.actual == 5
        assert isinstance(error, ValueError)
        assert isinstance(error, WorldgenError)

    @pytest.mark.parametrize("width,height", [(0, 10), (10, 0), (-1, 5), (2.5, 4)])
    def test_validate_dimensions_rejects_bad_sizes(self, width, height):
        with pytest.raises(InvalidDimensionsError):
            validate_dimensions(width, height)

    def test_validate_dimensions_maximum(self):
        validate_dimensions(100, 100, max_width=100, max_height=100)
        with pytest.raises(InvalidDimensionsError):
            validate_dimensions(101, 10, max_width=100, max_height=100)
        with pytest.raises(InvalidDimensionsError):
            validate_dimensions(10, 101, max_width=100, max_height=100)

    def test_as_elevation_grid_clamps(self):
        result = as_elevation_grid(np.array([-5.0, 12.6, 300.0]), 3, 1)
        assert result.dtype == np.uint8
        assert result.tolist() == [0, 13, 255]

    def test_as_elevation_grid_keeps_uint8(self):
        source = np.array([1, 2, 3], dtype=np.uint8)
        assert as_elevation_grid(source, 3, 1) is not None
        assert as_elevation_grid(source, 3, 1).tolist() == [1, 2, 3]


class TestOceanDistance:
    """Test the breadth-first distance transform."""

    def test_distance_along_a_row(self):
        elevation = np.array([0, 30, 30, 30, 30], dtype=np.uint8)
        distance = calculate_ocean_distance(elevation, 20, 5, 1)

        assert distance.dtype == np.int32
        assert distance.tolist() == [0, 1, 2, 3, 4]

    def test_distance_is_four_connected(self):
        elevation = np.full(9, 30, dtype=np.uint8)
        elevation[4] = 0  # Centre of a 3x3 grid

        distance = calculate_ocean_distance(elevation, 20, 3, 3).reshape(3, 3)

        assert distance[1, 1] == 0
        assert distance[0, 1] == 1
        assert distance[1, 0] == 1
        assert distance[0, 0] == 2
        assert distance[2, 2] == 2

    def test_no_ocean_is_unreachable(self):
        elevation = np.full(12, 50, dtype=np.uint8)
        distance = calculate_ocean_distance(elevation, 20, 4, 3)

        assert np.all(distance == UNREACHABLE)

    def test_multiple_sources_take_nearest(self):
        elevation = np.array([0, 30, 30, 30, 0], dtype=np.uint8)
        distance = calculate_ocean_distance(elevation, 20, 5, 1)

        assert distance.tolist() == [0, 1, 2, 1, 0]
