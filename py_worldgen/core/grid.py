"""
Flat row-major grid helpers shared by every pipeline stage.

This module provides:
- Index conversion between (x, y) and flat row-major indices
- Neighbour offset tables (4- and 8-connected)
- Breadth-first ocean distance field over an explicit index queue
- Shape validation for caller-supplied grids
"""

import math
from typing import Optional, Tuple

import numpy as np
import structlog

from .errors import GridShapeError, InvalidDimensionsError

logger = structlog.get_logger()

SEA_LEVEL = 20  # Elevation below this value is ocean
UNREACHABLE = np.iinfo(np.int32).max

# N, E, S, W
NEIGHBORS_4: Tuple[Tuple[int, int], ...] = ((0, -1), (1, 0), (0, 1), (-1, 0))

# N, NE, E, SE, S, SW, W, NW
NEIGHBORS_8: Tuple[Tuple[int, int], ...] = (
    (0, -1),
    (1, -1),
    (1, 0),
    (1, 1),
    (0, 1),
    (-1, 1),
    (-1, 0),
    (-1, -1),
)


def to_index(x: int, y: int, width: int) -> int:
    """Convert grid coordinates to a flat row-major index."""
    return y * width + x


def from_index(index: int, width: int) -> Tuple[int, int]:
    """Convert a flat row-major index to (x, y)."""
    return index % width, index // width


def in_bounds(x: int, y: int, width: int, height: int) -> bool:
    return 0 <= x < width and 0 <= y < height


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves toward positive infinity."""
    return int(math.floor(value + 0.5))


def validate_dimensions(
    width: int,
    height: int,
    max_width: Optional[int] = None,
    max_height: Optional[int] = None,
) -> None:
    """
    Check grid dimensions.

    Raises:
        InvalidDimensionsError: if a dimension is not a positive integer or
            exceeds the given maximum
    """
    if int(width) != width or int(height) != height or width <= 0 or height <= 0:
        raise InvalidDimensionsError(
            f"width and height must be positive integers, got {width}x{height}"
        )
    if max_width is not None and width > max_width:
        raise InvalidDimensionsError(f"width {width} exceeds maximum {max_width}")
    if max_height is not None and height > max_height:
        raise InvalidDimensionsError(f"height {height} exceeds maximum {max_height}")


def validate_grid(name: str, grid, width: int, height: int) -> np.ndarray:
    """
    Return grid as a flat numpy array after checking its cell count.

    Accepts flat sequences or (height, width) shaped arrays. The returned array
    may share memory with the input; callers must not write to it.

    Raises:
        GridShapeError: if the grid does not hold width * height cells
    """
    array = np.asarray(grid)
    expected = width * height
    if array.size != expected:
        raise GridShapeError(name, expected, int(array.size))
    return array.reshape(-1)


def as_elevation_grid(grid, width: int, height: int) -> np.ndarray:
    """Validate an elevation grid and clamp it into the uint8 range."""
    array = validate_grid("elevation", grid, width, height)
    if array.dtype != np.uint8:
        array = np.clip(np.rint(array), 0, 255).astype(np.uint8)
    return array


def calculate_ocean_distance(
    elevation, sea_level: int, width: int, height: int
) -> np.ndarray:
    """
    Calculate the 4-connected step distance from every cell to the nearest ocean.

    Multi-source BFS seeded at every cell below sea level. The frontier is a
    preallocated int32 queue with head/tail cursors; each cell enters it at
    most once per improvement. Cells with no ocean anywhere on the map keep
    UNREACHABLE.

    Args:
        elevation: Flat elevation grid
        sea_level: Ocean threshold
        width: Grid width
        height: Grid height

    Returns:
        int32 array of distances (0 for ocean cells)
    """
    size = width * height
    heights = elevation.tolist() if isinstance(elevation, np.ndarray) else list(elevation)
    distance = [int(UNREACHABLE)] * size
    queue = np.empty(size, dtype=np.int32)
    head = 0
    tail = 0

    for i in range(size):
        if heights[i] < sea_level:
            distance[i] = 0
            queue[tail] = i
            tail += 1

    while head < tail:
        idx = int(queue[head])
        head += 1
        x, y = idx % width, idx // width
        next_dist = distance[idx] + 1

        for dx, dy in NEIGHBORS_4:
            nx = x + dx
            ny = y + dy
            if 0 <= nx < width and 0 <= ny < height:
                n_idx = ny * width + nx
                if next_dist < distance[n_idx]:
                    distance[n_idx] = next_dist
                    queue[tail] = n_idx
                    tail += 1

    return np.asarray(distance, dtype=np.int32)
