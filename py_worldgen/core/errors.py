"""Exceptions raised for world generation precondition violations."""


class WorldgenError(Exception):
    """Base class for world generation errors."""


class GridShapeError(WorldgenError, ValueError):
    """A grid's length does not match width * height."""

    def __init__(self, name: str, expected: int, actual: int):
        self.name = name
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"{name} grid has {actual} cells, expected {expected} (width * height)"
        )


class InvalidDimensionsError(WorldgenError, ValueError):
    """Width or height is not positive, or exceeds the configured maximum."""
