"""Small value types shared between stages."""

from pydantic import BaseModel, ConfigDict


class Point(BaseModel):
    """Grid cell coordinates."""

    model_config = ConfigDict(frozen=True)

    x: int
    y: int

    def to_index(self, width: int) -> int:
        return self.y * width + self.x

    def distance_to(self, other: "Point") -> float:
        return ((self.x - other.x) ** 2 + (self.y - other.y) ** 2) ** 0.5
