"""
Noise heightmap generation.

Produces the elevation grid the rest of the pipeline consumes when the caller
does not supply one:
1. Fractal (multi-octave) simplex noise from the ``seed + "-heightmap"`` stream
2. A border mask that pulls the map edges down toward the sea
3. A rank threshold so that ``land_ratio`` of the cells end up as land
"""

from typing import Optional

import numpy as np
import structlog
from pydantic import BaseModel, Field, model_validator

from ..utils.random import create_prng, noise_from_stream
from .grid import SEA_LEVEL, round_half_up, validate_dimensions

logger = structlog.get_logger()

NOISE_OFFSET_RANGE = 1000.0


class HeightmapOptions(BaseModel):
    """Heightmap tunables."""

    land_ratio: float = Field(default=0.3, ge=0.0, le=1.0, description="Share of land cells")
    octaves: int = Field(default=6, ge=1, le=12, description="Noise octaves")
    persistence: float = Field(
        default=0.5, gt=0.0, le=1.0, description="Amplitude multiplier per octave"
    )
    lacunarity: float = Field(
        default=2.0, ge=1.0, description="Frequency multiplier per octave"
    )
    scale: float = Field(
        default=0.35, gt=0.0, description="Base feature size as a fraction of the map"
    )
    sea_level: int = Field(default=SEA_LEVEL, ge=1, le=255, description="Ocean threshold")
    max_land_elevation: int = Field(
        default=100, ge=1, le=255, description="Highest land elevation produced"
    )
    edge_falloff: float = Field(
        default=0.35, ge=0.0, le=1.0, description="Strength of the border mask"
    )

    @model_validator(mode="after")
    def check_land_range(self) -> "HeightmapOptions":
        if self.max_land_elevation < self.sea_level:
            raise ValueError("max_land_elevation must be at or above sea_level")
        return self


def _rescale(values: np.ndarray, low: int, high: int) -> np.ndarray:
    """Linearly map ``values`` onto the integer range [low, high]."""
    v_min = float(values.min())
    v_max = float(values.max())
    if v_max <= v_min:
        return np.full(values.shape, high, dtype=np.float64)
    scaled = (values - v_min) / (v_max - v_min)
    return np.floor(low + scaled * (high - low) + 0.5)


class HeightmapGenerator:
    """Generates a uint8 elevation grid from fractal simplex noise."""

    def __init__(self, options: Optional[HeightmapOptions] = None):
        self.options = options or HeightmapOptions()

    def generate(self, seed: str, width: int, height: int) -> np.ndarray:
        """
        Generate a heightmap.

        Args:
            seed: World seed
            width: Grid width
            height: Grid height

        Returns:
            Flat uint8 elevation grid of width * height cells
        """
        validate_dimensions(width, height)
        opts = self.options
        size = width * height

        logger.info("Generating heightmap", seed=seed, width=width, height=height)

        values = self.fractal_noise(seed, width, height)
        values = self.apply_edge_mask(values, width, height)

        land_cells = min(size, round_half_up(opts.land_ratio * size))
        order = np.argsort(values, kind="stable")
        is_land = np.zeros(size, dtype=bool)
        if land_cells > 0:
            is_land[order[size - land_cells:]] = True

        elevation = np.zeros(size, dtype=np.float64)
        if land_cells < size:
            elevation[~is_land] = _rescale(values[~is_land], 0, opts.sea_level - 1)
        if land_cells > 0:
            elevation[is_land] = _rescale(
                values[is_land], opts.sea_level, opts.max_land_elevation
            )

        result = elevation.astype(np.uint8)
        logger.info(
            "Heightmap generated",
            land_cells=int(land_cells),
            max_elevation=int(result.max()),
        )
        return result

    def fractal_noise(self, seed: str, width: int, height: int) -> np.ndarray:
        """
        Sum ``octaves`` layers of simplex noise, normalised to [0, 1].

        The stream first seeds the noise source, then draws the x and y
        sampling offsets.
        """
        opts = self.options
        prng = create_prng(seed, "heightmap")
        noise = noise_from_stream(prng)
        offset_x = prng.random() * NOISE_OFFSET_RANGE
        offset_y = prng.random() * NOISE_OFFSET_RANGE

        xs = np.arange(width) / (opts.scale * width)
        ys = np.arange(height) / (opts.scale * height)

        # noise2array samples every (x, y) pair and returns (height, width)
        values = np.zeros((height, width), dtype=np.float64)
        amplitude = 1.0
        frequency = 1.0
        amplitude_sum = 0.0
        for _ in range(opts.octaves):
            values += (
                noise.noise2array(xs * frequency + offset_x, ys * frequency + offset_y)
                * amplitude
            )
            amplitude_sum += amplitude
            amplitude *= opts.persistence
            frequency *= opts.lacunarity

        return (values.reshape(-1) / amplitude_sum + 1) / 2

    def apply_edge_mask(self, values: np.ndarray, width: int, height: int) -> np.ndarray:
        """Fade values toward the border: 1 at the centre, 0 on the edges."""
        falloff = self.options.edge_falloff
        if falloff == 0:
            return values

        nx = 2 * (np.arange(width) + 0.5) / width - 1
        ny = 2 * (np.arange(height) + 0.5) / height - 1
        mask = np.outer(1 - ny**2, 1 - nx**2).reshape(-1)

        return values * (1 - falloff * (1 - mask))


def generate_heightmap(
    seed: str, width: int, height: int, options: Optional[HeightmapOptions] = None
) -> np.ndarray:
    """Convenience wrapper around ``HeightmapGenerator(options).generate(...)``."""
    return HeightmapGenerator(options).generate(seed, width, height)
