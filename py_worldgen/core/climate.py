"""
Climate synthesis for temperature and moisture grids.

This module implements:
- Latitude-based temperature bands with an altitude lapse rate
- Ocean-proximity moisture with a tropical wetness term
- Multi-octave noise variation seeded per stage
- Layered moisture post-processing (smoothing, steep-delta blending, delta cap)
"""

from typing import List, Optional

import numpy as np
import structlog
from pydantic import BaseModel, ConfigDict, Field

from ..utils.random import create_prng, noise_from_stream
from .grid import (
    SEA_LEVEL,
    as_elevation_grid,
    calculate_ocean_distance,
    round_half_up,
    validate_dimensions,
)

logger = structlog.get_logger()

TEMPERATURE_MIN = -20  # °C
TEMPERATURE_MAX = 40  # °C
MOISTURE_MIN = 0  # %
MOISTURE_MAX = 100  # %
OCEAN_MOISTURE = 100

STEEP_DELTA_THRESHOLD = 27  # Blend neighbour pairs at or above this delta
MOISTURE_DELTA_CAP = 29  # Hard limit between adjacent land cells


class ClimateOptions(BaseModel):
    """Climate synthesis tunables."""

    equator_temp: float = Field(default=30.0, description="°C at the equator row")
    pole_temp: float = Field(default=-10.0, description="°C at the top and bottom rows")
    elevation_lapse_rate: float = Field(
        default=3.0, ge=0.0, description="°C lost per 10 elevation units above sea level"
    )
    temperature_offset: float = Field(
        default=0.0, description="Global shift applied to every temperature"
    )
    moisture_offset: float = Field(
        default=0.0, description="Global shift applied to every land moisture value"
    )
    sea_level: int = Field(default=SEA_LEVEL, ge=1, le=255, description="Ocean threshold")


class ClimateMap(BaseModel):
    """Temperature and moisture grids for one world."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    width: int
    height: int
    temperature: np.ndarray = Field(description="int8 °C, -20..40")
    moisture: np.ndarray = Field(description="uint8 %, 0..100")
    elevation: np.ndarray = Field(description="Input heightmap, unmodified")


def _latitude_factor(y, height: int):
    """1.0 on the equator row, 0.0 on the top and bottom rows. Accepts row arrays."""
    half = height / 2
    return 1 - abs(y - half) / half


def _round_half_up(values: np.ndarray) -> np.ndarray:
    return np.floor(values + 0.5)


class Climate:
    """Generates temperature and moisture from elevation and a seed."""

    def __init__(self, options: Optional[ClimateOptions] = None):
        """
        Initialize climate synthesizer.

        Args:
            options: Climate tunables; defaults are used when omitted
        """
        self.options = options or ClimateOptions()

    def generate(self, seed: str, width: int, height: int, elevation) -> ClimateMap:
        """
        Generate temperature and moisture grids.

        Args:
            seed: World seed
            width: Grid width
            height: Grid height
            elevation: Flat elevation grid of width * height cells

        Returns:
            ClimateMap with int8 temperature and uint8 moisture grids
        """
        validate_dimensions(width, height)
        elevation = as_elevation_grid(elevation, width, height)

        logger.info("Generating climate", seed=seed, width=width, height=height)

        temperature = self.calculate_temperature(seed, width, height, elevation)
        moisture = self.calculate_moisture(seed, width, height, elevation)

        logger.info(
            "Climate generated",
            mean_temperature=float(np.mean(temperature)),
            mean_moisture=float(np.mean(moisture)),
        )

        return ClimateMap(
            width=width,
            height=height,
            temperature=temperature,
            moisture=moisture,
            elevation=elevation,
        )

    def calculate_temperature(
        self, seed: str, width: int, height: int, elevation: np.ndarray
    ) -> np.ndarray:
        """
        Temperature = latitude baseline - altitude drop + noise + offset.

        The noise source is seeded from the ``seed + "-temp"`` stream.
        """
        opts = self.options
        prng = create_prng(seed, "temp")
        noise = noise_from_stream(prng)

        latitude = _latitude_factor(np.arange(height), height)
        base_temp = opts.pole_temp + latitude * (opts.equator_temp - opts.pole_temp)

        above_sea = np.maximum(0, elevation.astype(np.int32) - opts.sea_level)
        altitude_drop = (above_sea.reshape(height, width) / 10) * opts.elevation_lapse_rate

        variation = (
            noise.noise2array(
                np.arange(width) / (width * 0.3), np.arange(height) / (height * 0.3)
            )
            * 5
        )

        temp = base_temp[:, None] - altitude_drop + variation + opts.temperature_offset
        temperature = _round_half_up(np.clip(temp, TEMPERATURE_MIN, TEMPERATURE_MAX))
        return temperature.reshape(-1).astype(np.int8)

    def calculate_moisture(
        self, seed: str, width: int, height: int, elevation: np.ndarray
    ) -> np.ndarray:
        """
        Moisture = ocean proximity + tropical term + octave noise + seed bias.

        Draws from the ``seed + "-moisture"`` stream in this order: noise seed,
        x offset, y offset, seed bias. Ocean cells are pinned to 100 and the
        result goes through the smoothing, blending and cap passes.
        """
        opts = self.options
        sea_level = opts.sea_level
        prng = create_prng(seed, "moisture")
        noise = noise_from_stream(prng)

        ocean_distance = calculate_ocean_distance(elevation, sea_level, width, height)

        offset_x = prng.random() * 500
        offset_y = prng.random() * 500
        seed_bias = round_half_up((prng.random() - 0.5) * 12)  # -6..+6

        max_distance = max(width, height) / 4
        proximity = np.maximum(0.0, 1 - ocean_distance.astype(np.float64) / max_distance)
        base_moisture = proximity.reshape(height, width) * 60  # 0-60%

        latitude_moisture = _latitude_factor(np.arange(height), height) * 20  # 0-20%

        nx = np.arange(width) + offset_x
        ny = np.arange(height) + offset_y
        large = noise.noise2array(nx / (width * 0.7), ny / (height * 0.7))
        medium = noise.noise2array(nx / (width * 0.35), ny / (height * 0.35)) * 0.6
        small = noise.noise2array(nx / (width * 0.15), ny / (height * 0.15)) * 0.3
        variation = (large + medium + small) * 12

        total = (
            base_moisture
            + latitude_moisture[:, None]
            + variation
            + seed_bias
            + opts.moisture_offset
        ).reshape(-1)

        raw = _round_half_up(np.clip(total, MOISTURE_MIN, MOISTURE_MAX)).astype(np.uint8)
        raw[elevation < sea_level] = OCEAN_MOISTURE

        smoothed = smooth_moisture(raw, elevation, sea_level, width, height)
        blended = blend_steep_moisture_deltas(smoothed, elevation, sea_level, width, height)
        blended = blend_steep_moisture_deltas(blended, elevation, sea_level, width, height)
        return enforce_moisture_delta_cap(blended, elevation, sea_level, width, height)


def smooth_moisture(
    moisture: np.ndarray, elevation: np.ndarray, sea_level: int, width: int, height: int
) -> np.ndarray:
    """3x3 smoothing with the centre counted twice; ocean cells stay at 100."""
    values = np.pad(moisture.astype(np.int64).reshape(height, width), 1)
    inside = np.pad(np.ones((height, width), dtype=np.int64), 1)

    total = np.zeros((height, width), dtype=np.int64)
    count = np.zeros((height, width), dtype=np.int64)
    for dy in (0, 1, 2):
        for dx in (0, 1, 2):
            total += values[dy:dy + height, dx:dx + width]
            count += inside[dy:dy + height, dx:dx + width]

    # Centre weight 2: the loop above already counted it once
    total += moisture.astype(np.int64).reshape(height, width)
    count += 1

    smoothed = _round_half_up(total / count).reshape(-1).astype(np.uint8)
    smoothed[elevation < sea_level] = OCEAN_MOISTURE
    return smoothed


def blend_steep_moisture_deltas(
    moisture: np.ndarray, elevation: np.ndarray, sea_level: int, width: int, height: int
) -> np.ndarray:
    """
    Pull east/south land neighbour pairs with a steep delta toward their mean.

    Reads from ``moisture`` and writes into a copy, so a cell touched by both
    of its pairs keeps the result of the later one.
    """
    values = moisture.tolist()
    heights = elevation.tolist()
    blended = list(values)

    for y in range(height):
        for x in range(width):
            idx = y * width + x
            if heights[idx] < sea_level:
                continue

            pairs: List[int] = []
            if x + 1 < width:
                pairs.append(idx + 1)
            if y + 1 < height:
                pairs.append(idx + width)

            for n_idx in pairs:
                if heights[n_idx] < sea_level:
                    continue

                current = values[idx]
                neighbor = values[n_idx]
                if abs(current - neighbor) >= STEEP_DELTA_THRESHOLD:
                    average = round_half_up((current + neighbor) / 2)
                    blended[idx] = round_half_up((current * 2 + average) / 3)
                    blended[n_idx] = round_half_up((neighbor * 2 + average) / 3)

    return np.asarray(blended, dtype=np.uint8)


def _cap_pass(values: List[int], land: List[bool], width: int, height: int) -> int:
    """One in-place scan over east/south land pairs. Returns adjustments made."""
    adjusted = 0
    for y in range(height):
        for x in range(width):
            idx = y * width + x
            if not land[idx]:
                continue

            pairs = []
            if x + 1 < width:
                pairs.append(idx + 1)
            if y + 1 < height:
                pairs.append(idx + width)

            for n_idx in pairs:
                if not land[n_idx]:
                    continue
                current = values[idx]
                neighbor = values[n_idx]
                if abs(current - neighbor) > MOISTURE_DELTA_CAP:
                    low = min(current, neighbor)
                    if current > neighbor:
                        values[idx] = low + MOISTURE_DELTA_CAP
                    else:
                        values[n_idx] = low + MOISTURE_DELTA_CAP
                    adjusted += 1
    return adjusted


def enforce_moisture_delta_cap(
    moisture: np.ndarray,
    elevation: np.ndarray,
    sea_level: int,
    width: int,
    height: int,
    min_passes: int = 2,
) -> np.ndarray:
    """
    Clamp every adjacent land pair to a difference of at most 29.

    The higher value of an offending pair drops to ``low + 29``. At least
    ``min_passes`` scans run; further scans only happen while the previous one
    still had to adjust something. Values only ever decrease, so this stops.
    """
    values = moisture.tolist()
    land = (elevation >= sea_level).tolist()

    passes = 0
    while True:
        adjusted = _cap_pass(values, land, width, height)
        passes += 1
        if passes >= min_passes and adjusted == 0:
            break

    if passes > min_passes + 1:
        logger.debug("Moisture delta cap needed extra passes", passes=passes)

    return np.asarray(values, dtype=np.uint8)


def generate_climate_map(
    seed: str,
    width: int,
    height: int,
    elevation,
    options: Optional[ClimateOptions] = None,
) -> ClimateMap:
    """Convenience wrapper around ``Climate(options).generate(...)``."""
    return Climate(options).generate(seed, width, height, elevation)
