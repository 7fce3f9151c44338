"""Configuration management."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """World generation settings, overridable through WORLDGEN_* variables."""

    model_config = SettingsConfigDict(
        env_prefix="WORLDGEN_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Logging
    log_level: str = Field(default="INFO", description="Log level")
    log_format: str = Field(
        default="json", description="Logging format (json or console)"
    )

    # Map dimensions
    default_map_width: int = Field(default=50, gt=0, description="Default map width")
    default_map_height: int = Field(
        default=50, gt=0, description="Default map height"
    )
    max_map_width: int = Field(default=2048, gt=0, description="Max allowed map width")
    max_map_height: int = Field(
        default=2048, gt=0, description="Max allowed map height"
    )

    # Terrain
    sea_level: int = Field(
        default=20, ge=1, le=255, description="Elevation below which cells are ocean"
    )
    default_land_ratio: float = Field(
        default=0.3, ge=0.0, le=1.0, description="Target share of land cells"
    )
    min_river_flux: float = Field(
        default=800.0, ge=0.0, description="Accumulated flow needed to start a river"
    )

    # Target counts
    default_num_regions: int = Field(default=10, ge=0, description="Regions to grow")
    default_num_cities: int = Field(default=5, ge=0, description="Cities to place")
    default_num_towns: int = Field(default=10, ge=0, description="Towns to place")
    default_num_dungeons: int = Field(default=5, ge=0, description="Dungeons to place")


settings = Settings()


def get_settings() -> Settings:
    """Return the process-wide settings instance."""
    return settings
