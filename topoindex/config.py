"""
Application configuration module.

Loads settings from environment variables with sensible defaults.
"""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict

from topoindex.constants import (
    DEFAULT_CRS,
    DEFAULT_EXPORT_PATH,
    DEFAULT_VERTICAL_RESOLUTION,
    N_DIRECTIONS,
)


class Settings(BaseSettings):
    """
    Topographic index settings loaded from environment variables.

    Attributes
    ----------
    log_level : str
        Logging level (DEBUG, INFO, WARNING, ERROR)
    neighbor_directions : int
        Number of flow directions; only 8 is supported
    vertical_resolution : float
        Vertical resolution of the DEM [m], used for flat cells
    validate_order : bool
        Check the visitation order before propagating
    export_enabled : bool
        Write the diagnostic ASCII grid after computing
    export_path : str
        Path of the diagnostic ASCII grid
    export_field : str
        Field written to the diagnostic grid
        (log_inv_tanbeta, topo_index, log_area)
    output_crs : str
        CRS written to GeoTIFF outputs
    """

    log_level: str = "INFO"

    # Algorithm
    neighbor_directions: int = N_DIRECTIONS
    vertical_resolution: float = DEFAULT_VERTICAL_RESOLUTION
    validate_order: bool = True

    # Diagnostic export
    export_enabled: bool = False
    export_path: str = DEFAULT_EXPORT_PATH
    export_field: str = "log_inv_tanbeta"

    # Raster output
    output_crs: str = DEFAULT_CRS

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Returns
    -------
    Settings
        Application settings
    """
    return Settings()
