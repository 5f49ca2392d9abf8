"""Configuration module for the SDS tools.

This module provides the settings shared by the processors and the
command-line front-ends, loaded with Pydantic from the environment or
a .env file.
"""

from pydantic_settings import BaseSettings
from functools import lru_cache

class Settings(BaseSettings):
    """Application settings and configuration."""

    # Logging Configuration
    LOG_LEVEL: str = "INFO"
    LOG_DIR: str = "logs"

    # Classification Configuration
    MAX_NUM_CLASS: int = 256

    # Mask Configuration
    MASK_ON_VALUE: int = 255
    MASK_OFF_VALUE: int = 0
    MASK_FILL_VALUE: int = 255

    # Histogram Configuration
    HIST_MAX_BINS: int = 1 << 20

    class Config:
        """Pydantic config."""
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True

@lru_cache()
def get_settings() -> Settings:
    """Get application settings.

    Returns:
        Settings: Application settings
    """
    return Settings()
