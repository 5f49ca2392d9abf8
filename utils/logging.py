"""Logging configuration module.

This module sets up loguru for the SDS tools: a coloured console handler
plus rotating log files in the configured log directory.
"""

import sys
from pathlib import Path
from loguru import logger
from typing import Dict, Any

from config import get_settings

LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
)

def setup_logging(config: Dict[str, Any] = None) -> None:
    """Configure logging for a command-line run.

    Args:
        config (Dict[str, Any], optional): Overrides with keys:
            - log_level: Minimum log level to capture
            - log_dir: Directory for app.log and error.log
            - format: Log message format string
            - rotation: When to rotate log files (e.g., "500 MB")
            - retention: How long to keep old logs (e.g., "10 days")
            - compression: Compression format for rotated logs
            - file_logging: Set False to log to the console only

    Note:
        The level and directory default to the LOG_LEVEL and LOG_DIR
        settings. app.log receives every message at or above the level,
        error.log only ERROR messages.
    """
    settings = get_settings()

    logger.remove()

    default_config = {
        "log_level": settings.LOG_LEVEL,
        "log_dir": settings.LOG_DIR,
        "format": LOG_FORMAT,
        "rotation": "500 MB",
        "retention": "10 days",
        "compression": "zip",
        "file_logging": True,
    }
    if config:
        default_config.update(config)

    logger.add(
        sys.stderr,
        format=default_config["format"],
        level=default_config["log_level"],
        colorize=True
    )

    if default_config["file_logging"]:
        log_dir = Path(default_config["log_dir"])
        log_dir.mkdir(parents=True, exist_ok=True)

        logger.add(
            str(log_dir / "app.log"),
            format=default_config["format"],
            level=default_config["log_level"],
            rotation=default_config["rotation"],
            retention=default_config["retention"],
            compression=default_config["compression"]
        )

        logger.add(
            str(log_dir / "error.log"),
            format=default_config["format"],
            level="ERROR",
            rotation=default_config["rotation"],
            retention=default_config["retention"],
            compression=default_config["compression"],
            filter=lambda record: record["level"].name == "ERROR"
        )

    logger.debug(f"Logging initialized at level {default_config['log_level']}")
