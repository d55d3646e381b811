"""Loguru sink setup for the watcher process"""

import sys
from typing import Optional

from loguru import logger

LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | "
    "<cyan>{extra[strategy]}</cyan> <cyan>{extra[asset]}</cyan> | {message}"
)


def configure_logging(
    level: str = "INFO",
    log_file: Optional[str] = None,
    rotation: str = "10 MB",
    retention: str = "7 days"
):
    """
    Replace loguru's default sink

    Args:
        level: Minimum level
        log_file: Optional path of a rotating log file
        rotation: Rotation condition for the log file
        retention: How long rotated files are kept
    """
    logger.remove()
    logger.configure(extra={'strategy': '-', 'asset': '-'})
    logger.add(sys.stderr, level=level, format=LOG_FORMAT)

    if log_file:
        logger.add(
            log_file,
            level=level,
            format=LOG_FORMAT,
            rotation=rotation,
            retention=retention,
            enqueue=True
        )
        logger.info(f"Logging to {log_file}")
