"""
Logging Setup
Installs loguru sinks for console and rotating file output
"""

import sys
from typing import Dict

from loguru import logger


CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan> - <level>{message}</level>"
)
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function} - {message}"


def configure_logging(config: Dict, console_level: str = None):
    """
    Replace loguru's default sink with the engine's sinks

    Args:
        config: Engine configuration (uses the 'logging' section)
        console_level: Override for the console level
    """
    settings = config['logging']

    logger.remove()
    logger.add(
        sys.stderr,
        format=CONSOLE_FORMAT,
        level=console_level or settings['level']
    )

    if settings.get('file'):
        logger.add(
            settings['file'],
            rotation=settings['rotation'],
            retention=settings['retention'],
            format=FILE_FORMAT,
            level=settings['file_level']
        )
