import logging
import sys
from pathlib import Path
from logging.handlers import RotatingFileHandler
from typing import Optional

from ..config import settings

def setup_logger(name: str, log_file: Optional[str] = None, level: Optional[str] = None):
    """Configure logger with console and file handlers"""

    # Create logger
    logger = logging.getLogger(name)
    logger.setLevel(level or settings.logging.LOG_LEVEL)

    # Handlers are attached once per logger name
    if logger.handlers:
        return logger

    # Create formatter
    formatter = logging.Formatter(settings.logging.LOG_FORMAT)

    # Create console handler
    if settings.logging.ENABLE_CONSOLE_LOGGING:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

    # Create file handler if log_file specified
    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=settings.logging.MAX_LOG_FILE_SIZE,
            backupCount=settings.logging.MAX_LOG_FILE_COUNT
        )
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger
