"""Logging configuration for the yabu processes."""

import logging
import logging.handlers
import sys
from typing import Optional

from ..config import Settings


class ColoredFormatter(logging.Formatter):
    """Custom formatter with color support for console output."""

    # ANSI color codes
    COLORS = {
        'DEBUG': '\033[36m',      # Cyan
        'INFO': '\033[32m',       # Green
        'WARNING': '\033[33m',    # Yellow
        'ERROR': '\033[31m',      # Red
        'CRITICAL': '\033[35m',   # Magenta
        'RESET': '\033[0m'        # Reset
    }

    def format(self, record):
        """Format log record with colors for console output."""
        # Colour a copy so other handlers still see the plain level name
        record = logging.makeLogRecord(record.__dict__)
        if record.levelname in self.COLORS:
            record.levelname = (
                f"{self.COLORS[record.levelname]}{record.levelname}"
                f"{self.COLORS['RESET']}"
            )

        return super().format(record)


def _level(settings: Settings) -> int:
    level = logging.getLevelName(settings.log_level.upper())
    return level if isinstance(level, int) else logging.INFO


def setup_logging(settings: Settings) -> None:
    """Setup logging for a yabu process.

    Args:
        settings: Application settings containing logging configuration
    """
    level = _level(settings)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    # Clear any existing handlers
    root_logger.handlers.clear()

    # Console handler with colors
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(ColoredFormatter(
        fmt='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    ))
    root_logger.addHandler(console_handler)

    if settings.log_file is not None:
        settings.log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            filename=settings.log_file,
            maxBytes=10 * 1024 * 1024,  # 10MB
            backupCount=5,
            encoding='utf-8'
        )
        file_handler.setLevel(logging.DEBUG)  # Always log everything to file
        file_handler.setFormatter(logging.Formatter(
            fmt='%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        ))
        root_logger.addHandler(file_handler)

    configure_module_loggers(settings)

    logger = logging.getLogger(__name__)
    logger.info(f"Logging configured with level: {settings.log_level.upper()}")
    if settings.log_file is not None:
        logger.info(f"Log file: {settings.log_file.absolute()}")


def configure_module_loggers(settings: Settings) -> None:
    """Configure logging levels for specific modules.

    Args:
        settings: Application settings
    """
    logging.getLogger('yabu').setLevel(_level(settings))

    # Third-party library loggers (usually more verbose)
    third_party_loggers = {
        'uvicorn': logging.INFO,
        'uvicorn.access': logging.WARNING,
        'fastapi': logging.INFO,
        'asyncio': logging.WARNING,
    }

    for logger_name, level in third_party_loggers.items():
        logging.getLogger(logger_name).setLevel(level)


def log_startup_info(process: str, settings: Settings, listening_on: Optional[str] = None) -> None:
    """Log process startup information.

    Args:
        process: Process name, e.g. ``yabuserver``
        settings: Application settings
        listening_on: Address the process accepts connections on
    """
    logger = logging.getLogger("yabu.startup")

    logger.info("=" * 60)
    logger.info(f"{process} starting")
    logger.info("=" * 60)
    if listening_on:
        logger.info(f"Listening on: {listening_on}")
    logger.info(f"Log Level: {settings.log_level.upper()}")
    logger.info(f"Storage Backend: {settings.storage_backend}")
    if settings.storage_backend == "sqlite":
        logger.info(f"Database: {settings.database_path}")
    logger.info(f"Task Server URL: {settings.server_url}")
    logger.info("=" * 60)


def log_shutdown_info(process: str) -> None:
    """Log process shutdown information."""
    logger = logging.getLogger("yabu.shutdown")

    logger.info("=" * 60)
    logger.info(f"{process} shutting down")
    logger.info("=" * 60)
