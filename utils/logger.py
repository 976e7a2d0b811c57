"""
============================================================================
DOMAIN HEALTH MONITOR - LOGGING UTILITY
============================================================================
loguru based logging: coloured console sink, optional rotating file sink
(plain text or serialised JSON) and an optional error-only file.

Components bind their name once:

    logger = get_logger("CheckRunner")
    logger.info("[CheckRunner] ...")

setup_logging() is called by the application entry point, never on import.
============================================================================
"""

import inspect
import sys
import time
from functools import wraps
from pathlib import Path
from typing import Optional

from loguru import logger

from config.settings import Settings, get_settings


CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{extra[name]}</cyan> - <level>{message}</level>"
)

FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {extra[name]} | {name}:{function}:{line} - {message}"


# ============================================================================
# LOGGER CONFIGURATION
# ============================================================================

def _add_file_sink(path: Path, level: str, retention: str, **options) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    logger.add(
        str(path),
        format=FILE_FORMAT,
        level=level,
        retention=retention,
        compression="zip",
        enqueue=True,
        **options,
    )


def setup_logging(settings: Optional[Settings] = None) -> None:
    """Replace loguru's default sink with the ones enabled in ``settings.logging``."""
    settings = settings or get_settings()
    cfg = settings.logging
    level = cfg.level.value

    logger.remove()
    logger.configure(extra={"name": settings.app_name})

    if cfg.console_enabled:
        logger.add(
            sys.stdout,
            format=CONSOLE_FORMAT,
            level=level,
            colorize=cfg.console_colored,
            backtrace=settings.debug,
            diagnose=settings.debug,
        )

    if cfg.file_enabled:
        _add_file_sink(
            cfg.file_path, level, cfg.file_retention,
            rotation=cfg.file_rotation,
            serialize=cfg.json_enabled,
        )

    if cfg.error_file_path:
        _add_file_sink(
            cfg.error_file_path, "ERROR", cfg.file_retention,
            rotation="1 day",
            backtrace=True,
        )

    logger.info(f"Logging ready: level={level} console={cfg.console_enabled} file={cfg.file_enabled}")


def get_logger(name: Optional[str] = None):
    """loguru logger whose records carry ``name`` in the component column."""
    if name:
        return logger.bind(name=name)
    return logger


# ============================================================================
# LOG DECORATORS
# ============================================================================

def log_execution_time(func):
    """Log how long a sync or async callable took, at debug level."""

    @wraps(func)
    async def async_wrapper(*args, **kwargs):
        start_time = time.perf_counter()
        try:
            return await func(*args, **kwargs)
        finally:
            logger.debug(
                f"{func.__qualname__} finished in {time.perf_counter() - start_time:.3f}s"
            )

    @wraps(func)
    def sync_wrapper(*args, **kwargs):
        start_time = time.perf_counter()
        try:
            return func(*args, **kwargs)
        finally:
            logger.debug(
                f"{func.__qualname__} finished in {time.perf_counter() - start_time:.3f}s"
            )

    if inspect.iscoroutinefunction(func):
        return async_wrapper
    return sync_wrapper
