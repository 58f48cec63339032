# -*- coding: utf-8 -*-
"""
Logging configuration for the kubexec controller.

All output goes through loguru. Console output is rendered by rich, records
emitted through the standard library (aiohttp, kubernetes_asyncio, asyncio)
are intercepted and forwarded to loguru, and an optional rotating file sink
keeps a more detailed record for troubleshooting.

Usage:
    setup_logging()
    log = get_logger("reconcile")
    log.bind(executor="default/web").info("Pass finished")
"""
import logging
import os
from pathlib import Path
from typing import Dict, Optional

from loguru import logger
from rich.logging import RichHandler

from kubexec.config import settings

LOG_FORMAT = "<cyan>{extra[name]}</cyan> | <level>{message}</level>"

FILE_LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
    "<level>{level: <7}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
    "{extra} | <level>{message}</level>"
)

LOG_ROTATION = "10 MB"
LOG_RETENTION = "7 days"
LOG_DIR = Path(os.getenv("KUBEXEC_LOG_DIR", "./logs"))
LOG_FILE = LOG_DIR / "kubexec.log"

# Third-party modules that are noisy at the controller's level
COMPONENT_LOG_LEVELS: Dict[str, str] = {
    "kubernetes_asyncio": "WARNING",
    "aiohttp": "WARNING",
    "asyncio": "WARNING",
}

# Records that were not produced through get_logger() still need a name for the format
logger.configure(extra={"name": "kubexec"})


class InterceptHandler(logging.Handler):
    """
    Intercept standard logging messages and redirect them to Loguru.

    Ensures consistent formatting for all log messages, regardless of origin library.
    """

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        frame, depth = logging.currentframe(), 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).bind(
            name=record.name
        ).log(level, record.getMessage())


def _level_filter(base_level: str) -> Dict[str, str]:
    levels = {"": base_level}
    levels.update(COMPONENT_LOG_LEVELS)
    return levels


def setup_logging(level: Optional[str] = None, log_to_file: Optional[bool] = None) -> None:
    """
    Configure Loguru for console and optional file logging.

    Args:
        level: Overrides the level from settings.
        log_to_file: Overrides the LOG_TO_FILE setting.
    """
    logger.remove()

    base_log_level = (level or settings.log_level).upper()
    write_file = settings.log_to_file if log_to_file is None else log_to_file

    logger.add(
        RichHandler(
            show_path=False,
            markup=False,
            rich_tracebacks=True,
            log_time_format="%Y-%m-%d %H:%M:%S",
            omit_repeated_times=True,
            enable_link_path=False,
        ),
        format=LOG_FORMAT,
        filter=_level_filter(base_log_level),
        level=base_log_level,
    )

    if write_file:
        try:
            LOG_DIR.mkdir(parents=True, exist_ok=True)
            logger.add(
                LOG_FILE,
                level=base_log_level,
                format=FILE_LOG_FORMAT,
                filter=_level_filter(base_log_level),
                rotation=LOG_ROTATION,
                retention=LOG_RETENTION,
                enqueue=True,
                backtrace=True,
                diagnose=False,
                colorize=False,
            )
            logger.info(f"File logging enabled: {LOG_FILE}")
        except PermissionError:
            logger.warning(
                f"Permission denied creating log directory {LOG_DIR}. File logging disabled."
            )

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)

    logger.debug(f"kubexec logging configured at level {base_log_level}")


def get_logger(name: str):
    """
    Get a contextualized logger for a specific component.

    Args:
        name: The name of the component (prefixed with 'kubexec.' if not already)

    Returns:
        A loguru logger with the component name bound as context
    """
    if not name.startswith("kubexec.") and name != "kubexec":
        name = f"kubexec.{name}"
    return logger.bind(name=name)
