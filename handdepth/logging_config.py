"""Loguru sinks for the CLI and long-running pipelines."""

from __future__ import annotations

import sys
from pathlib import Path

from loguru import logger

from handdepth.config import Settings, settings

LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
    "<level>{message}</level>"
)


def setup_logging(config: Settings | None = None) -> None:
    """Replace Loguru's default sink with a console sink and a daily file.

    The file sink records DEBUG and up regardless of the console level, so
    per-frame details stay out of the terminal but remain on disk. It is
    skipped when ``log_dir`` is empty.
    """
    config = config or settings
    logger.remove()

    logger.add(
        sys.stderr,
        format=LOG_FORMAT,
        level=config.log_level,
        colorize=True,
        backtrace=True,
        diagnose=config.debug,
    )

    if config.log_dir:
        log_file = Path(config.log_dir) / f"{config.app_name.lower()}_{{time:YYYY-MM-DD}}.log"
        logger.add(
            str(log_file),
            format=LOG_FORMAT,
            level="DEBUG",
            rotation="00:00",
            retention="30 days",
            compression="gz",
            enqueue=True,
        )

    logger.info(
        f"Logging ready | level={config.log_level} env={config.app_env} "
        f"version={config.app_version} dir={config.log_dir or '-'}"
    )
