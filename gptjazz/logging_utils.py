from __future__ import annotations

import logging
import os
import traceback
from datetime import datetime
from pathlib import Path

_LOGGER = logging.getLogger("gptjazz.logging")
_PACKAGE_LOGGER = "gptjazz"
LOG_DIR_ENV = "GPTJAZZ_LOG_DIR"
LOG_LEVEL_ENV = "GPTJAZZ_LOG_LEVEL"
_LOG_FILE = "gptjazz.log"


def configure_logging() -> None:
    """Set the package logger level from the environment without adding output."""
    logger = logging.getLogger(_PACKAGE_LOGGER)
    level_name = os.environ.get(LOG_LEVEL_ENV, "").strip().upper()
    if level_name:
        level = logging.getLevelName(level_name)
        if isinstance(level, int):
            logger.setLevel(level)
        else:
            _LOGGER.warning("Ignoring unknown %s=%s", LOG_LEVEL_ENV, level_name)
    if not any(isinstance(handler, logging.NullHandler) for handler in logger.handlers):
        logger.addHandler(logging.NullHandler())


def default_log_dir() -> Path:
    configured = os.environ.get(LOG_DIR_ENV)
    if configured:
        return Path(configured).expanduser()
    return Path.home() / ".gptjazz" / "logs"


def log_path(filename: str = _LOG_FILE) -> Path:
    return default_log_dir() / filename


def setup_file_logger(
    name: str = _PACKAGE_LOGGER,
    filename: str = _LOG_FILE,
    *,
    level: int = logging.INFO,
) -> Path:
    logger = logging.getLogger(name)
    path = log_path(filename)
    path.parent.mkdir(parents=True, exist_ok=True)
    if any(isinstance(handler, logging.FileHandler) for handler in logger.handlers):
        return path
    logger.setLevel(level)
    handler = logging.FileHandler(path)
    handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s"))
    logger.addHandler(handler)
    return path


def log_exception(context: str, exc: BaseException) -> Path | None:
    try:
        path = log_path()
        path.parent.mkdir(parents=True, exist_ok=True)
        timestamp = datetime.now().isoformat()
        with path.open("a", encoding="utf-8") as handle:
            handle.write(f"[{timestamp}] {context} failed: {type(exc).__name__}: {exc}\n")
            traceback.print_exception(type(exc), exc, exc.__traceback__, file=handle)
            handle.write("\n")
        return path
    except Exception as log_exc:
        _LOGGER.warning("Failed to write log file: %s", log_exc, exc_info=True)
        return None
