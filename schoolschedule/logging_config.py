"""
Logging setup: console + rotating file, configured once on the root logger.
"""

from __future__ import annotations

import logging
import logging.handlers
import sys
from pathlib import Path

_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
_DATEFMT = "%Y-%m-%d %H:%M:%S"

_configured = False


def setup_logging(app_name: str, log_file: str | None = None, level: str = "INFO") -> None:
    """
    Configure the root logger.

    Args:
        app_name: used for the default log file name (logs/<app_name>.log)
        log_file: explicit log file path
        level: logging level name
    """
    global _configured

    if log_file:
        log_path = Path(log_file)
    else:
        log_path = Path("logs") / f"{app_name}.log"

    root_logger = logging.getLogger()
    level_val = getattr(logging, level.upper(), logging.INFO)
    root_logger.setLevel(level_val)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    formatter = logging.Formatter(_FORMAT, datefmt=_DATEFMT)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level_val)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            log_path,
            maxBytes=10 * 1024 * 1024,  # 10MB
            backupCount=5,
            encoding="utf-8",
        )
        file_handler.setLevel(level_val)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)
    except OSError as e:
        root_logger.warning("Failed to set up file logging at %s: %s", log_path, e)

    _configured = True


def is_configured() -> bool:
    return _configured


def log_request(
    logger: logging.Logger,
    method: str,
    path: str,
    status_code: int,
    duration: float,
    user_id: str | None = None,
) -> None:
    user_info = f" [User: {user_id}]" if user_id else ""
    msg = f"{method} {path} - {status_code} - {duration:.3f}s{user_info}"

    if status_code >= 500:
        logger.error(msg)
    elif status_code >= 400:
        logger.warning(msg)
    else:
        logger.info(msg)
