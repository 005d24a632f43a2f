# ========================
# src/utils/logging_setup.py
# ========================

"""
Logging Configuration

One root configuration shared by the pipeline, the demo scripts and the
HTTP service, so pipeline, uvicorn and request logs land in the same place.
"""

import logging
import sys
from pathlib import Path
from typing import Optional

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

SERVER_LOGGERS = ('uvicorn', 'uvicorn.error', 'uvicorn.access')


def _resolve_level(log_level: str) -> int:
    level = logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        raise ValueError(f"Unknown log level: {log_level}")
    return level


def setup_logging(log_level: str = "INFO",
                  log_file: Optional[str] = None,
                  log_dir: str = "logs",
                  access_log: bool = True) -> None:
    """
    Set up logging configuration for the pipeline.

    Args:
        log_level (str): Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file (str): Optional log file name, created inside ``log_dir``
        log_dir (str): Directory for log files
        access_log (bool): Keep uvicorn's per-request access lines

    Raises:
        ValueError: If ``log_level`` is not a known level name
    """
    level = _resolve_level(log_level)
    formatter = logging.Formatter(LOG_FORMAT, DATE_FORMAT)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        log_path = Path(log_dir)
        log_path.mkdir(parents=True, exist_ok=True)
        file_path = log_path / log_file
        file_handler = logging.FileHandler(file_path)
        file_handler.setLevel(logging.DEBUG)  # File gets all messages
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

        logging.info(f"Logging to file: {file_path}")

    # uvicorn installs its own handlers; route them through the root logger instead
    for name in SERVER_LOGGERS:
        server_logger = logging.getLogger(name)
        server_logger.handlers.clear()
        server_logger.propagate = True
    if not access_log:
        logging.getLogger('uvicorn.access').setLevel(logging.WARNING)

    # Multipart parsing logs every upload part at DEBUG
    logging.getLogger('multipart').setLevel(logging.WARNING)

    logging.info(f"Logging initialized - Level: {logging.getLevelName(level)}")

def get_logger(name: str) -> logging.Logger:
    """Get a logger with the specified name."""
    return logging.getLogger(name)
