# ordersheet/logger_config.py
"""
Logging setup for the order sheet engine.

Modules only ever call logging.getLogger(__name__); handlers are attached here,
once, by whoever owns the process (Orchestrator.from_system_config does it).
"""
import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Union

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s:%(lineno)d | %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_logging_initialized = False


def parse_level(level: Union[int, str, None], default: int = logging.INFO) -> int:
    """'debug' / 'INFO' / 10 -> logging level number; unknown names give `default`."""
    if level is None or level == "":
        return default
    if isinstance(level, int):
        return level
    value = logging.getLevelName(str(level).strip().upper())
    return value if isinstance(value, int) else default


def setup_logging(
    log_dir: Path,
    level: Union[int, str, None] = logging.INFO,
    log_filename: str = "ordersheet.log",
    max_bytes: int = 5 * 1024 * 1024,
    backup_count: int = 3
) -> Path:
    """
    Attach a console handler and a rotating DEBUG file handler to the root logger.

    Args:
        log_dir: Directory for the log file (RUN_LOG_DIR)
        level: Console level, as a number or a name like 'debug'
        log_filename: Log file name inside log_dir
        max_bytes: Size at which the file rotates
        backup_count: Rotated files kept

    Returns:
        Path of the log file. A second call changes nothing and returns the same path.
    """
    global _logging_initialized

    log_file = Path(log_dir) / log_filename
    if _logging_initialized:
        logging.debug("Logging already initialized, skipping.")
        return log_file

    log_file.parent.mkdir(parents=True, exist_ok=True)
    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    console_handler.setLevel(parse_level(level))

    file_handler = RotatingFileHandler(log_file, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8")
    file_handler.setFormatter(formatter)
    file_handler.setLevel(logging.DEBUG)

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)  # handlers filter
    root_logger.handlers.clear()
    root_logger.addHandler(console_handler)
    root_logger.addHandler(file_handler)

    _logging_initialized = True
    logging.info(f"Logging initialized. File: {log_file}")
    return log_file
