"""
Logger initialisation for cost accounting runs.

Library modules only call ``logging.getLogger(__name__)``. A script driving a
run calls ``initialize_logger`` once, before writing outputs, so that every
``energy_costing.*`` record lands in one log file.
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import Optional

from . import config

# Process-wide run logger, created on first use
logger = None


def setup_basic_logger(
    name: str,
    log_file: Optional[Path] = None,
    log_dir: Optional[Path] = None,
    log_level: str = config.LOG_LEVEL,
    log_format: Optional[str] = None,
    filemode: str = "w",
) -> logging.Logger:
    """
    Attach a file handler and a console handler to the logger ``name``.

    Args:
        name: Logger name, also the log file stem when ``log_file`` is not given
        log_file: Complete path to log file (overrides log_dir)
        log_dir: Directory for log files (will create name.log)
        log_level: Logging level for the file handler
        log_format: Format string for the file handler
        filemode: 'w' to overwrite, 'a' to append

    Returns:
        The configured ``logging.Logger``
    """
    if log_file is None:
        log_dir = Path(log_dir) if log_dir is not None else config.LOG_DIR
        log_dir.mkdir(parents=True, exist_ok=True)
        log_file = log_dir / f"{name}.log"
    else:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)

    if log_format is None:
        log_format = config.LOG_FORMAT

    level = getattr(logging, log_level.upper())
    run_logger = logging.getLogger(name)
    run_logger.setLevel(level)

    # Avoid duplicate handlers when a run re-initialises
    for handler in list(run_logger.handlers):
        handler.close()
    run_logger.handlers.clear()

    file_handler = logging.FileHandler(log_file, mode=filemode, encoding="utf-8")
    file_handler.setLevel(level)
    file_handler.setFormatter(logging.Formatter(log_format))
    run_logger.addHandler(file_handler)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.INFO)
    console_handler.setFormatter(logging.Formatter("%(levelname)s - %(message)s"))
    run_logger.addHandler(console_handler)

    run_logger.info(f"Logging initialized. Log file: {log_file}")
    return run_logger


def initialize_logger(
    name: str = "energy_costing",
    case_name: Optional[str] = None,
    log_dir: Optional[Path] = None,
    log_level: Optional[str] = None,
    add_timestamp: bool = False,
    filemode: str = "w",
) -> logging.Logger:
    """Initialize the process-wide run logger.

    The logger is named after the package so records emitted by every
    ``energy_costing.*`` module end up in the same file.
    """
    global logger

    stem = name if not case_name else f"{name}_{case_name}"
    if add_timestamp:
        stem = f"{stem}_{datetime.now().strftime('%Y%m%d_%H%M%S')}"
    log_dir = Path(log_dir) if log_dir is not None else config.LOG_DIR

    logger = setup_basic_logger(
        name=name,
        log_file=log_dir / f"{stem}.log",
        log_level=log_level or config.LOG_LEVEL,
        filemode=filemode,
    )
    return logger


def get_logger() -> logging.Logger:
    """Get the run logger, initialising it with defaults if needed."""
    global logger
    if logger is None:
        initialize_logger()
    return logger


def close_logger() -> None:
    global logger
    if logger is None:
        return
    for handler in list(logger.handlers):
        handler.close()
        logger.removeHandler(handler)
    logger = None
