"""Logging infrastructure setup."""

import logging
from pathlib import Path


def setup_logger(
    name: str = "semanticast",
    log_file: str = "output/pipeline.log",
    level: int = logging.INFO,
) -> logging.Logger:
    """
    Configure and return the pipeline logger, writing to a log file and the console.

    Args:
        name (str): The name of the logger.
        log_file (str): The path to the log file.
        level (int): Minimum level emitted by both handlers.

    Returns:
        logging.Logger: The configured logger instance.
    """
    log_path = Path(log_file)
    log_path.parent.mkdir(parents=True, exist_ok=True)

    logger = logging.getLogger(name)

    # Repeated setup calls (tests, scripts) must not stack handlers
    if logger.hasHandlers():
        return logger

    logger.setLevel(level)

    formatter = logging.Formatter(
        fmt="%(asctime)s | %(levelname)-8s | %(module)s.%(funcName)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )

    file_handler = logging.FileHandler(log_path, encoding="utf-8")
    file_handler.setFormatter(formatter)
    logger.addHandler(file_handler)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    return logger


# Shared instance imported by every pipeline module
logger = setup_logger()
