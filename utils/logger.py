"""Logging configuration with RotatingFileHandler."""

import logging
import os
from logging.handlers import RotatingFileHandler


def setup_logger(
    name: str = "assemble",
    logs_dir: str = "logs",
    level: int = logging.INFO,
) -> logging.Logger:
    """
    Setup logger with console and file handlers.

    Args:
        name: Logger name, also used for the log file name
        logs_dir: Directory for rotated log files
        level: Logging level for both handlers

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)

    # Avoid adding handlers multiple times
    if logger.handlers:
        return logger

    logger.setLevel(level)

    formatter = logging.Formatter(
        "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    os.makedirs(logs_dir, exist_ok=True)

    file_handler = RotatingFileHandler(
        filename=os.path.join(logs_dir, f"{name}.log"),
        maxBytes=10 * 1024 * 1024,  # 10 MB
        backupCount=5,
        encoding="utf-8"
    )
    file_handler.setLevel(level)
    file_handler.setFormatter(formatter)
    logger.addHandler(file_handler)

    return logger


# Default logger instance
logger = setup_logger()
