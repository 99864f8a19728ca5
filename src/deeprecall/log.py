"""Logging setup for the command line entry point."""

import logging
from typing import Optional

LOG_FORMAT = '%(asctime)s | %(levelname)s | %(name)s | %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


def setup_logging(level: str = "info", log_file: Optional[str] = None) -> logging.Logger:
    """
    Configure the "deeprecall" logger hierarchy.

    Components never configure logging themselves; they either receive a
    logger from their caller or use logging.getLogger(__name__).

    Args:
        level: Level name such as "debug" or "info" (unknown names fall back to info)
        log_file: Optional file that receives the same records as stderr

    Returns:
        The configured package logger
    """
    logger = logging.getLogger("deeprecall")
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    logger.propagate = False

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(formatter)
    logger.addHandler(stream_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file, mode='a', encoding='utf-8')
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger
