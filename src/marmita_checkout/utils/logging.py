"""
Logging utilities for the marmita checkout pipeline.
"""

import logging
import sys
from pathlib import Path
from typing import List, Optional

ROOT_LOGGER = "marmita_checkout"

DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s"

# Driver and event-loop chatter drowns the checkout trace below WARNING
QUIET_LOGGERS = ("pymongo", "asyncio")


def _handlers(level_num: int, formatter: logging.Formatter, log_file: Optional[str]) -> List[logging.Handler]:
    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_path, encoding="utf-8"))

    for handler in handlers:
        handler.setLevel(level_num)
        handler.setFormatter(formatter)
    return handlers


def setup_logging(
    level: Optional[str] = None,
    log_file: Optional[str] = None,
    format_string: Optional[str] = None,
) -> logging.Logger:
    """
    Configure the ``marmita_checkout`` logger tree for the CLI.

    Args:
        level: Logging level name; unknown names fall back to INFO
        log_file: Optional file that receives the same records as stdout
        format_string: Custom format string for log messages

    Returns:
        The package root logger
    """
    level_num = getattr(logging, (level or "INFO").upper(), logging.INFO)
    formatter = logging.Formatter(format_string or DEFAULT_FORMAT)

    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(level_num)
    for handler in logger.handlers:
        handler.close()
    logger.handlers.clear()
    for handler in _handlers(level_num, formatter, log_file):
        logger.addHandler(handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level_num, logging.WARNING))

    return logger


def get_logger(name: str) -> logging.Logger:
    """Child of the package root logger; accepts ``__name__`` or a bare module path."""
    prefix = f"{ROOT_LOGGER}."
    if name.startswith(prefix):
        name = name[len(prefix):]
    return logging.getLogger(prefix + name)
