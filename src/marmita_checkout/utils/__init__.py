"""
Utilities Module

This module contains shared utilities and helper functions.
"""

from .config import Config
from .logging import setup_logging
from .money import format_price, to_decimal

__all__ = ["Config", "setup_logging", "format_price", "to_decimal"]
