"""
Configuration utilities for the marmita checkout pipeline.
"""

import os
import re
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Tuple

from dotenv import load_dotenv


def _parse_bool(raw: str) -> bool:
    return raw.strip().lower() in ("true", "1", "yes", "on")


def _parse_positive_float(raw: str) -> float:
    value = float(raw)
    if value <= 0:
        raise ValueError(f"expected a positive number, got {raw!r}")
    return value


def _parse_fee(raw: str) -> Decimal:
    try:
        value = Decimal(raw)
    except InvalidOperation:
        raise ValueError(f"invalid amount {raw!r}") from None
    if not value.is_finite() or value < 0:
        raise ValueError(f"invalid amount {raw!r}")
    return value


# key -> (environment variable, parser, default)
SETTINGS: Dict[str, Tuple[str, Callable[[str], Any], Any]] = {
    "log_level": ("LOG_LEVEL", str, "INFO"),
    "mongo_url": ("DB_CONNECTION_URL", str, ""),
    "mongo_db": ("DB_NAME", str, "MARMITAS"),
    "use_transactions": ("MONGO_TRANSACTIONS", _parse_bool, True),
    "fallback_delivery_fee": ("FALLBACK_DELIVERY_FEE", _parse_fee, Decimal("5.90")),
    "lookup_timeout": ("LOOKUP_TIMEOUT_SECONDS", _parse_positive_float, 5.0),
    "cart_file": ("CART_FILE", str, ".cart.json"),
}


class Config:
    """Checkout settings read from the environment.

    Without an ``env_file`` every key keeps its default, so tests and
    library callers never pick up the developer's shell by accident.
    Malformed values also fall back to the default.
    """

    def __init__(self, env_file: Optional[str] = None) -> None:
        self.env_file = env_file
        if env_file and Path(env_file).exists():
            load_dotenv(Path(env_file))
        self._config = {key: self._read(key) for key in SETTINGS}

    def _read(self, key: str) -> Any:
        env_var, parse, default = SETTINGS[key]
        if self.env_file is None:
            return default
        raw = os.getenv(env_var)
        if raw is None or raw == "":
            return default
        try:
            return parse(raw)
        except ValueError:
            return default

    def get(self, key: str, default: Any = None) -> Any:
        return self._config.get(key, default)

    def __getitem__(self, key: str) -> Any:
        return self._config[key]

    def __contains__(self, key: str) -> bool:
        return key in self._config

    def __repr__(self) -> str:
        shown = dict(self._config)
        # Hide credentials embedded in the connection string
        shown["mongo_url"] = re.sub(r"//[^@/]*@", "//***@", shown["mongo_url"])
        return f"Config({shown!r})"
