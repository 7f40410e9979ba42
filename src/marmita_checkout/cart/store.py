"""Client-held shopping cart with write-through persistence."""

from __future__ import annotations

import json
from decimal import Decimal
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Protocol

from ..errors import InvalidQuantityError
from ..utils.logging import get_logger
from ..utils.money import ZERO
from .models import LineItem

logger = get_logger(__name__)

CART_KEY = "cart"


class CartStorage(Protocol):
    """Key-value store scoped to one browsing session."""

    def get(self, key: str) -> Optional[str]:
        ...

    def set(self, key: str, value: str) -> None:
        ...


class MemoryCartStorage:
    def __init__(self, initial: Optional[Dict[str, str]] = None) -> None:
        self._data: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value


class JsonFileCartStorage:
    """Keeps every key in one JSON object on disk."""

    def __init__(self, path: str) -> None:
        self.path = Path(path)

    def _read_all(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        with self.path.open("r", encoding="utf-8") as handle:
            data = json.load(handle)
        if not isinstance(data, dict):
            raise ValueError(f"{self.path} does not hold a key-value object")
        return data

    def get(self, key: str) -> Optional[str]:
        return self._read_all().get(key)

    def set(self, key: str, value: str) -> None:
        try:
            data = self._read_all()
        except ValueError as e:
            logger.warning(f"Overwriting unreadable cart file {self.path}: {e}")
            data = {}
        data[key] = value
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        with tmp_path.open("w", encoding="utf-8") as handle:
            json.dump(data, handle, ensure_ascii=False, indent=2)
        tmp_path.replace(self.path)


class CartStore:
    """Ordered cart lines keyed by identity key.

    Every mutation is serialized to ``storage`` under the ``"cart"`` key.
    Use :meth:`load` to rehydrate from a previous session.
    """

    def __init__(self, storage: Optional[CartStorage] = None) -> None:
        self._storage = storage if storage is not None else MemoryCartStorage()
        self._lines: Dict[str, LineItem] = {}

    @classmethod
    def load(cls, storage: CartStorage) -> "CartStore":
        store = cls(storage)
        try:
            raw = storage.get(CART_KEY)
            records = json.loads(raw) if raw else []
        except (ValueError, TypeError) as e:
            logger.warning(f"Persisted cart is unreadable ({e}); starting with an empty cart")
            return store

        migrated = 0
        for record in records if isinstance(records, list) else []:
            if not isinstance(record, dict):
                logger.warning(f"Dropping unreadable cart line {record!r}")
                continue
            try:
                item = LineItem.from_dict(record)
            except (ValueError, TypeError, ArithmeticError) as e:
                logger.warning(f"Dropping unreadable cart line {record!r}: {e}")
                continue
            if not record.get("identityKey"):
                migrated += 1
            existing = store._lines.get(item.identity_key)
            if existing is not None:
                # Legacy carts keyed by product id alone may hold duplicates
                item = existing.with_quantity(existing.quantity + item.quantity)
            store._lines[item.identity_key] = item

        if migrated:
            logger.info(f"Migrated {migrated} legacy cart line(s) to identity keys")
            store._persist()
        logger.debug(f"Loaded cart with {len(store._lines)} line(s)")
        return store

    def _persist(self) -> None:
        payload = json.dumps([item.to_dict() for item in self._lines.values()], ensure_ascii=False)
        self._storage.set(CART_KEY, payload)

    @property
    def items(self) -> List[LineItem]:
        return list(self._lines.values())

    @property
    def total(self) -> Decimal:
        return sum((item.line_total for item in self._lines.values()), ZERO)

    @property
    def item_count(self) -> int:
        return sum(item.quantity for item in self._lines.values())

    def __len__(self) -> int:
        return len(self._lines)

    def __iter__(self) -> Iterator[LineItem]:
        return iter(self.items)

    def __contains__(self, identity_key: str) -> bool:
        return identity_key in self._lines

    def get(self, identity_key: str) -> Optional[LineItem]:
        return self._lines.get(identity_key)

    def add_item(self, item: LineItem, quantity: int = 1) -> LineItem:
        if quantity < 1:
            raise InvalidQuantityError(quantity)

        existing = self._lines.get(item.identity_key)
        if existing is not None:
            line = existing.with_quantity(existing.quantity + quantity)
        else:
            line = item.with_quantity(quantity)
        self._lines[item.identity_key] = line
        self._persist()
        logger.debug(f"Cart line {line.identity_key} now at quantity {line.quantity}")
        return line

    def remove_item(self, identity_key: str) -> None:
        if self._lines.pop(identity_key, None) is not None:
            self._persist()

    def update_quantity(self, identity_key: str, quantity: int) -> Optional[LineItem]:
        """Set a line's quantity. Zero is kept as a line pending removal."""
        if quantity < 0:
            raise InvalidQuantityError(quantity, minimum=0)
        existing = self._lines.get(identity_key)
        if existing is None:
            return None
        line = existing.with_quantity(quantity)
        self._lines[identity_key] = line
        self._persist()
        return line

    def clear_cart(self) -> None:
        self._lines.clear()
        self._persist()

    def replace_items(self, items: List[LineItem]) -> None:
        """Swap the whole cart contents, merging lines that share a key."""
        self._lines.clear()
        for item in items:
            existing = self._lines.get(item.identity_key)
            if existing is not None:
                item = existing.with_quantity(existing.quantity + item.quantity)
            self._lines[item.identity_key] = item
        self._persist()
