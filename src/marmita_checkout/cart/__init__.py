"""Cart module: line identity, line items and the persisted cart store."""

from .identity import compute_identity
from .models import LineItem, PLACEHOLDER_IMAGE
from .store import CART_KEY, CartStore, JsonFileCartStorage, MemoryCartStorage

__all__ = [
    "compute_identity",
    "LineItem",
    "PLACEHOLDER_IMAGE",
    "CART_KEY",
    "CartStore",
    "JsonFileCartStorage",
    "MemoryCartStorage",
]
