"""Cart line item model."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from decimal import Decimal
from typing import Any, Dict, Optional

from ..utils.money import to_decimal
from .identity import ProductId, compute_identity

PLACEHOLDER_IMAGE = "/placeholder.svg"


@dataclass(frozen=True)
class LineItem:
    """One cart or order row: product, price snapshot, quantity and notes."""

    product_id: ProductId
    title: str
    unit_price: Decimal
    quantity: int = 1
    image_ref: str = PLACEHOLDER_IMAGE
    notes: Optional[str] = None
    identity_key: str = field(default="")

    def __post_init__(self) -> None:
        object.__setattr__(self, "unit_price", to_decimal(self.unit_price))
        if not self.image_ref:
            object.__setattr__(self, "image_ref", PLACEHOLDER_IMAGE)
        if not self.identity_key:
            object.__setattr__(
                self, "identity_key", compute_identity(self.product_id, self.notes)
            )

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity

    def with_quantity(self, quantity: int) -> "LineItem":
        return replace(self, quantity=quantity)

    def with_price(self, unit_price: Any) -> "LineItem":
        return replace(self, unit_price=to_decimal(unit_price))

    def to_dict(self) -> Dict[str, Any]:
        """Serialize for cart persistence. Prices are stored as strings."""
        return {
            "productId": self.product_id,
            "identityKey": self.identity_key,
            "title": self.title,
            "unitPrice": str(self.unit_price),
            "imageRef": self.image_ref,
            "quantity": self.quantity,
            "notes": self.notes,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LineItem":
        """Rebuild a line from a persisted record.

        Records written before identity keys existed use ``id``/``price``/
        ``image`` and carry no key; the key is recomputed from product and
        notes.
        """
        product_id = data.get("productId", data.get("id"))
        if product_id is None:
            raise ValueError("persisted cart line has no product id")
        price = data.get("unitPrice", data.get("price"))
        return cls(
            product_id=product_id,
            title=data.get("title", ""),
            unit_price=to_decimal(price),
            quantity=int(data.get("quantity", 1)),
            image_ref=data.get("imageRef", data.get("image")) or PLACEHOLDER_IMAGE,
            notes=data.get("notes") or None,
            identity_key=data.get("identityKey") or "",
        )
