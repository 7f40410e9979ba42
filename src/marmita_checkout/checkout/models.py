"""Records exchanged with the storefront backend and the protocols it fulfils."""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Optional, Protocol

from ..cart.identity import ProductId
from ..cart.models import LineItem
from ..utils.money import to_decimal


@dataclass(frozen=True)
class ProductState:
    """Live product row as seen by the availability check."""

    id: ProductId
    stock: int
    is_active: bool
    price: Optional[Decimal] = None
    title: Optional[str] = None
    image_ref: Optional[str] = None

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "ProductState":
        price = doc.get("price")
        images = doc.get("images") or []
        return cls(
            id=doc.get("id", doc.get("_id")),
            stock=int(doc.get("stock", 0)),
            is_active=bool(doc.get("is_active", False)),
            price=to_decimal(price) if price is not None else None,
            title=doc.get("title"),
            image_ref=images[0] if images else None,
        )


@dataclass(frozen=True)
class Address:
    id: str
    state: str
    city: str
    neighborhood: str
    street: str = ""
    number: str = ""
    postal_code: str = ""

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "Address":
        return cls(
            id=str(doc.get("id", doc.get("_id"))),
            state=doc.get("state", ""),
            city=doc.get("city", ""),
            neighborhood=doc.get("neighborhood", ""),
            street=doc.get("street", ""),
            number=str(doc.get("number", "")),
            postal_code=doc.get("postal_code", ""),
        )


@dataclass(frozen=True)
class DeliveryArea:
    """Delivery-area row. ``fixed`` areas price a whole city, ``variable`` ones a neighborhood."""

    name: str
    type: str
    state: str
    city: str
    neighborhood: str
    price: Decimal
    is_active: bool = True

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "DeliveryArea":
        return cls(
            name=doc.get("name", ""),
            type=doc.get("type", "variable"),
            state=doc.get("state", ""),
            city=doc.get("city", ""),
            neighborhood=doc.get("neighborhood", "") or "",
            price=to_decimal(doc.get("price", 0)),
            is_active=bool(doc.get("is_active", True)),
        )


@dataclass(frozen=True)
class PaymentMethod:
    key: str
    title: str
    enabled: bool
    description: str = ""


@dataclass(frozen=True)
class Order:
    """Persisted order header."""

    id: str
    user_id: str
    address_id: str
    payment_method: str
    subtotal: Decimal
    delivery_fee: Decimal
    total: Decimal
    status: str = "pending"
    items: List[LineItem] = field(default_factory=list)


class ProductLookup(Protocol):
    async def get_product(self, product_id: ProductId) -> Optional[ProductState]:
        ...


class DeliveryAreaSource(Protocol):
    async def get_delivery_areas(self) -> List[DeliveryArea]:
        ...


class OrderWriter(Protocol):
    async def create_order(self, header: Dict[str, Any], rows: List[Dict[str, Any]]) -> str:
        """Write header and rows atomically and return the new order id."""
        ...


class OrderHistory(Protocol):
    async def get_order(self, order_id: str) -> Optional[Order]:
        ...
