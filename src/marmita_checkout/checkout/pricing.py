"""Subtotal, delivery fee and total computation."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, List, Optional

from ..cart.models import LineItem
from ..errors import ResolutionError
from ..utils.logging import get_logger
from ..utils.money import ZERO, format_price, round_cents, to_decimal
from .models import Address, DeliveryArea, DeliveryAreaSource

logger = get_logger(__name__)

DEFAULT_FALLBACK_FEE = Decimal("5.90")


@dataclass(frozen=True)
class PricingBreakdown:
    subtotal: Decimal
    delivery_fee: Optional[Decimal]

    @property
    def total(self) -> Optional[Decimal]:
        """``None`` until the delivery fee is resolved."""
        return compute_total(self.subtotal, self.delivery_fee)

    @property
    def is_final(self) -> bool:
        return self.delivery_fee is not None

    def require_final(self) -> Decimal:
        if self.delivery_fee is None:
            raise ResolutionError(
                "Delivery fee has not been calculated for this address yet"
            )
        return self.subtotal + self.delivery_fee

    def describe(self) -> List[str]:
        fee = format_price(self.delivery_fee) if self.delivery_fee is not None else "pending"
        total = format_price(self.total) if self.total is not None else "pending"
        return [
            f"Subtotal: {format_price(self.subtotal)}",
            f"Delivery fee: {fee}",
            f"Total: {total}",
        ]


@dataclass(frozen=True)
class PricingDelta:
    subtotal: Decimal
    delivery_fee: Optional[Decimal]
    total: Optional[Decimal]


@dataclass(frozen=True)
class PriceChange:
    item: LineItem
    old_price: Decimal
    new_price: Decimal

    @property
    def difference(self) -> Decimal:
        return self.new_price - self.old_price


def compute_subtotal(items: Iterable[LineItem]) -> Decimal:
    """Exact sum of unit price times quantity; no intermediate rounding."""
    return sum((item.unit_price * item.quantity for item in items), ZERO)


def compute_total(subtotal: Decimal, delivery_fee: Optional[Decimal]) -> Optional[Decimal]:
    if delivery_fee is None:
        return None
    return to_decimal(subtotal) + to_decimal(delivery_fee)


def compute_delta(before: PricingBreakdown, after: PricingBreakdown) -> PricingDelta:
    """``after - before`` for each component; unresolved fees yield ``None``."""
    fee_delta = None
    if before.delivery_fee is not None and after.delivery_fee is not None:
        fee_delta = after.delivery_fee - before.delivery_fee
    total_delta = None
    if before.total is not None and after.total is not None:
        total_delta = after.total - before.total
    return PricingDelta(after.subtotal - before.subtotal, fee_delta, total_delta)


def price_changes(historical: Iterable[LineItem], current: Iterable[LineItem]) -> List[PriceChange]:
    """Lines whose unit price differs between two snapshots of the same items."""
    old_prices = {item.identity_key: item.unit_price for item in historical}
    changes = []
    for item in current:
        old = old_prices.get(item.identity_key)
        if old is not None and old != item.unit_price:
            changes.append(PriceChange(item, old, item.unit_price))
    return changes


def _same(a: str, b: str) -> bool:
    return (a or "").strip().lower() == (b or "").strip().lower()


def match_delivery_area(address: Address, areas: Iterable[DeliveryArea]) -> Optional[DeliveryArea]:
    """Pick the area pricing ``address``.

    A neighborhood-level (``variable``) match wins over a city-level
    (``fixed``) one. Inactive areas never match.
    """
    active = [area for area in areas if area.is_active]
    for area in active:
        if (
            area.type == "variable"
            and _same(area.state, address.state)
            and _same(area.city, address.city)
            and _same(area.neighborhood, address.neighborhood)
        ):
            return area
    for area in active:
        if area.type == "fixed" and _same(area.state, address.state) and _same(area.city, address.city):
            return area
    return None


class PricingCalculator:
    def __init__(
        self,
        areas: DeliveryAreaSource,
        fallback_fee: Decimal = DEFAULT_FALLBACK_FEE,
        timeout: float = 5.0,
    ) -> None:
        self.areas = areas
        self.fallback_fee = to_decimal(fallback_fee)
        self.timeout = timeout

    compute_subtotal = staticmethod(compute_subtotal)
    compute_total = staticmethod(compute_total)

    async def resolve_delivery_fee(self, address: Address) -> Optional[Decimal]:
        """Delivery fee for ``address``.

        Returns the fallback fee when no area matches and ``None`` when the
        area table could not be read, so the total stays pending.
        """
        try:
            areas = await asyncio.wait_for(self.areas.get_delivery_areas(), timeout=self.timeout)
        except Exception as e:
            logger.error(f"Could not load delivery areas for {address.city}/{address.neighborhood}: {e}")
            return None

        area = match_delivery_area(address, areas)
        if area is None:
            logger.warning(
                f"No delivery area for {address.neighborhood} - {address.city}/{address.state}; "
                f"using fallback fee {self.fallback_fee}"
            )
            return self.fallback_fee
        logger.info(f"Delivery area '{area.name}' ({area.type}) fee {area.price}")
        return area.price

    async def quote(self, items: Iterable[LineItem], address: Optional[Address]) -> PricingBreakdown:
        items = list(items)
        subtotal = compute_subtotal(items)
        fee = await self.resolve_delivery_fee(address) if address is not None else None
        return PricingBreakdown(subtotal=subtotal, delivery_fee=fee)


def order_amounts(pricing: PricingBreakdown) -> dict:
    """Rounded amounts for the order header."""
    total = pricing.require_final()
    return {
        "subtotal": round_cents(pricing.subtotal),
        "delivery_fee": round_cents(pricing.delivery_fee),
        "total": round_cents(total),
    }
