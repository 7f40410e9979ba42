"""Rebuild a fresh cart from a past order at today's prices."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional

from ..cart.models import LineItem
from ..cart.store import CartStore
from ..utils.logging import get_logger
from .availability import AvailabilityChecker, ItemAvailability, UnavailableReason
from .models import Address, Order
from .pricing import (
    PriceChange,
    PricingBreakdown,
    PricingCalculator,
    PricingDelta,
    compute_delta,
    price_changes,
)

logger = get_logger(__name__)


@dataclass(frozen=True)
class ReorderResult:
    available: List[LineItem]
    unavailable: List[ItemAvailability]
    pricing: PricingBreakdown
    delta: PricingDelta
    price_changes: List[PriceChange] = field(default_factory=list)

    @property
    def can_order(self) -> bool:
        return bool(self.available)

    def load_into(self, cart: CartStore) -> None:
        """Replace ``cart`` contents with the still-orderable lines."""
        cart.replace_items(self.available)


class ReorderPipeline:
    def __init__(self, checker: AvailabilityChecker, pricing: PricingCalculator) -> None:
        self.checker = checker
        self.pricing = pricing

    async def rebuild_from_order(
        self, order: Order, address: Optional[Address] = None
    ) -> ReorderResult:
        """Check a historical order's lines and reprice what can still be ordered.

        Historical prices are never reused: each available line takes the
        product's current price and title.
        """
        historical = [item for item in order.items if item.quantity > 0]
        logger.info(f"Rebuilding order {order.id} with {len(historical)} line(s)")

        report = await self.checker.check_availability(historical)

        current: List[LineItem] = []
        unavailable = report.unavailable
        for item in report.available:
            product = report.product_for(item)
            if product is None or product.price is None:
                logger.warning(f"Product {item.product_id} has no current price")
                unavailable.append(
                    ItemAvailability(
                        item=item, product=product, reason=UnavailableReason.CHECK_FAILED
                    )
                )
                continue
            current.append(
                LineItem(
                    product_id=item.product_id,
                    title=product.title or item.title,
                    unit_price=product.price,
                    quantity=item.quantity,
                    image_ref=product.image_ref or item.image_ref,
                    notes=item.notes,
                )
            )

        changes = price_changes(historical, current)
        for change in changes:
            logger.info(
                f"Price of product {change.item.product_id} changed "
                f"from {change.old_price} to {change.new_price}"
            )

        pricing = await self.pricing.quote(current, address)
        # Relative to the amounts charged on the original order
        delta = compute_delta(PricingBreakdown(order.subtotal, order.delivery_fee), pricing)
        return ReorderResult(
            available=current,
            unavailable=unavailable,
            pricing=pricing,
            delta=delta,
            price_changes=changes,
        )
