"""Reconcile cart lines against live product state.

One lookup is spawned per line and all of them are joined; a failed or
slow lookup marks only its own line as ``CheckFailed``.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List, Optional

from ..cart.models import LineItem
from ..utils.logging import get_logger
from .models import ProductLookup, ProductState

logger = get_logger(__name__)

DEFAULT_LOOKUP_TIMEOUT = 5.0


class UnavailableReason(Enum):
    NOT_FOUND = "NotFound"
    INACTIVE = "Inactive"
    INSUFFICIENT_STOCK = "InsufficientStock"
    CHECK_FAILED = "CheckFailed"


@dataclass(frozen=True)
class ItemAvailability:
    """Outcome of one line's check. ``reason`` is ``None`` when available."""

    item: LineItem
    product: Optional[ProductState] = None
    reason: Optional[UnavailableReason] = None
    observed_stock: Optional[int] = None

    @property
    def is_available(self) -> bool:
        return self.reason is None

    @property
    def message(self) -> str:
        if self.reason is None:
            return ""
        if self.reason is UnavailableReason.NOT_FOUND:
            return "Product not found"
        if self.reason is UnavailableReason.INACTIVE:
            return "Product is no longer offered"
        if self.reason is UnavailableReason.INSUFFICIENT_STOCK:
            return (
                f"Insufficient stock (required: {self.item.quantity}, "
                f"available: {self.observed_stock})"
            )
        return "Could not check availability, please try again"


@dataclass(frozen=True)
class AvailabilityReport:
    results: List[ItemAvailability]

    @property
    def available(self) -> List[LineItem]:
        return [r.item for r in self.results if r.is_available]

    @property
    def unavailable(self) -> List[ItemAvailability]:
        return [r for r in self.results if not r.is_available]

    @property
    def all_available(self) -> bool:
        return all(r.is_available for r in self.results)

    def product_for(self, item: LineItem) -> Optional[ProductState]:
        for result in self.results:
            if result.item.identity_key == item.identity_key:
                return result.product
        return None


class AvailabilityChecker:
    def __init__(self, products: ProductLookup, timeout: float = DEFAULT_LOOKUP_TIMEOUT) -> None:
        self.products = products
        self.timeout = timeout

    async def check_availability(self, items: Iterable[LineItem]) -> AvailabilityReport:
        """Partition ``items`` into available and unavailable lines.

        Never raises for per-item problems; the report always holds one
        result per input line, in input order.
        """
        items = list(items)
        if not items:
            return AvailabilityReport(results=[])

        logger.info(f"Checking availability for {len(items)} line(s)")
        results = await asyncio.gather(*(self._check_item(item) for item in items))

        report = AvailabilityReport(results=list(results))
        logger.info(
            f"Availability: {len(report.available)} available, "
            f"{len(report.unavailable)} unavailable"
        )
        return report

    async def _check_item(self, item: LineItem) -> ItemAvailability:
        try:
            product = await asyncio.wait_for(
                self.products.get_product(item.product_id), timeout=self.timeout
            )
        except asyncio.TimeoutError:
            logger.warning(
                f"Availability lookup for product {item.product_id} timed out after {self.timeout}s"
            )
            return ItemAvailability(item=item, reason=UnavailableReason.CHECK_FAILED)
        except Exception as e:
            logger.warning(f"Availability lookup for product {item.product_id} failed: {e}")
            return ItemAvailability(item=item, reason=UnavailableReason.CHECK_FAILED)

        result = evaluate(item, product)
        if result.is_available:
            logger.debug(f"Product {item.product_id} available (stock {product.stock})")
        else:
            logger.warning(f"Product {item.product_id} unavailable: {result.message}")
        return result


def evaluate(item: LineItem, product: Optional[ProductState]) -> ItemAvailability:
    """Apply the not-found, inactive and stock rules, in that order."""
    if product is None:
        return ItemAvailability(item=item, reason=UnavailableReason.NOT_FOUND)
    if not product.is_active:
        return ItemAvailability(
            item=item,
            product=product,
            reason=UnavailableReason.INACTIVE,
            observed_stock=product.stock,
        )
    if product.stock < item.quantity:
        return ItemAvailability(
            item=item,
            product=product,
            reason=UnavailableReason.INSUFFICIENT_STOCK,
            observed_stock=product.stock,
        )
    return ItemAvailability(item=item, product=product, observed_stock=product.stock)
