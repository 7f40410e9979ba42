"""Order assembly and submission.

The assembler turns validated line items, an address and a payment
method into an :class:`OrderDraft`; the submitter re-checks stock and
writes the header and its rows in one atomic operation.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from ..cart.models import LineItem
from ..cart.store import CartStore
from ..errors import InputError, StaleAvailabilityError, SubmissionError
from ..utils.logging import get_logger
from ..utils.money import round_cents
from .availability import AvailabilityChecker, AvailabilityReport
from .models import Address, Order, OrderWriter, PaymentMethod
from .pricing import PricingBreakdown, PricingCalculator, order_amounts

logger = get_logger(__name__)

DEFAULT_PAYMENT_METHODS: Dict[str, Dict[str, Any]] = {
    "pix": {"enabled": True, "title": "PIX", "description": "Pagamento instantâneo"},
    "credit_card": {
        "enabled": True,
        "title": "Cartão de Crédito",
        "description": "Pagamento com cartão",
    },
}

DEFAULT_CHECKOUT_TERMS = [
    "O prazo de entrega é de até 60 minutos",
    "Não aceitamos trocas ou devoluções após a entrega",
    "Em caso de problemas, entre em contato conosco",
]


def enabled_payment_methods(
    settings: Optional[Mapping[str, Mapping[str, Any]]] = None,
) -> List[PaymentMethod]:
    """Payment methods currently offered, in configuration order."""
    configured = settings if settings else DEFAULT_PAYMENT_METHODS
    methods = [
        PaymentMethod(
            key=key,
            title=value.get("title", key),
            enabled=bool(value.get("enabled", False)),
            description=value.get("description", ""),
        )
        for key, value in configured.items()
    ]
    return [method for method in methods if method.enabled]


@dataclass(frozen=True)
class OrderDraft:
    user_id: str
    address_id: str
    payment_method: str
    items: List[LineItem]
    pricing: PricingBreakdown

    def header(self) -> Dict[str, Any]:
        header = {
            "user_id": self.user_id,
            "address_id": self.address_id,
            "payment_method": self.payment_method,
            "status": "pending",
        }
        header.update(order_amounts(self.pricing))
        return header

    def rows(self) -> List[Dict[str, Any]]:
        return [
            {
                "product_id": item.product_id,
                "quantity": item.quantity,
                "price": round_cents(item.unit_price),
                "notes": item.notes,
            }
            for item in self.items
        ]


class OrderAssembler:
    def __init__(self, pricing: PricingCalculator) -> None:
        self.pricing = pricing

    async def assemble(
        self,
        user_id: str,
        items: List[LineItem],
        address: Address,
        payment_method: str,
        payment_methods: List[PaymentMethod],
    ) -> OrderDraft:
        """Build a draft with a resolved delivery fee.

        Lines sitting at quantity zero are left out of the order.

        Raises:
            InputError: empty order or payment method not enabled
            ResolutionError: delivery fee could not be resolved
        """
        lines = [item for item in items if item.quantity > 0]
        if not lines:
            raise InputError("Your cart is empty", code="EmptyOrder")

        if payment_method not in {method.key for method in payment_methods}:
            raise InputError(
                f"Payment method '{payment_method}' is not available",
                code="PaymentMethodUnavailable",
            )

        pricing = await self.pricing.quote(lines, address)
        pricing.require_final()
        logger.info(
            f"Assembled draft for user {user_id}: {len(lines)} line(s), total {pricing.total}"
        )
        return OrderDraft(
            user_id=user_id,
            address_id=address.id,
            payment_method=payment_method,
            items=lines,
            pricing=pricing,
        )


class OrderSubmitter:
    def __init__(self, writer: OrderWriter, checker: Optional[AvailabilityChecker] = None) -> None:
        self.writer = writer
        self.checker = checker

    async def submit(self, draft: OrderDraft, cart: Optional[CartStore] = None) -> Order:
        """Persist ``draft`` and clear ``cart`` on success.

        Raises:
            StaleAvailabilityError: the last-moment re-check found unavailable lines
            ResolutionError: the draft has no final total
            SubmissionError: the write failed; no order was left behind
        """
        header = draft.header()

        if self.checker is not None:
            report = await self.checker.check_availability(draft.items)
            if not report.all_available:
                logger.warning(
                    f"Re-check before submission found {len(report.unavailable)} unavailable line(s)"
                )
                raise StaleAvailabilityError(report)

        try:
            order_id = await self.writer.create_order(header, draft.rows())
        except SubmissionError:
            raise
        except Exception as e:
            logger.error(f"Order write failed for user {draft.user_id}: {e}")
            raise SubmissionError("Could not place your order. Please try again.") from e

        logger.info(f"Order {order_id} created with total {header['total']}")
        if cart is not None:
            cart.clear_cart()

        return Order(
            id=str(order_id),
            user_id=draft.user_id,
            address_id=draft.address_id,
            payment_method=draft.payment_method,
            subtotal=header["subtotal"],
            delivery_fee=header["delivery_fee"],
            total=header["total"],
            status=header["status"],
            items=list(draft.items),
        )


def proceed_with_available(cart: CartStore, report: AvailabilityReport) -> List[LineItem]:
    """Drop the unavailable lines from ``cart`` and return what is left."""
    for result in report.unavailable:
        cart.remove_item(result.item.identity_key)
    logger.info(f"Continuing with {len(cart)} available line(s)")
    return cart.items


@dataclass
class CheckoutAttempt:
    """What one run of the pipeline produced.

    ``order`` is set only when every line was available and the order was
    written; otherwise ``report`` explains which lines blocked it.
    """

    report: AvailabilityReport
    draft: Optional[OrderDraft] = None
    order: Optional[Order] = None
    removed: List[LineItem] = field(default_factory=list)


class CheckoutPipeline:
    """Cart → availability → pricing → assembly → submission."""

    def __init__(
        self,
        checker: AvailabilityChecker,
        assembler: OrderAssembler,
        submitter: OrderSubmitter,
    ) -> None:
        self.checker = checker
        self.assembler = assembler
        self.submitter = submitter

    async def checkout(
        self,
        cart: CartStore,
        user_id: str,
        address: Address,
        payment_method: str,
        payment_methods: List[PaymentMethod],
        proceed_with_available_items: bool = False,
    ) -> CheckoutAttempt:
        # The cart is only touched once the order is written, so an
        # abandoned or failed attempt leaves it exactly as it was.
        report = await self.checker.check_availability(cart.items)

        removed: List[LineItem] = []
        if not report.all_available:
            if not proceed_with_available_items or not report.available:
                return CheckoutAttempt(report=report)
            removed = [result.item for result in report.unavailable]

        draft = await self.assembler.assemble(
            user_id, report.available, address, payment_method, payment_methods
        )
        order = await self.submitter.submit(draft, cart=cart)
        return CheckoutAttempt(report=report, draft=draft, order=order, removed=removed)
