"""Checkout error taxonomy.

Every error carries a user-facing ``message`` and a stable ``code`` so the
caller can show a toast and branch on the kind of failure.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from .checkout.availability import AvailabilityReport


class CheckoutError(Exception):
    """Base class for every failure surfaced by the checkout pipeline."""

    default_code = "CheckoutError"

    def __init__(self, message: str, code: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code

    def __str__(self) -> str:
        return self.message


class InputError(CheckoutError):
    """Recoverable input problem: quantities, customization, payment choice."""

    default_code = "InvalidInput"


class InvalidQuantityError(InputError):
    default_code = "InvalidQuantity"

    def __init__(self, quantity: int, minimum: int = 1) -> None:
        super().__init__(f"Quantity must be at least {minimum} (got {quantity})")
        self.quantity = quantity


class AvailabilityError(CheckoutError):
    """Items that cannot be ordered as requested."""

    default_code = "Unavailable"


class StaleAvailabilityError(AvailabilityError):
    """Raised when the re-check right before submission finds unavailable items.

    The report is attached so the caller can offer the available subset.
    """

    default_code = "StaleAvailability"

    def __init__(self, report: "AvailabilityReport") -> None:
        count = len(report.unavailable)
        noun = "item is" if count == 1 else "items are"
        super().__init__(f"{count} {noun} no longer available")
        self.report = report


class SubmissionError(CheckoutError):
    """The order could not be written; nothing was left behind."""

    default_code = "WriteFailed"


class ResolutionError(CheckoutError):
    """Delivery pricing is not final yet."""

    default_code = "DeliveryFeeUnresolved"
