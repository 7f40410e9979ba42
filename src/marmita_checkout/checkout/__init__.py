"""Checkout module entry point: availability, customization, pricing, submission and reorder."""

from .availability import AvailabilityChecker, AvailabilityReport, ItemAvailability, UnavailableReason
from .customization import (
    Activated,
    KeptDefault,
    SubstitutionGroup,
    Uninitialized,
    activate,
    customize_notes,
    load_substitution_groups,
    validate,
)
from .models import Address, DeliveryArea, Order, PaymentMethod, ProductState
from .pricing import PricingBreakdown, PricingCalculator, compute_subtotal, compute_total
from .reorder import ReorderPipeline, ReorderResult
from .repository import AsyncStorefront, StorefrontRepository
from .submission import (
    CheckoutPipeline,
    OrderAssembler,
    OrderDraft,
    OrderSubmitter,
    enabled_payment_methods,
    proceed_with_available,
)

__all__ = [
    "AvailabilityChecker",
    "AvailabilityReport",
    "ItemAvailability",
    "UnavailableReason",
    "Activated",
    "KeptDefault",
    "SubstitutionGroup",
    "Uninitialized",
    "activate",
    "customize_notes",
    "load_substitution_groups",
    "validate",
    "Address",
    "DeliveryArea",
    "Order",
    "PaymentMethod",
    "ProductState",
    "PricingBreakdown",
    "PricingCalculator",
    "compute_subtotal",
    "compute_total",
    "ReorderPipeline",
    "ReorderResult",
    "AsyncStorefront",
    "StorefrontRepository",
    "CheckoutPipeline",
    "OrderAssembler",
    "OrderDraft",
    "OrderSubmitter",
    "enabled_payment_methods",
    "proceed_with_available",
]
