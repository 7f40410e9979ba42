"""
Command-line interface for the marmita checkout pipeline.
"""

import argparse
import asyncio
import sys
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

from . import __version__
from .cart.models import LineItem
from .cart.store import CartStore, JsonFileCartStorage
from .checkout.availability import AvailabilityChecker, AvailabilityReport
from .checkout.customization import (
    CustomizationState,
    KeptDefault,
    Uninitialized,
    activate,
    customize_notes,
    load_substitution_groups,
)
from .checkout.models import Address
from .checkout.pricing import PricingCalculator
from .checkout.reorder import ReorderPipeline
from .checkout.repository import AsyncStorefront, StorefrontRepository
from .checkout.submission import (
    DEFAULT_CHECKOUT_TERMS,
    CheckoutPipeline,
    OrderAssembler,
    OrderSubmitter,
    enabled_payment_methods,
)
from .errors import CheckoutError, InputError, ResolutionError
from .utils.config import Config
from .utils.logging import setup_logging
from .utils.money import format_price


def create_parser() -> argparse.ArgumentParser:
    """Create and configure the argument parser."""
    parser = argparse.ArgumentParser(
        description="Marmita Checkout - order assembly for the meal-delivery storefront",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  marmita-checkout add-item --product-id 12 --quantity 2 --substitute 3=7
  marmita-checkout check-cart --cart-file .cart.json
  marmita-checkout quote --cart-file .cart.json --address-id addr-1
  marmita-checkout checkout --cart-file .cart.json --user-id u-1 --address-id addr-1 --payment-method pix
  marmita-checkout reorder --order-id 665f1c2e9b1e8a0012345678 --address-id addr-1
        """,
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"Marmita Checkout {__version__}",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose logging",
    )
    parser.add_argument(
        "--log-file",
        help="Log file path",
    )
    parser.add_argument(
        "--env-file",
        default=".env",
        help="Environment file with database settings (default: .env)",
    )

    subparsers = parser.add_subparsers(
        dest="command",
        help="Available commands",
    )

    add_parser = subparsers.add_parser(
        "add-item",
        help="Add a product to the persisted cart, with optional food substitutions",
    )
    add_parser.add_argument("--cart-file", help="Cart storage file (default: CART_FILE)")
    add_parser.add_argument("--product-id", type=int, required=True, help="Product ID")
    add_parser.add_argument("--quantity", type=int, default=1, help="Quantity (default: 1)")
    add_parser.add_argument("--notes", help="Free-text note for the kitchen")
    choice = add_parser.add_mutually_exclusive_group()
    choice.add_argument(
        "--keep-default",
        action="store_true",
        help="Keep every default food of a customizable meal",
    )
    choice.add_argument(
        "--substitute",
        action="append",
        metavar="DEFAULT_ID=FOOD_ID",
        help="Swap a default food for an alternative (repeatable)",
    )

    check_parser = subparsers.add_parser(
        "check-cart",
        help="Check the persisted cart against live stock",
    )
    check_parser.add_argument("--cart-file", help="Cart storage file (default: CART_FILE)")

    quote_parser = subparsers.add_parser(
        "quote",
        help="Price the persisted cart for a delivery address",
    )
    quote_parser.add_argument("--cart-file", help="Cart storage file (default: CART_FILE)")
    quote_parser.add_argument("--address-id", required=True, help="Saved address ID")

    checkout_parser = subparsers.add_parser(
        "checkout",
        help="Validate, price and submit the persisted cart",
    )
    checkout_parser.add_argument("--cart-file", help="Cart storage file (default: CART_FILE)")
    checkout_parser.add_argument("--user-id", required=True, help="Customer user ID")
    checkout_parser.add_argument("--address-id", required=True, help="Saved address ID")
    checkout_parser.add_argument("--payment-method", required=True, help="Payment method key, e.g. pix")
    checkout_parser.add_argument(
        "--proceed-with-available",
        action="store_true",
        help="Submit the available items when some are out of stock",
    )

    reorder_parser = subparsers.add_parser(
        "reorder",
        help="Rebuild a cart from a past order at current prices",
    )
    reorder_parser.add_argument("--order-id", required=True, help="ID of the past order")
    reorder_parser.add_argument("--address-id", help="Address to price delivery for")
    reorder_parser.add_argument("--cart-file", help="Write the rebuilt cart to this storage file")

    subparsers.add_parser(
        "payment-methods",
        help="List enabled payment methods and checkout terms",
    )

    return parser


def print_box(lines: List[Tuple[str, str]]) -> None:
    """Print label/value pairs inside a box."""
    label_width = max(len(lbl) for lbl, _ in lines)
    inner_width = max(len(f" {lbl.ljust(label_width)} : {val}") for lbl, val in lines)
    print("┌" + "─" * inner_width + "┐")
    for lbl, val in lines:
        line = f" {lbl.ljust(label_width)} : {val}"
        print(f"│{line + ' ' * (inner_width - len(line))}│")
    print("└" + "─" * inner_width + "┘")


def format_delta(value: Optional[Decimal]) -> str:
    if value is None:
        return "pending"
    return ("+" if value > 0 else "") + format_price(value)


def print_report(report: AvailabilityReport) -> None:
    if report.available:
        print("\nAVAILABLE:")
        print("=" * 60)
        for item in report.available:
            print(f"   ✅ {item.quantity}x {item.title}  {format_price(item.line_total)}")
            if item.notes:
                print(f"      Notes: {item.notes}")
    if report.unavailable:
        print("\nUNAVAILABLE:")
        print("=" * 60)
        for result in report.unavailable:
            print(f"   ❌ {result.item.quantity}x {result.item.title} - {result.message}")


class Services:
    """Pipeline components wired to one storefront connection."""

    def __init__(self, storefront: AsyncStorefront, config: Config) -> None:
        self.storefront = storefront
        timeout = config.get("lookup_timeout", 5.0)
        self.checker = AvailabilityChecker(storefront, timeout=timeout)
        self.pricing = PricingCalculator(
            storefront,
            fallback_fee=config.get("fallback_delivery_fee"),
            timeout=timeout,
        )
        self.assembler = OrderAssembler(self.pricing)
        self.submitter = OrderSubmitter(storefront, checker=self.checker)
        self.pipeline = CheckoutPipeline(self.checker, self.assembler, self.submitter)
        self.reorder = ReorderPipeline(self.checker, self.pricing)

    async def address(self, address_id: str) -> Address:
        address = await self.storefront.get_address(address_id)
        if address is None:
            raise ResolutionError(f"Address {address_id} not found", code="AddressNotFound")
        return address

    async def payment_methods(self):
        return enabled_payment_methods(await self.storefront.get_setting("payment_methods"))


def _open_cart(cart_file: Optional[str], config: Config) -> CartStore:
    return CartStore.load(JsonFileCartStorage(cart_file or config.get("cart_file")))


def _parse_substitutions(values: Optional[List[str]]) -> Dict[int, int]:
    substitutions = {}
    for value in values or []:
        default_id, _, food_id = value.partition("=")
        try:
            substitutions[int(default_id)] = int(food_id)
        except ValueError:
            raise InputError(
                f"Invalid substitution '{value}', expected DEFAULT_ID=FOOD_ID",
                code="InvalidSelection",
            ) from None
    return substitutions


async def add_item(
    services: Services,
    cart: CartStore,
    product_id: int,
    quantity: int,
    notes: Optional[str],
    keep_default: bool,
    substitutions: Dict[int, int],
) -> int:
    product = await services.storefront.get_product(product_id)
    if product is None or product.price is None:
        print(f"Product {product_id} not found")
        return 1

    rows = await services.storefront.get_substitution_rows(product_id)
    groups = load_substitution_groups(rows)

    if substitutions:
        if not groups:
            raise InputError(
                f"Product {product_id} does not offer food substitutions",
                code="InvalidSelection",
            )
        unknown = sorted(set(substitutions) - {group.group_id for group in groups})
        if unknown:
            raise InputError(
                f"Product {product_id} has no substitutable food {', '.join(map(str, unknown))}",
                code="InvalidSelection",
            )

    state: CustomizationState = Uninitialized()
    if keep_default:
        state = KeptDefault()
    elif substitutions:
        state = activate(groups)
        for group_id, food_id in substitutions.items():
            state = state.select(group_id, food_id)

    line_notes = customize_notes(state, groups, notes)
    line = cart.add_item(
        LineItem(
            product_id=product.id,
            title=product.title or "",
            unit_price=product.price,
            image_ref=product.image_ref or "",
            notes=line_notes,
        ),
        quantity,
    )
    print_box([
        ("Product", line.title),
        ("Quantity", str(line.quantity)),
        ("Notes", line.notes or "-"),
        ("Cart total", format_price(cart.total)),
    ])
    return 0


async def check_cart(services: Services, cart: CartStore) -> int:
    report = await services.checker.check_availability(cart.items)
    print_box([
        ("Lines", str(len(cart))),
        ("Items", str(cart.item_count)),
        ("Cart total", format_price(cart.total)),
    ])
    print_report(report)
    return 0 if report.all_available else 1


async def quote(services: Services, cart: CartStore, address_id: str) -> int:
    address = await services.address(address_id)
    pricing = await services.pricing.quote([i for i in cart.items if i.quantity > 0], address)
    print_box([
        ("Address", f"{address.neighborhood} - {address.city}/{address.state}"),
        ("Lines", str(len(cart))),
    ])
    print("\nPRICING:")
    print("=" * 60)
    for line in pricing.describe():
        print(f"   {line}")
    if not pricing.is_final:
        print("\n   ⚠️  Delivery fee is not resolved yet; total is not final.")
        return 1
    return 0


async def checkout(
    services: Services,
    cart: CartStore,
    user_id: str,
    address_id: str,
    payment_method: str,
    proceed_with_available: bool,
) -> int:
    address = await services.address(address_id)
    methods = await services.payment_methods()
    attempt = await services.pipeline.checkout(
        cart,
        user_id,
        address,
        payment_method,
        methods,
        proceed_with_available_items=proceed_with_available,
    )

    if attempt.order is None:
        print_report(attempt.report)
        if attempt.report.available:
            print("\n   Re-run with --proceed-with-available to order the available items.")
        return 1

    order = attempt.order
    print_box([
        ("Order ID", order.id),
        ("Status", order.status),
        ("Payment", order.payment_method),
        ("Subtotal", format_price(order.subtotal)),
        ("Delivery fee", format_price(order.delivery_fee)),
        ("Total", format_price(order.total)),
    ])
    if attempt.removed:
        print("\nLEFT OUT (unavailable):")
        for item in attempt.removed:
            print(f"   ❌ {item.quantity}x {item.title}")
    return 0


async def reorder(
    services: Services, order_id: str, address_id: Optional[str], cart_file: Optional[str]
) -> int:
    order = await services.storefront.get_order(order_id)
    if order is None:
        print(f"Order {order_id} not found")
        return 1
    address = await services.address(address_id) if address_id else None

    result = await services.reorder.rebuild_from_order(order, address)
    print_box([
        ("Order ID", order.id),
        ("Original total", format_price(order.total)),
        ("Reorderable lines", f"{len(result.available)} of {len(order.items)}"),
    ])
    for item in result.available:
        print(f"   ✅ {item.quantity}x {item.title}  {format_price(item.line_total)}")
    for unavailable in result.unavailable:
        print(f"   ❌ {unavailable.item.quantity}x {unavailable.item.title} - {unavailable.message}")
    if result.price_changes:
        print("\nPRICE CHANGES:")
        print("=" * 60)
        for change in result.price_changes:
            print(
                f"   {change.item.title}: {format_price(change.old_price)} → "
                f"{format_price(change.new_price)}"
            )
    print("\nPRICING:")
    print("=" * 60)
    for line in result.pricing.describe():
        print(f"   {line}")
    print("\nCHANGE SINCE ORIGINAL ORDER:")
    print("=" * 60)
    print(f"   Subtotal: {format_delta(result.delta.subtotal)}")
    print(f"   Delivery fee: {format_delta(result.delta.delivery_fee)}")
    print(f"   Total: {format_delta(result.delta.total)}")

    if cart_file and result.can_order:
        cart = CartStore.load(JsonFileCartStorage(cart_file))
        result.load_into(cart)
        print(f"\nCart written to {cart_file}")
    return 0 if result.can_order else 1


async def payment_methods(services: Services) -> int:
    methods = await services.payment_methods()
    terms = await services.storefront.get_setting("checkout_terms") or DEFAULT_CHECKOUT_TERMS
    print("\nPAYMENT METHODS:")
    print("=" * 60)
    if not methods:
        print("   No payment method is available right now.")
    for method in methods:
        print(f"   {method.key:<12} {method.title} - {method.description}")
    print("\nCHECKOUT TERMS:")
    print("=" * 60)
    for term in terms:
        print(f"   • {term}")
    return 0


async def run_command(parsed_args: argparse.Namespace, config: Config) -> int:
    with StorefrontRepository(config=config) as repository:
        services = Services(AsyncStorefront(repository), config)
        command = parsed_args.command

        if command == "add-item":
            return await add_item(
                services,
                _open_cart(parsed_args.cart_file, config),
                parsed_args.product_id,
                parsed_args.quantity,
                parsed_args.notes,
                parsed_args.keep_default,
                _parse_substitutions(parsed_args.substitute),
            )
        if command == "check-cart":
            return await check_cart(services, _open_cart(parsed_args.cart_file, config))
        if command == "quote":
            return await quote(
                services, _open_cart(parsed_args.cart_file, config), parsed_args.address_id
            )
        if command == "checkout":
            return await checkout(
                services,
                _open_cart(parsed_args.cart_file, config),
                parsed_args.user_id,
                parsed_args.address_id,
                parsed_args.payment_method,
                parsed_args.proceed_with_available,
            )
        if command == "reorder":
            return await reorder(
                services, parsed_args.order_id, parsed_args.address_id, parsed_args.cart_file
            )
        if command == "payment-methods":
            return await payment_methods(services)
    return 1


def main(args: Optional[list] = None) -> int:
    """
    Main entry point for the CLI.

    Args:
        args: Command line arguments (defaults to sys.argv[1:])

    Returns:
        Exit code
    """
    parser = create_parser()
    parsed_args = parser.parse_args(args)

    config = Config(parsed_args.env_file)
    log_level = "DEBUG" if parsed_args.verbose else config.get("log_level", "INFO")
    logger = setup_logging(level=log_level, log_file=parsed_args.log_file)

    if not parsed_args.command:
        parser.print_help()
        return 1

    try:
        return asyncio.run(run_command(parsed_args, config))
    except CheckoutError as e:
        logger.error(f"{e.code}: {e.message}")
        print(f"\nError: {e.message}")
        return 1
    except Exception as e:
        logger.error(f"Error: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
