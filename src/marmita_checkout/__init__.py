"""
Marmita Checkout - order assembly pipeline for the meal-delivery storefront

Turns a client-held cart, or a past order, into a validated, priced order
written to the MongoDB-backed storefront database.
"""

__version__ = "0.1.0"

from . import cart
from . import checkout
from . import utils

__all__ = ["cart", "checkout", "utils"]
