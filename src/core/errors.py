# error taxonomy shared by the cart/order core and the screens

from decimal import Decimal
from typing import Optional


class ShopError(Exception):
    """Base class for every error surfaced to the user by the core."""


class ValidationError(ShopError):
    """
    User-correctable, field-scoped input error.
    `field` names the offending input ("name", "phone", "address", "cart", ...).
    """

    def __init__(self, field: str, message: str):
        super().__init__(message)
        self.field = field
        self.message = message


class MinimumOrderNotMetError(ShopError):
    """Subtotal is below the classification's minimum order value."""

    def __init__(self, shortfall: Decimal, threshold: Decimal):
        super().__init__(
            f"Minimum order value is {threshold}. Add {shortfall} more to continue."
        )
        self.shortfall = shortfall
        self.threshold = threshold


class PersistenceError(ShopError):
    """
    Order or order-item write failed.
    When the order row was committed but its items were not, `order_number`
    names the partially written order.
    """

    def __init__(self, message: str, order_number: Optional[str] = None):
        super().__init__(message)
        self.order_number = order_number


class WalletDeductionError(ShopError):
    """Non-blocking: the order is placed but the wallet debit did not go through."""


class NetworkError(ShopError):
    """Catch-all for a failed call to an external collaborator."""
