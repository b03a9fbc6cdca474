from decimal import Decimal
from typing import Literal, Optional, Protocol

Classification = Literal["retail", "dealer"]

RETAIL: Classification = "retail"
DEALER: Classification = "dealer"
CLASSIFICATIONS = (RETAIL, DEALER)


class PricedProduct(Protocol):
    retail_price: Decimal
    wholesale_price: Decimal


def resolve_unit_price(
    product: PricedProduct, classification: Optional[str]
) -> Decimal:
    """
    Unit price a user of the given classification pays for `product`.

    Dealers pay the wholesale price; retail customers and guests (None) pay
    the retail price. There is no quantity-based tiering.
    """
    if classification == DEALER:
        return product.wholesale_price
    return product.retail_price


def is_verified_dealer(classification: Optional[str], verified: bool) -> bool:
    return classification == DEALER and bool(verified)


def is_pending_dealer(classification: Optional[str], verified: bool) -> bool:
    """A dealer account still waiting on admin verification."""
    return classification == DEALER and not verified
