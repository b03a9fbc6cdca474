"""
Order composition: validate customer details, total the cart, apply the
wallet, gate on minimum order value, then either persist the order or hand it
off as a WhatsApp message for manual confirmation.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import List, Optional, Sequence, Tuple
from urllib.parse import quote

import aiosqlite

import db.crud as crud
from core.cart import CartLineItem, CartStore
from core.errors import (
    MinimumOrderNotMetError,
    NetworkError,
    PersistenceError,
    ValidationError,
    WalletDeductionError,
)
from core.wallet import WalletLedger
from utils.logger import get_logger
from utils.pure import format_currency

_logger = get_logger(__name__)

_BACKEND_ERRORS = (aiosqlite.Error, OSError)

_DIVIDER = "━━━━━━━━━━━━━━━━"


@dataclass(frozen=True)
class CustomerDetails:
    name: str
    phone: str
    address: str
    notes: str = ""

    def cleaned(self) -> "CustomerDetails":
        return CustomerDetails(
            name=(self.name or "").strip(),
            phone=(self.phone or "").strip(),
            address=(self.address or "").strip(),
            notes=(self.notes or "").strip(),
        )

    def validate(self) -> None:
        """Raise ValidationError for the first required field left empty."""
        cleaned = self.cleaned()
        for field_name, label in (
            ("name", "Name"),
            ("phone", "Phone number"),
            ("address", "Delivery address"),
        ):
            if not getattr(cleaned, field_name):
                raise ValidationError(field_name, f"{label} is required.")


@dataclass(frozen=True)
class OrderTotals:
    total_items: int
    subtotal: Decimal
    total_mrp: Decimal
    savings: Decimal
    wallet_discount: Decimal
    final_amount: Decimal


@dataclass(frozen=True)
class OrderDraft:
    """Point-in-time copy of everything an order needs; nothing here is live."""

    items: Tuple[CartLineItem, ...]
    customer: CustomerDetails
    totals: OrderTotals


@dataclass(frozen=True)
class OrderReceipt:
    order_id: int
    order_number: str
    totals: OrderTotals
    wallet_warning: Optional[str] = None


def compute_wallet_discount(
    wallet_balance: Decimal, subtotal: Decimal, use_wallet: bool
) -> Decimal:
    if not use_wallet:
        return Decimal(0)
    balance = max(Decimal(wallet_balance), Decimal(0))
    subtotal = max(Decimal(subtotal), Decimal(0))
    return min(balance, subtotal)


def check_minimum_order(subtotal: Decimal, threshold: Decimal) -> None:
    if subtotal < threshold:
        raise MinimumOrderNotMetError(
            shortfall=Decimal(threshold) - Decimal(subtotal),
            threshold=Decimal(threshold),
        )


def compute_totals(
    items: Sequence[CartLineItem], wallet_discount: Decimal = Decimal(0)
) -> OrderTotals:
    subtotal = sum((i.line_total for i in items), Decimal(0))
    total_mrp = sum((i.line_mrp for i in items), Decimal(0))
    return OrderTotals(
        total_items=sum(i.quantity for i in items),
        subtotal=subtotal,
        total_mrp=total_mrp,
        savings=total_mrp - subtotal,
        wallet_discount=wallet_discount,
        final_amount=subtotal - wallet_discount,
    )


def prepare_order(
    items: Sequence[CartLineItem],
    customer: CustomerDetails,
    use_wallet: bool,
    wallet_balance: Decimal,
    minimum_order_value: Decimal,
) -> OrderDraft:
    """
    Run every local check and compute the totals. No network call is made.

    Order of checks: empty cart, required fields, minimum order value.
    """
    if not items:
        raise ValidationError("cart", "Your cart is empty.")
    customer.validate()

    subtotal = sum((i.line_total for i in items), Decimal(0))
    check_minimum_order(subtotal, minimum_order_value)

    discount = compute_wallet_discount(wallet_balance, subtotal, use_wallet)
    return OrderDraft(
        items=tuple(items),
        customer=customer.cleaned(),
        totals=compute_totals(items, discount),
    )


# ---------------------------
# WhatsApp handoff
# ---------------------------


def build_whatsapp_message(draft: OrderDraft, store_name: str) -> str:
    """Human-readable order estimate for manual confirmation over WhatsApp."""
    c = draft.customer
    t = draft.totals

    lines: List[str] = [
        f"🎆 *NEW ORDER ESTIMATE - {store_name.upper()}*",
        "",
        f"👤 *Customer:* {c.name}",
        f"📞 *Phone:* {c.phone}",
        f"📍 *Address:* {c.address}",
    ]
    if c.notes:
        lines.append(f"📝 *Notes:* {c.notes}")
    lines += ["", _DIVIDER, "📦 *ORDER DETAILS:*", ""]

    for idx, item in enumerate(draft.items, start=1):
        code = f" ({item.product_code})" if item.product_code else ""
        lines.append(f"{idx}. {item.name}{code}")
        lines.append(
            f"   Qty: {item.quantity} × {format_currency(item.price)}"
            f" = {format_currency(item.line_total)}"
        )
        if item.mrp > item.price:
            lines.append(
                f"   MRP: {format_currency(item.mrp)}"
                f" (You save {format_currency(item.line_savings)})"
            )
        lines.append("")

    lines += [
        _DIVIDER,
        f"📊 *TOTAL ITEMS:* {t.total_items}",
        f"🏷️ *MRP TOTAL:* {format_currency(t.total_mrp)}",
        f"🎉 *YOU SAVE:* {format_currency(t.savings)}",
        f"🧾 *SUBTOTAL:* {format_currency(t.subtotal)}",
    ]
    if t.wallet_discount > 0:
        lines.append(f"👛 *WALLET DISCOUNT:* -{format_currency(t.wallet_discount)}")
    lines += [
        f"💰 *ESTIMATED TOTAL:* {format_currency(t.final_amount)}",
        "",
        "⚠️ _This is an estimate. Final price may vary._",
    ]
    return "\n".join(lines)


def whatsapp_url(phone_number: str, message: str) -> str:
    digits = "".join(ch for ch in phone_number if ch.isdigit())
    return f"https://wa.me/{digits}?text={quote(message, safe='')}"


# ---------------------------
# Composer
# ---------------------------


@dataclass
class OrderComposer:
    """
    Ties the cart, the wallet ledger and the order backend together.

    `backend` is anything exposing the order coroutines of `db.crud`
    (next_order_number, insert_order, insert_order_items).
    """

    cart: CartStore
    wallet: Optional[WalletLedger] = None
    backend: object = field(default=crud)

    def prepare(
        self,
        customer: CustomerDetails,
        use_wallet: bool,
        minimum_order_value: Decimal,
    ) -> OrderDraft:
        balance = self.wallet.known_balance if self.wallet else Decimal(0)
        return prepare_order(
            self.cart.items,
            customer,
            use_wallet and self.wallet is not None,
            balance,
            minimum_order_value,
        )

    async def place_order(
        self, draft: OrderDraft, user_id: int, classification: str
    ) -> OrderReceipt:
        """
        Persist the order then its items, then request the wallet debit.
        The cart is cleared only once the order and its items are stored.
        """
        try:
            order_number = await self.backend.next_order_number()
        except _BACKEND_ERRORS as e:
            _logger.error(f"Order number generation failed: {e}")
            raise NetworkError(f"Could not reach the order service: {e}") from e

        c = draft.customer
        t = draft.totals
        try:
            order_id = await self.backend.insert_order(
                order_number=order_number,
                customer_id=user_id,
                customer_name=c.name,
                customer_phone=c.phone,
                customer_address=c.address,
                notes=c.notes or None,
                total_items=t.total_items,
                total_amount=t.subtotal,
                discount_amount=t.wallet_discount,
                final_amount=t.final_amount,
                user_type=classification,
            )
        except _BACKEND_ERRORS as e:
            _logger.error(f"Order insert failed for {order_number}: {e}")
            raise PersistenceError(f"Could not place the order: {e}") from e

        try:
            await self.backend.insert_order_items(order_id, list(draft.items))
        except _BACKEND_ERRORS as e:
            _logger.error(
                f"Items insert failed for committed order {order_number}: {e}"
            )
            raise PersistenceError(
                f"Order {order_number} was created but its items could not be saved: {e}",
                order_number=order_number,
            ) from e

        _logger.info(
            f"Order {order_number} placed by {user_id}: "
            f"{t.total_items} items, final {t.final_amount}"
        )

        warning = None
        if t.wallet_discount > 0:
            if self.wallet is None:
                warning = "Wallet discount could not be applied."
            else:
                try:
                    await self.wallet.apply_discount(
                        order_id, t.wallet_discount, order_number=order_number
                    )
                except WalletDeductionError as e:
                    _logger.warning(f"Order {order_number}: {e}")
                    warning = str(e)

        self.cart.clear_cart()
        return OrderReceipt(
            order_id=order_id,
            order_number=order_number,
            totals=t,
            wallet_warning=warning,
        )

    def send_via_whatsapp(
        self, draft: OrderDraft, store_name: str, whatsapp_number: str
    ) -> str:
        """Return the deep link carrying the estimate; nothing is persisted."""
        message = build_whatsapp_message(draft, store_name)
        _logger.info(
            f"WhatsApp estimate prepared: {draft.totals.total_items} items, "
            f"{draft.totals.final_amount}"
        )
        return whatsapp_url(whatsapp_number, message)
