import os
import tempfile
import unittest
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock
from urllib.parse import parse_qs, urlparse

import aiosqlite

from core.cart import CartLineItem, CartStore, MemoryStorage
from core.composer import (
    CustomerDetails,
    OrderComposer,
    build_whatsapp_message,
    compute_wallet_discount,
    prepare_order,
    whatsapp_url,
)
from core.errors import (
    MinimumOrderNotMetError,
    NetworkError,
    PersistenceError,
    ValidationError,
)
from core.wallet import WalletLedger
from db import crud
from db import database as db_database

CUSTOMER = CustomerDetails(
    name="  Alice Kumar ",
    phone="+91 90000 11111",
    address="12 Temple Street, Sivakasi",
    notes="Call before delivery",
)


def make_item(pid=2001, price="200", mrp="250", qty=1) -> CartLineItem:
    return CartLineItem(
        product_id=pid,
        name=f"Product {pid}",
        product_code=f"P{pid}",
        price=Decimal(price),
        mrp=Decimal(mrp),
        quantity=qty,
    )


def make_backend(order_number="GKP-000010", order_id=10) -> MagicMock:
    backend = MagicMock()
    backend.next_order_number = AsyncMock(return_value=order_number)
    backend.insert_order = AsyncMock(return_value=order_id)
    backend.insert_order_items = AsyncMock(return_value=None)
    return backend


class PrepareOrderTestCase(unittest.TestCase):
    def test_empty_cart_is_checked_first(self):
        with self.assertRaises(ValidationError) as ctx:
            prepare_order([], CustomerDetails("", "", ""), False, Decimal(0), Decimal(500))
        self.assertEqual(ctx.exception.field, "cart")

    def test_required_fields_in_order(self):
        items = [make_item(qty=10)]
        cases = [
            (CustomerDetails(" ", "", ""), "name"),
            (CustomerDetails("Alice", "  ", ""), "phone"),
            (CustomerDetails("Alice", "9000011111", ""), "address"),
        ]
        for customer, field in cases:
            with self.subTest(field=field):
                with self.assertRaises(ValidationError) as ctx:
                    prepare_order(items, customer, False, Decimal(0), Decimal(0))
                self.assertEqual(ctx.exception.field, field)

    def test_fields_are_checked_before_minimum(self):
        with self.assertRaises(ValidationError):
            prepare_order(
                [make_item()], CustomerDetails("", "", ""), False, Decimal(0), Decimal(500)
            )

    def test_minimum_order_value(self):
        with self.assertRaises(MinimumOrderNotMetError) as ctx:
            prepare_order([make_item(qty=2)], CUSTOMER, False, Decimal(0), Decimal(500))
        self.assertEqual(ctx.exception.shortfall, Decimal(100))
        self.assertEqual(ctx.exception.threshold, Decimal(500))

        # exactly at the threshold passes
        draft = prepare_order(
            [make_item(qty=2)], CUSTOMER, False, Decimal(0), Decimal(400)
        )
        self.assertEqual(draft.totals.subtotal, Decimal(400))

    def test_totals_and_cleaned_customer(self):
        items = [make_item(2001, "200", "250", 5), make_item(2003, "950", "1200", 2)]
        draft = prepare_order(items, CUSTOMER, False, Decimal(150), Decimal(500))

        self.assertEqual(draft.customer.name, "Alice Kumar")
        t = draft.totals
        self.assertEqual(t.total_items, 7)
        self.assertEqual(t.subtotal, Decimal(2900))
        self.assertEqual(t.total_mrp, Decimal(3650))
        self.assertEqual(t.savings, Decimal(750))
        self.assertEqual(t.wallet_discount, Decimal(0))
        self.assertEqual(t.final_amount, Decimal(2900))

    def test_wallet_discount_is_capped(self):
        self.assertEqual(compute_wallet_discount(Decimal(150), Decimal(2900), True), 150)
        self.assertEqual(compute_wallet_discount(Decimal(5000), Decimal(600), True), 600)
        self.assertEqual(compute_wallet_discount(Decimal(150), Decimal(600), False), 0)
        self.assertEqual(compute_wallet_discount(Decimal(-10), Decimal(600), True), 0)

        draft = prepare_order(
            [make_item(qty=3)], CUSTOMER, True, Decimal(1000), Decimal(0)
        )
        self.assertEqual(draft.totals.wallet_discount, Decimal(600))
        self.assertEqual(draft.totals.final_amount, Decimal(0))

    def test_draft_is_a_snapshot(self):
        cart = CartStore(MemoryStorage())
        cart.add_item(make_item(), 3)
        draft = OrderComposer(cart).prepare(CUSTOMER, False, Decimal(0))
        cart.clear_cart()
        self.assertEqual(len(draft.items), 1)
        self.assertEqual(draft.totals.subtotal, Decimal(600))

    def test_prepare_without_wallet_ignores_use_wallet(self):
        cart = CartStore(MemoryStorage())
        cart.add_item(make_item(), 3)
        draft = OrderComposer(cart, wallet=None).prepare(CUSTOMER, True, Decimal(0))
        self.assertEqual(draft.totals.wallet_discount, Decimal(0))


class WhatsAppTestCase(unittest.TestCase):
    def setUp(self):
        items = [make_item(2001, "200", "250", 5), make_item(2006, "160", "160", 1)]
        self.draft = prepare_order(items, CUSTOMER, True, Decimal(150), Decimal(0))

    def test_message_contents(self):
        msg = build_whatsapp_message(self.draft, "GKP Crackers")
        self.assertIn("NEW ORDER ESTIMATE - GKP CRACKERS", msg)
        self.assertIn("*Customer:* Alice Kumar", msg)
        self.assertIn("*Notes:* Call before delivery", msg)
        self.assertIn("1. Product 2001 (P2001)", msg)
        self.assertIn("Qty: 5 × ₹200 = ₹1,000", msg)
        self.assertIn("MRP: ₹250 (You save ₹250)", msg)
        # no savings line for items sold at MRP
        self.assertEqual(msg.count("You save"), 1)
        self.assertIn("*TOTAL ITEMS:* 6", msg)
        self.assertIn("*WALLET DISCOUNT:* -₹150", msg)
        self.assertIn("*ESTIMATED TOTAL:* ₹1,010", msg)
        self.assertTrue(msg.endswith("_This is an estimate. Final price may vary._"))

    def test_url_encodes_message(self):
        url = whatsapp_url("+91 86101 53961", "Hi & bye\nline 2")
        parsed = urlparse(url)
        self.assertEqual(parsed.netloc, "wa.me")
        self.assertEqual(parsed.path, "/918610153961")
        self.assertEqual(parse_qs(parsed.query)["text"], ["Hi & bye\nline 2"])

    def test_send_via_whatsapp_does_not_touch_cart_or_backend(self):
        cart = CartStore(MemoryStorage())
        cart.add_item(make_item(), 1)
        backend = make_backend()
        url = OrderComposer(cart, backend=backend).send_via_whatsapp(
            self.draft, "GKP Crackers", "918610153961"
        )
        self.assertTrue(url.startswith("https://wa.me/918610153961?text="))
        self.assertEqual(len(cart), 1)
        backend.next_order_number.assert_not_called()


class PlaceOrderTestCase(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.cart = CartStore(MemoryStorage())
        self.cart.add_item(make_item(2001, "200", "250"), 5)
        self.cart.add_item(make_item(2003, "950", "1200"), 2)

    async def test_success_clears_cart(self):
        backend = make_backend()
        composer = OrderComposer(self.cart, backend=backend)
        draft = composer.prepare(CUSTOMER, False, Decimal(500))

        receipt = await composer.place_order(draft, 1001, "retail")

        self.assertEqual(receipt.order_number, "GKP-000010")
        self.assertEqual(receipt.order_id, 10)
        self.assertIsNone(receipt.wallet_warning)
        self.assertTrue(self.cart.is_empty)
        kwargs = backend.insert_order.await_args.kwargs
        self.assertEqual(kwargs["total_amount"], Decimal(2900))
        self.assertEqual(kwargs["final_amount"], Decimal(2900))
        self.assertEqual(kwargs["user_type"], "retail")
        order_id, items = backend.insert_order_items.await_args.args
        self.assertEqual(order_id, 10)
        self.assertEqual([i.product_id for i in items], [2001, 2003])

    async def test_order_number_failure_is_network_error(self):
        backend = make_backend()
        backend.next_order_number.side_effect = aiosqlite.OperationalError("locked")
        composer = OrderComposer(self.cart, backend=backend)
        draft = composer.prepare(CUSTOMER, False, Decimal(0))

        with self.assertRaises(NetworkError):
            await composer.place_order(draft, 1001, "retail")
        backend.insert_order.assert_not_awaited()
        self.assertEqual(len(self.cart), 2)

    async def test_order_insert_failure_keeps_cart(self):
        backend = make_backend()
        backend.insert_order.side_effect = aiosqlite.IntegrityError("duplicate")
        composer = OrderComposer(self.cart, backend=backend)
        draft = composer.prepare(CUSTOMER, False, Decimal(0))

        with self.assertRaises(PersistenceError) as ctx:
            await composer.place_order(draft, 1001, "retail")
        self.assertIsNone(ctx.exception.order_number)
        backend.insert_order_items.assert_not_awaited()
        self.assertEqual(len(self.cart), 2)

    async def test_items_failure_names_the_partial_order(self):
        backend = make_backend()
        backend.insert_order_items.side_effect = OSError("disk I/O error")
        composer = OrderComposer(self.cart, backend=backend)
        draft = composer.prepare(CUSTOMER, False, Decimal(0))

        with self.assertRaises(PersistenceError) as ctx:
            await composer.place_order(draft, 1001, "retail")
        self.assertEqual(ctx.exception.order_number, "GKP-000010")
        self.assertEqual(len(self.cart), 2)

    async def test_wallet_debit_applied_after_order(self):
        wallet_backend = MagicMock()
        wallet_backend.apply_wallet_discount = AsyncMock(return_value=Decimal(0))
        wallet_backend.get_wallet_balance = AsyncMock(return_value=Decimal(0))
        wallet = WalletLedger(1001, Decimal(150), backend=wallet_backend)
        composer = OrderComposer(self.cart, wallet=wallet, backend=make_backend())
        draft = composer.prepare(CUSTOMER, True, Decimal(0))

        receipt = await composer.place_order(draft, 1001, "retail")

        self.assertIsNone(receipt.wallet_warning)
        self.assertEqual(receipt.totals.final_amount, Decimal(2750))
        wallet_backend.apply_wallet_discount.assert_awaited_once_with(
            1001, 10, Decimal(150), "Used for order GKP-000010"
        )
        self.assertEqual(wallet.known_balance, Decimal(0))

    async def test_wallet_failure_is_a_warning(self):
        wallet_backend = MagicMock()
        wallet_backend.apply_wallet_discount = AsyncMock(
            side_effect=ValueError("Insufficient wallet balance.")
        )
        wallet_backend.get_wallet_balance = AsyncMock(return_value=Decimal(20))
        wallet = WalletLedger(1001, Decimal(150), backend=wallet_backend)
        composer = OrderComposer(self.cart, wallet=wallet, backend=make_backend())
        draft = composer.prepare(CUSTOMER, True, Decimal(0))

        receipt = await composer.place_order(draft, 1001, "retail")

        self.assertIsNotNone(receipt.wallet_warning)
        self.assertTrue(self.cart.is_empty)
        self.assertEqual(wallet.known_balance, Decimal(20))

    async def test_balance_lookup_error_after_debit_keeps_order(self):
        wallet_backend = MagicMock()
        wallet_backend.apply_wallet_discount = AsyncMock(return_value=Decimal(0))
        wallet_backend.get_wallet_balance = AsyncMock(
            side_effect=ValueError("No profile for user 1001")
        )
        wallet = WalletLedger(1001, Decimal(150), backend=wallet_backend)
        backend = make_backend()
        composer = OrderComposer(self.cart, wallet=wallet, backend=backend)
        draft = composer.prepare(CUSTOMER, True, Decimal(0))

        receipt = await composer.place_order(draft, 1001, "retail")

        self.assertEqual(receipt.order_number, "GKP-000010")
        self.assertIsNone(receipt.wallet_warning)
        self.assertTrue(self.cart.is_empty)
        wallet_backend.apply_wallet_discount.assert_awaited_once()


class PlaceOrderDatabaseTestCase(unittest.IsolatedAsyncioTestCase):
    """place_order against the real crud backend on a throwaway database."""

    def setUp(self):
        self.temp_dir = tempfile.TemporaryDirectory()
        db_database.DB_PATH = os.path.join(self.temp_dir.name, "test.sqlite")
        db_database._initialized = False

    def tearDown(self):
        self.temp_dir.cleanup()

    async def test_order_items_and_wallet_are_stored(self):
        cart = CartStore(MemoryStorage())
        cart.add_item(make_item(2001, "200", "250"), 5)
        wallet = WalletLedger(1001, await crud.get_wallet_balance(1001))
        composer = OrderComposer(cart, wallet=wallet)
        draft = composer.prepare(CUSTOMER, True, Decimal(500))

        receipt = await composer.place_order(draft, 1001, "retail")

        self.assertEqual(receipt.order_number, "GKP-000003")
        order = await crud.get_order(receipt.order_id)
        self.assertEqual(order.status, "pending")
        self.assertEqual(order.total_amount, Decimal(1000))
        self.assertEqual(order.discount_amount, Decimal(150))
        self.assertEqual(order.final_amount, Decimal(850))

        items = await crud.get_order_items(receipt.order_id)
        self.assertEqual(len(items), 1)
        self.assertEqual(items[0].unit_price, Decimal(200))
        self.assertEqual(items[0].total_price, Decimal(1000))

        self.assertEqual(await crud.get_wallet_balance(1001), Decimal(0))
        self.assertEqual(wallet.known_balance, Decimal(0))
        latest = (await crud.list_wallet_transactions(1001))[0]
        self.assertEqual(latest.transaction_type, "purchase")
        self.assertEqual(latest.amount, Decimal(-150))
        self.assertEqual(latest.reference_id, receipt.order_id)


if __name__ == "__main__":
    unittest.main()
