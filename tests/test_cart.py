import json
import os
import random
import tempfile
import unittest
from decimal import Decimal

from core.cart import (
    CART_STORAGE_KEY,
    CartLineItem,
    CartStore,
    JsonFileStorage,
    MemoryStorage,
)


def make_item(pid: int, price="100", mrp="150", code=None) -> CartLineItem:
    return CartLineItem(
        product_id=pid,
        name=f"Product {pid}",
        product_code=code or f"P{pid:03d}",
        price=Decimal(price),
        mrp=Decimal(mrp),
    )


class FailingStorage(MemoryStorage):
    """Reads work; every write fails like a full disk."""

    def set_item(self, key, value):
        raise OSError("disk full")


class CartStoreTestCase(unittest.TestCase):
    def setUp(self):
        self.storage = MemoryStorage()
        self.cart = CartStore(self.storage)

    # ---------- add / update / remove ----------

    def test_add_item_accumulates_quantity_and_keeps_first_price(self):
        self.cart.add_item(make_item(1, price="100"), 2)
        self.cart.add_item(make_item(1, price="80"), 3)

        self.assertEqual(len(self.cart), 1)
        line = self.cart.get_item(1)
        self.assertEqual(line.quantity, 5)
        self.assertEqual(line.price, Decimal("100"))
        self.assertEqual(self.cart.total_amount, Decimal("500"))

    def test_add_item_ignores_non_positive_quantity(self):
        self.cart.add_item(make_item(1), 0)
        self.cart.add_item(make_item(2), -3)
        self.assertTrue(self.cart.is_empty)
        self.assertIsNone(self.storage.get_item(CART_STORAGE_KEY))

    def test_items_keep_insertion_order(self):
        for pid in (3, 1, 2):
            self.cart.add_item(make_item(pid))
        self.cart.add_item(make_item(3))
        self.assertEqual([i.product_id for i in self.cart.items], [3, 1, 2])

    def test_update_quantity_sets_or_removes(self):
        self.cart.add_item(make_item(1), 2)
        self.cart.add_item(make_item(2), 1)

        self.cart.update_quantity(1, 7)
        self.assertEqual(self.cart.get_item(1).quantity, 7)

        self.cart.update_quantity(1, 0)
        self.assertIsNone(self.cart.get_item(1))

        self.cart.update_quantity(2, -4)
        self.assertTrue(self.cart.is_empty)

        # unknown products are a no-op
        self.cart.update_quantity(99, 3)
        self.assertTrue(self.cart.is_empty)

    def test_remove_and_clear(self):
        self.cart.add_item(make_item(1))
        self.cart.add_item(make_item(2))
        self.cart.remove_item(1)
        self.assertEqual([i.product_id for i in self.cart.items], [2])
        self.cart.remove_item(42)
        self.assertEqual(len(self.cart), 1)

        self.cart.clear_cart()
        self.assertTrue(self.cart.is_empty)
        self.assertEqual(self.cart.total_items, 0)
        self.assertEqual(self.cart.total_amount, Decimal(0))
        self.assertEqual(json.loads(self.storage.get_item(CART_STORAGE_KEY)), [])

    def test_totals_and_savings(self):
        self.cart.add_item(make_item(1, price="200", mrp="250"), 5)
        self.cart.add_item(make_item(2, price="950", mrp="1200"), 2)

        self.assertEqual(self.cart.total_items, 7)
        self.assertEqual(self.cart.total_amount, Decimal("2900"))
        self.assertEqual(self.cart.total_mrp, Decimal("3650"))
        self.assertEqual(self.cart.total_savings, Decimal("750"))

    def test_items_returns_a_copy(self):
        self.cart.add_item(make_item(1))
        items = self.cart.items
        items.clear()
        self.assertEqual(len(self.cart), 1)

    # ---------- persistence ----------

    def test_every_mutation_is_persisted_and_reloaded(self):
        self.cart.add_item(make_item(1, price="12.50", mrp="20"), 2)
        self.cart.add_item(make_item(2), 1)
        self.cart.update_quantity(2, 4)

        reloaded = CartStore(self.storage)
        self.assertEqual(reloaded.items, self.cart.items)
        self.assertEqual(reloaded.total_amount, Decimal("425.00"))

    def test_corrupt_storage_starts_empty(self):
        for raw in ("not json", json.dumps({"a": 1}), json.dumps("text")):
            with self.subTest(raw=raw):
                storage = MemoryStorage({CART_STORAGE_KEY: raw})
                self.assertTrue(CartStore(storage).is_empty)

    def test_unreadable_rows_are_dropped(self):
        good = {
            "product_id": 1,
            "name": "Chakkar",
            "product_code": "P004",
            "price": "120",
            "mrp": "150",
            "quantity": 2,
        }
        rows = [
            good,
            dict(good, quantity=3),  # duplicate product
            dict(good, product_id=2, quantity=0),
            dict(good, product_id=3, price="NaN"),
            {"product_id": 4, "name": "no price", "quantity": 1},
            "garbage",
        ]
        storage = MemoryStorage({CART_STORAGE_KEY: json.dumps(rows)})
        cart = CartStore(storage)
        self.assertEqual([i.product_id for i in cart.items], [1])
        self.assertEqual(cart.get_item(1).quantity, 2)

    def test_write_failure_keeps_in_memory_cart(self):
        cart = CartStore(FailingStorage())
        cart.add_item(make_item(1), 2)
        self.assertEqual(cart.total_items, 2)

    def test_json_file_storage_roundtrip(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "nested", "storage.json")
            storage = JsonFileStorage(path)
            self.assertIsNone(storage.get_item(CART_STORAGE_KEY))

            CartStore(storage).add_item(make_item(7), 3)
            self.assertTrue(os.path.exists(path))
            self.assertEqual(CartStore(JsonFileStorage(path)).total_items, 3)

            storage.remove_item(CART_STORAGE_KEY)
            self.assertTrue(CartStore(JsonFileStorage(path)).is_empty)

    def test_json_file_storage_unreadable_file(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "storage.json")
            with open(path, "w", encoding="utf-8") as f:
                f.write("{broken")
            self.assertIsNone(JsonFileStorage(path).get_item(CART_STORAGE_KEY))

    # ---------- invariants ----------

    def test_random_operation_sequences_keep_totals_consistent(self):
        rng = random.Random(20241031)
        catalog = [
            make_item(pid, price=str(rng.randint(10, 900)), mrp="1000")
            for pid in range(1, 9)
        ]
        for _ in range(50):
            storage = MemoryStorage()
            cart = CartStore(storage)
            for _ in range(40):
                op = rng.choice(("add", "update", "remove", "clear"))
                item = rng.choice(catalog)
                if op == "add":
                    cart.add_item(item, rng.randint(-2, 6))
                elif op == "update":
                    cart.update_quantity(item.product_id, rng.randint(-2, 10))
                elif op == "remove":
                    cart.remove_item(item.product_id)
                elif rng.random() < 0.1:
                    cart.clear_cart()

                items = cart.items
                ids = [i.product_id for i in items]
                self.assertEqual(len(ids), len(set(ids)))
                self.assertTrue(all(i.quantity >= 1 for i in items))
                self.assertEqual(cart.total_items, sum(i.quantity for i in items))
                self.assertEqual(
                    cart.total_amount,
                    sum((i.price * i.quantity for i in items), Decimal(0)),
                )
                self.assertGreaterEqual(cart.total_savings, 0)
            self.assertEqual(CartStore(storage).items, cart.items)


if __name__ == "__main__":
    unittest.main()
