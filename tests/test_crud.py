import json
import os
import sys
import tempfile
import unittest
from datetime import datetime, timedelta
from decimal import Decimal

import aiosqlite
from werkzeug.security import check_password_hash

from core.cart import CartLineItem
from core.settings import SiteSettings
from db import crud
from db import database as db_database

# Ensure project src/ is on sys.path for imports
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
src_path = os.path.join(ROOT, "src")
if src_path not in sys.path:
    sys.path.insert(0, src_path)


class CrudTestCase(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        # Point the DB to a temporary file and force re-initialization
        self.temp_dir = tempfile.TemporaryDirectory()
        self.db_path = os.path.join(self.temp_dir.name, "test.sqlite")
        db_database.DB_PATH = self.db_path
        db_database._initialized = False

    async def asyncSetUp(self):
        # Touch initialization by opening a connection
        async with db_database.connect() as conn:
            cur = await conn.execute(
                "SELECT name FROM sqlite_master WHERE type='table';"
            )
            await cur.fetchall()
            await cur.close()

    def tearDown(self):
        self.temp_dir.cleanup()

    # ---------- Auth & registration ----------

    async def test_demo_logins_and_roles(self):
        admin = await crud.login("admin@gkpcrackers.com", "admin123")
        self.assertIsNotNone(admin)
        self.assertEqual(admin.role, "admin")
        self.assertTrue(await crud.is_admin(admin.uid))

        alice = await crud.login("  ALICE@example.com ", "alice123")
        self.assertEqual(alice.uid, 1001)
        self.assertEqual(alice.role, "customer")
        self.assertFalse(await crud.is_admin(1001))

        self.assertIsNone(await crud.login("alice@example.com", "wrong"))
        self.assertIsNone(await crud.login("nobody@example.com", "alice123"))
        self.assertIsNone(await crud.get_user(424242))

    async def test_passwords_are_stored_hashed(self):
        await crud.register_customer("Eswar P", "eswar@example.com", "fire2025")
        async with db_database.connect() as conn:
            cur = await conn.execute(
                "SELECT email, pwd_hash FROM users WHERE email IN (?, ?);",
                ("eswar@example.com", "alice@example.com"),
            )
            hashes = {email: pwd_hash for email, pwd_hash in await cur.fetchall()}
            await cur.close()
        self.assertTrue(check_password_hash(hashes["eswar@example.com"], "fire2025"))
        self.assertTrue(check_password_hash(hashes["alice@example.com"], "alice123"))
        self.assertNotIn("fire2025", hashes["eswar@example.com"])
        self.assertIsNotNone(await crud.login("eswar@example.com", "fire2025"))
        self.assertIsNone(await crud.login("eswar@example.com", "Fire2025"))

    async def test_register_with_referral(self):
        self.assertFalse(await crud.email_available("alice@example.com"))
        self.assertTrue(await crud.email_available("new@example.com"))

        uid = await crud.register_customer(
            "Esha Fireworks",
            "esha@example.com",
            "secret1",
            phone="+91 90000 55555",
            user_type="dealer",
            business_name="Esha Fireworks",
            gst_number="33ESHA1234F1Z5",
            referral_code="alice001",
        )
        profile = await crud.get_profile(uid)
        self.assertEqual(profile.user_type, "dealer")
        self.assertFalse(profile.is_verified)
        self.assertEqual(profile.wallet_balance, Decimal(0))
        self.assertEqual(profile.business_name, "Esha Fireworks")
        self.assertTrue(profile.referral_code.startswith("ESHA"))

        user = await crud.login("esha@example.com", "secret1")
        self.assertEqual(user.uid, uid)

        referrals = await crud.list_referrals(1001)
        newest = [r for r in referrals if r.referred_id == uid]
        self.assertEqual(len(newest), 1)
        self.assertFalse(newest[0].is_claimed)
        self.assertEqual(newest[0].bonus_amount, Decimal(50))
        self.assertEqual(newest[0].referred_name, "Esha Fireworks")

    async def test_register_rejects_duplicates_and_ignores_unknown_codes(self):
        with self.assertRaises(ValueError):
            await crud.register_customer("Alice", "Alice@Example.com", "pw1234")
        with self.assertRaises(ValueError):
            await crud.register_customer("X", "x@example.com", "pw1234", user_type="vip")

        uid = await crud.register_customer(
            "Farah", "farah@example.com", "pw1234", referral_code="NOPE9999"
        )
        async with db_database.connect() as conn:
            cur = await conn.execute(
                "SELECT COUNT(*) FROM referrals WHERE referred_id = ?;", (uid,)
            )
            row = await cur.fetchone()
            await cur.close()
        self.assertEqual(row[0], 0)

    async def test_profiles_and_dealer_verification(self):
        names = [p.full_name for p in await crud.list_profiles()]
        self.assertEqual(names, ["Alice Kumar", "Bala Traders", "Charan R", "Devi Stores"])
        self.assertEqual(
            [p.id for p in await crud.list_profiles("devi")], [1004]
        )

        self.assertTrue(await crud.set_dealer_verified(1004, True))
        self.assertTrue((await crud.get_profile(1004)).is_verified)
        # retail accounts cannot be verified as dealers
        self.assertFalse(await crud.set_dealer_verified(1001, True))

        self.assertTrue(await crud.set_user_type(1003, "dealer"))
        self.assertEqual((await crud.get_profile(1003)).user_type, "dealer")
        with self.assertRaises(ValueError):
            await crud.set_user_type(1003, "wholesale")

        self.assertTrue(
            await crud.update_profile(1001, " Alice K ", "", "New Street", None)
        )
        p = await crud.get_profile(1001)
        self.assertEqual(p.full_name, "Alice K")
        self.assertIsNone(p.phone)
        self.assertEqual(p.address, "New Street")
        with self.assertRaises(ValueError):
            await crud.update_profile(1001, "  ", None, None)

    # ---------- Catalog ----------

    async def test_catalog_hides_invisible_products(self):
        catalog = await crud.list_catalog()
        codes = [p.code for p in catalog]
        self.assertNotIn("P011", codes)
        self.assertEqual(codes, sorted(codes))
        self.assertEqual(len(await crud.list_products()), 11)

        rockets = await crud.list_catalog(category_id=4)
        self.assertEqual({p.code for p in rockets}, {"P005", "P009"})
        self.assertEqual([p.code for p in await crud.list_catalog("p003")], ["P003"])
        bomb = (await crud.list_catalog("lakshmi"))[0]
        self.assertEqual(bomb.category_name, "Bombs")
        self.assertEqual(bomb.wholesale_price, Decimal(150))

        # direct lookups still resolve hidden products for past orders
        hidden = await crud.get_catalog_product(2011)
        self.assertEqual(hidden.code, "P011")
        self.assertEqual(hidden.brand_name, "Standard")
        self.assertIsNone(await crud.get_catalog_product(999999))

    async def test_product_admin_operations(self):
        pid = await crud.create_product(
            "P100", "Peacock Fountain", "650", "520", "390", stock=12, category_id=7
        )
        product = await crud.get_product(pid)
        self.assertEqual(product.retail_price, Decimal(520))
        self.assertTrue(product.is_visible)

        self.assertTrue(await crud.update_product(pid, stock=0, retail_price="499.50"))
        self.assertEqual((await crud.get_product(pid)).retail_price, Decimal("499.50"))
        with self.assertRaises(ValueError):
            await crud.update_product(pid, mrp=-1)
        with self.assertRaises(ValueError):
            await crud.update_product(pid, sku="X")
        with self.assertRaises(aiosqlite.IntegrityError):
            await crud.create_product("P001", "Duplicate", 1, 1, 1)

        self.assertFalse(await crud.toggle_product_visibility(pid))
        self.assertNotIn(pid, [p.id for p in await crud.list_catalog()])
        self.assertIsNone(await crud.toggle_product_visibility(999999))

        self.assertTrue(await crud.delete_product(pid))
        self.assertIsNone(await crud.get_product(pid))

    async def test_categories_and_brands(self):
        categories = await crud.list_categories()
        self.assertEqual(categories[0].name, "Ground Chakkar")
        bombs = next(c for c in categories if c.name == "Bombs")
        self.assertEqual(bombs.product_count, 3)

        cid = await crud.create_category("Gift Boxes", "Assorted", 9)
        self.assertFalse(await crud.toggle_category(cid))
        self.assertNotIn(cid, [c.id for c in await crud.list_categories(active_only=True)])
        self.assertTrue(await crud.update_category(cid, name="Gift Packs"))
        with self.assertRaises(ValueError):
            await crud.create_category("  ")

        # deleting a category leaves its products uncategorized
        self.assertTrue(await crud.delete_category(bombs.id))
        self.assertIsNone((await crud.get_product(2001)).category_id)

        bid = await crud.create_brand("Sony Fireworks")
        self.assertTrue(await crud.update_brand(bid, " Sony "))
        brands = {b.id: b for b in await crud.list_brands()}
        self.assertEqual(brands[bid].name, "Sony")
        self.assertEqual(brands[bid].product_count, 0)
        self.assertFalse(await crud.toggle_brand(bid))
        self.assertTrue(await crud.delete_brand(bid))

    # ---------- Orders ----------

    async def test_order_numbers_are_sequential(self):
        self.assertEqual(await crud.next_order_number(), "GKP-000003")
        self.assertEqual(await crud.next_order_number(), "GKP-000004")

    async def test_insert_and_list_orders(self):
        order_id = await crud.insert_order(
            "GKP-000003",
            1001,
            "Alice Kumar",
            "+91 90000 11111",
            "Sivakasi",
            None,
            3,
            Decimal("450.50"),
            Decimal(0),
            Decimal("450.50"),
            "retail",
        )
        items = [
            CartLineItem(2004, "Chakkar 10pcs", "P004", Decimal("120"), Decimal("150"), 2),
            CartLineItem(2010, "Color Smoke 6pcs", "", Decimal("210.50"), Decimal("180"), 1),
        ]
        await crud.insert_order_items(order_id, items)

        orders = await crud.list_orders(1001)
        self.assertEqual(orders[0].id, order_id)
        self.assertEqual(orders[0].status, "pending")
        self.assertEqual(orders[0].total_amount, Decimal("450.50"))

        stored = await crud.get_order_items(order_id)
        self.assertEqual([i.product_code for i in stored], ["P004", None])
        self.assertEqual(stored[0].total_price, Decimal(240))

        self.assertEqual(len(await crud.list_all_orders()), 3)
        self.assertEqual(len(await crud.list_all_orders(status="delivered")), 1)
        since = await crud.list_all_orders(since=datetime(2025, 10, 1))
        self.assertEqual({o.order_number for o in since}, {"GKP-000002", "GKP-000003"})
        self.assertEqual(len(await crud.list_all_orders(limit=1)), 1)

    async def test_order_status_transitions(self):
        order = await crud.update_order_status(2, "confirmed")
        self.assertEqual(order.status, "confirmed")
        # same state is a no-op
        self.assertEqual((await crud.update_order_status(2, "confirmed")).status, "confirmed")

        with self.assertRaises(ValueError):
            await crud.update_order_status(2, "delivered")
        with self.assertRaises(ValueError):
            await crud.update_order_status(2, "lost")
        with self.assertRaises(ValueError):
            await crud.update_order_status(999, "confirmed")

        self.assertEqual((await crud.update_order_status(2, "cancelled")).status, "cancelled")
        with self.assertRaises(ValueError):
            await crud.update_order_status(2, "processing")
        # delivered orders cannot be cancelled
        with self.assertRaises(ValueError):
            await crud.update_order_status(1, "cancelled")

    # ---------- Wallet ----------

    async def test_wallet_discount(self):
        self.assertEqual(await crud.get_wallet_balance(1001), Decimal(150))
        balance = await crud.apply_wallet_discount(
            1001, 2, Decimal(100), "Used for order GKP-000002"
        )
        self.assertEqual(balance, Decimal(50))

        with self.assertRaises(ValueError):
            await crud.apply_wallet_discount(1001, 2, Decimal(51), "too much")
        with self.assertRaises(ValueError):
            await crud.apply_wallet_discount(1001, 2, Decimal(0), "zero")
        self.assertEqual(await crud.get_wallet_balance(1001), Decimal(50))

        txs = await crud.list_wallet_transactions(1001)
        self.assertEqual(txs[0].transaction_type, "purchase")
        self.assertEqual(txs[0].amount, Decimal(-100))
        self.assertEqual(txs[0].reference_id, 2)
        self.assertEqual(len([t for t in txs if t.description == "too much"]), 0)

        with self.assertRaises(ValueError):
            await crud.get_wallet_balance(424242)

    async def test_admin_wallet_transactions(self):
        self.assertEqual(
            await crud.admin_wallet_transaction(1003, Decimal(80), "credit", "Gift"),
            Decimal(80),
        )
        self.assertEqual(
            await crud.admin_wallet_transaction(1003, Decimal(30), "debit"), Decimal(50)
        )
        with self.assertRaises(ValueError):
            await crud.admin_wallet_transaction(1003, Decimal(51), "debit")
        with self.assertRaises(ValueError):
            await crud.admin_wallet_transaction(1003, Decimal(10), "refund")
        with self.assertRaises(ValueError):
            await crud.admin_wallet_transaction(1003, Decimal(-10), "credit")

        txs = await crud.list_wallet_transactions(1003)
        self.assertEqual([t.transaction_type for t in txs], ["debit", "credit"])
        self.assertEqual(txs[0].description, "Admin debit")

    async def test_fractional_wallet_amounts_stay_exact(self):
        await crud.admin_wallet_transaction(1003, Decimal("0.1"), "credit")
        balance = await crud.admin_wallet_transaction(1003, Decimal("0.2"), "credit")
        self.assertEqual(balance, Decimal("0.3"))
        self.assertEqual(await crud.get_wallet_balance(1003), Decimal("0.3"))

        balance = await crud.apply_wallet_discount(1003, 1, Decimal("0.1"), "Used")
        self.assertEqual(str(balance), "0.2")
        with self.assertRaises(ValueError):
            await crud.apply_wallet_discount(1003, 1, Decimal("0.21"), "Used")

        async with db_database.connect() as conn:
            cur = await conn.execute(
                "SELECT wallet_balance FROM profiles WHERE id = 1003;"
            )
            row = await cur.fetchone()
            await cur.close()
        self.assertEqual(row[0], "0.2")

    # ---------- Referrals ----------

    async def test_claim_referral_bonus(self):
        pending = [r for r in await crud.list_all_referrals() if not r.is_claimed]
        self.assertEqual(len(pending), 1)
        referral = pending[0]
        self.assertEqual(referral.referrer_name, "Alice Kumar")
        self.assertEqual(referral.referred_name, "Charan R")

        self.assertTrue(await crud.claim_referral_bonus(referral.id))
        self.assertEqual(await crud.get_wallet_balance(1001), Decimal(200))
        self.assertEqual(await crud.get_wallet_balance(1003), Decimal(25))
        tx = (await crud.list_wallet_transactions(1003))[0]
        self.assertEqual(tx.transaction_type, "referral_bonus")
        self.assertEqual(tx.reference_id, referral.id)

        # second claim and unknown ids do nothing
        self.assertFalse(await crud.claim_referral_bonus(referral.id))
        self.assertFalse(await crud.claim_referral_bonus(999))
        self.assertEqual(await crud.get_wallet_balance(1001), Decimal(200))

    # ---------- Settings & announcements ----------

    async def test_site_settings_roundtrip(self):
        self.assertEqual(
            (await crud.get_site_settings()).model_dump(), SiteSettings().model_dump()
        )

        settings = SiteSettings(store_name="GKP Sivakasi", min_order_value=Decimal(750))
        await crud.save_site_settings(settings)
        self.assertEqual(
            (await crud.get_site_settings()).model_dump(), settings.model_dump()
        )

    async def test_invalid_stored_settings_are_ignored(self):
        async with db_database.connect() as conn:
            await conn.executemany(
                "INSERT OR REPLACE INTO site_settings(key, value) VALUES (?, ?);",
                [
                    ("store_name", json.dumps("Night Sky Crackers")),
                    ("dealer_discount", json.dumps("250")),
                    ("store_email", "{not json"),
                    ("legacy_key", json.dumps(1)),
                ],
            )
            await conn.commit()

        settings = await crud.get_site_settings()
        self.assertEqual(settings.store_name, "Night Sky Crackers")
        self.assertEqual(settings.dealer_discount, Decimal(10))
        self.assertEqual(settings.store_email, "info@gkpcrackers.com")

    async def test_active_announcements(self):
        now = datetime(2025, 10, 15, 12, 0)
        titles = [a.title for a in await crud.list_active_announcements(now)]
        self.assertEqual(titles, ["Diwali Mega Sale", "Safety first"])

        expired = await crud.create_announcement(
            "Early bird", end_date=now - timedelta(days=1), display_order=0
        )
        upcoming = await crud.create_announcement(
            "Launch", start_date=now + timedelta(days=1), popup_type="warning"
        )
        current = await crud.create_announcement(
            "Today only",
            start_date=now - timedelta(hours=1),
            end_date=now + timedelta(hours=1),
            display_order=0,
        )
        active = [a.id for a in await crud.list_active_announcements(now)]
        self.assertEqual(active[0], current)
        self.assertNotIn(expired, active)
        self.assertNotIn(upcoming, active)

        self.assertFalse(await crud.toggle_announcement(current))
        self.assertNotIn(current, [a.id for a in await crud.list_active_announcements(now)])
        self.assertTrue(await crud.update_announcement(upcoming, show_on_load=False))
        self.assertTrue(await crud.delete_announcement(expired))
        self.assertEqual(len(await crud.list_announcements()), 5)

        with self.assertRaises(ValueError):
            await crud.create_announcement("  ")
        with self.assertRaises(ValueError):
            await crud.create_announcement(
                "Backwards", start_date=now, end_date=now - timedelta(days=1)
            )


if __name__ == "__main__":
    unittest.main()
