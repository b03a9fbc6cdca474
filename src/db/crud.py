# src/db/crud.py
from __future__ import annotations

import json
import random
import re
import string
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Sequence

import pydantic
from werkzeug.security import check_password_hash, generate_password_hash

from core import order_status
from core.settings import SETTING_KEYS, SiteSettings
from db import models
from db.database import connect
from utils.logger import get_logger

_logger = get_logger(__name__)


def _to_int(val) -> Optional[int]:
    try:
        return int(val)
    except (TypeError, ValueError):
        return None


def _dec(val) -> Decimal:
    """Money column text -> Decimal, None -> 0."""
    if val is None:
        return Decimal(0)
    return Decimal(str(val))


def _opt_dec(val) -> Optional[Decimal]:
    return None if val is None else _dec(val)


def _dt(val) -> Optional[datetime]:
    if val is None or isinstance(val, datetime):
        return val
    return datetime.fromisoformat(str(val))


def _ts(when: Optional[datetime] = None) -> str:
    """Timestamp text in the same shape SQLite's CURRENT_TIMESTAMP uses."""
    return (when or datetime.now()).isoformat(sep=" ", timespec="seconds")


def _row_to_profile(row) -> models.Profile:
    return models.Profile(
        id=row["id"],
        full_name=row["full_name"],
        email=row["email"],
        phone=row["phone"],
        user_type=row["user_type"],
        business_name=row["business_name"],
        gst_number=row["gst_number"],
        address=row["address"],
        referral_code=row["referral_code"],
        wallet_balance=_dec(row["wallet_balance"]),
        is_verified=bool(row["is_verified"]),
        created_at=_dt(row["created_at"]),
    )


def _row_to_product(row) -> models.Product:
    return models.Product(
        id=row["id"],
        product_code=row["product_code"],
        name=row["name"],
        image_url=row["image_url"],
        mrp=_dec(row["mrp"]),
        retail_price=_dec(row["retail_price"]),
        wholesale_price=_dec(row["wholesale_price"]),
        stock=row["stock"],
        category_id=row["category_id"],
        brand_id=row["brand_id"],
        is_visible=bool(row["is_visible"]),
    )


def _row_to_order(row) -> models.Order:
    return models.Order(
        id=row["id"],
        order_number=row["order_number"],
        customer_id=row["customer_id"],
        customer_name=row["customer_name"],
        customer_phone=row["customer_phone"],
        customer_address=row["customer_address"],
        notes=row["notes"],
        total_items=row["total_items"],
        total_amount=_dec(row["total_amount"]),
        discount_amount=_dec(row["discount_amount"]),
        final_amount=_dec(row["final_amount"]),
        user_type=row["user_type"],
        status=row["status"],
        created_at=_dt(row["created_at"]),
    )


def _row_to_referral(row) -> models.Referral:
    keys = row.keys()
    return models.Referral(
        id=row["id"],
        referrer_id=row["referrer_id"],
        referred_id=row["referred_id"],
        bonus_amount=_opt_dec(row["bonus_amount"]),
        is_claimed=bool(row["is_claimed"]),
        created_at=_dt(row["created_at"]),
        referrer_name=row["referrer_name"] if "referrer_name" in keys else None,
        referred_name=row["referred_name"] if "referred_name" in keys else None,
        referred_email=row["referred_email"] if "referred_email" in keys else None,
    )


def _row_to_announcement(row) -> models.Announcement:
    return models.Announcement(
        id=row["id"],
        title=row["title"],
        content=row["content"],
        popup_type=row["popup_type"],
        is_active=bool(row["is_active"]),
        show_on_load=bool(row["show_on_load"]),
        start_date=_dt(row["start_date"]),
        end_date=_dt(row["end_date"]),
        display_order=row["display_order"],
    )


async def _update_columns(
    table: str, row_id: int, allowed: Sequence[str], fields: Dict[str, Any]
) -> bool:
    """UPDATE only whitelisted columns. Returns True if a row was updated."""
    unknown = set(fields) - set(allowed)
    if unknown:
        raise ValueError(f"Cannot update {table} columns: {', '.join(sorted(unknown))}")
    if not fields:
        return False
    assignments = ", ".join(f"{col} = ?" for col in fields)
    async with connect() as conn:
        cur = await conn.execute(
            f"UPDATE {table} SET {assignments} WHERE id = ?;",
            (*fields.values(), row_id),
        )
        await conn.commit()
        return cur.rowcount > 0


async def _toggle_flag(table: str, column: str, row_id: int) -> Optional[bool]:
    """Flip a 0/1 column and return its new value, or None if the row is missing."""
    async with connect() as conn:
        await conn.execute(
            f"UPDATE {table} SET {column} = 1 - {column} WHERE id = ?;", (row_id,)
        )
        cur = await conn.execute(f"SELECT {column} FROM {table} WHERE id = ?;", (row_id,))
        row = await cur.fetchone()
        await cur.close()
        await conn.commit()
    return bool(row[0]) if row else None


async def _delete_row(table: str, row_id: int) -> bool:
    async with connect() as conn:
        cur = await conn.execute(f"DELETE FROM {table} WHERE id = ?;", (row_id,))
        await conn.commit()
        return cur.rowcount > 0


# ---------------------------
# Auth, Registration & Profiles
# ---------------------------


async def email_available(email: str) -> bool:
    """True if no user already registered with the given email."""
    async with connect() as conn:
        cur = await conn.execute(
            "SELECT 1 FROM users WHERE LOWER(email) = LOWER(?) LIMIT 1;",
            (email.strip(),),
        )
        row = await cur.fetchone()
        await cur.close()
        return row is None


async def _generate_uid_unique(conn) -> int:
    """Generate a uid that isn't already in use."""
    while True:
        uid = random.randint(1000, 999999)
        cur = await conn.execute("SELECT 1 FROM users WHERE uid = ?;", (uid,))
        exists = await cur.fetchone()
        await cur.close()
        if not exists:
            return uid


async def _generate_referral_code(conn, full_name: str) -> str:
    """Uppercase name prefix plus random digits, unique across profiles."""
    prefix = re.sub(r"[^A-Za-z]", "", full_name).upper()[:4] or "GKP"
    while True:
        code = prefix + "".join(random.choices(string.digits, k=4))
        cur = await conn.execute(
            "SELECT 1 FROM profiles WHERE referral_code = ?;", (code,)
        )
        exists = await cur.fetchone()
        await cur.close()
        if not exists:
            return code


async def find_referrer(referral_code: str) -> Optional[models.Profile]:
    """Profile owning the (case-insensitive) referral code, or None."""
    code = (referral_code or "").strip()
    if not code:
        return None
    async with connect() as conn:
        cur = await conn.execute(
            "SELECT * FROM profiles WHERE UPPER(referral_code) = UPPER(?);", (code,)
        )
        row = await cur.fetchone()
        await cur.close()
    return _row_to_profile(row) if row else None


async def register_customer(
    full_name: str,
    email: str,
    pwd: str,
    phone: Optional[str] = None,
    user_type: str = "retail",
    business_name: Optional[str] = None,
    gst_number: Optional[str] = None,
    referral_code: Optional[str] = None,
) -> int:
    """
    Create a new customer account (user + profile) and return its uid.

    Dealers start unverified. A known referral code links the new account to
    its referrer with the configured referral bonus; an unknown code is ignored.
    """
    if user_type not in ("retail", "dealer"):
        raise ValueError(f"Unknown user type: {user_type}")
    if not await email_available(email):
        raise ValueError("Email already registered.")

    settings = await get_site_settings()
    referrer = await find_referrer(referral_code) if referral_code else None
    if referral_code and referrer is None:
        _logger.info(f"Ignoring unknown referral code {referral_code!r}")

    now = _ts()
    async with connect() as conn:
        uid = await _generate_uid_unique(conn)
        own_code = await _generate_referral_code(conn, full_name)
        await conn.execute(
            "INSERT INTO users(uid, email, pwd_hash, role) VALUES (?, ?, ?, 'customer');",
            (uid, email.strip(), generate_password_hash(pwd)),
        )
        await conn.execute(
            """
            INSERT INTO profiles(id, full_name, email, phone, user_type, business_name,
                                 gst_number, address, referral_code, wallet_balance,
                                 is_verified, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, NULL, ?, 0, 0, ?);
            """,
            (
                uid,
                full_name.strip(),
                email.strip(),
                phone,
                user_type,
                business_name if user_type == "dealer" else None,
                gst_number if user_type == "dealer" else None,
                own_code,
                now,
            ),
        )
        if referrer is not None and settings.enable_referrals:
            await conn.execute(
                """
                INSERT INTO referrals(referrer_id, referred_id, bonus_amount, is_claimed, created_at)
                VALUES (?, ?, ?, 0, ?);
                """,
                (referrer.id, uid, settings.referral_bonus, now),
            )
        await conn.commit()
    _logger.info(f"Registered {user_type} account {uid}")
    return uid


async def login(email: str, pwd: str) -> Optional[models.User]:
    """Return User if email/pwd match; otherwise None."""
    async with connect() as conn:
        cur = await conn.execute(
            "SELECT uid, email, pwd_hash, role FROM users WHERE LOWER(email) = LOWER(?);",
            (email.strip(),),
        )
        row = await cur.fetchone()
        await cur.close()
    if not row or not check_password_hash(row["pwd_hash"], pwd):
        return None
    return models.User(uid=row["uid"], email=row["email"], role=row["role"])


async def get_user(uid: int) -> Optional[models.User]:
    """Return a User object for the given uid, or None if not found."""
    async with connect() as conn:
        cur = await conn.execute(
            "SELECT uid, email, role FROM users WHERE uid = ?;", (uid,)
        )
        row = await cur.fetchone()
        await cur.close()
    if not row:
        return None
    return models.User(uid=row["uid"], email=row["email"], role=row["role"])


async def is_admin(uid: int) -> bool:
    user = await get_user(uid)
    return user is not None and user.role == "admin"


async def get_profile(uid: int) -> Optional[models.Profile]:
    async with connect() as conn:
        cur = await conn.execute("SELECT * FROM profiles WHERE id = ?;", (uid,))
        row = await cur.fetchone()
        await cur.close()
    return _row_to_profile(row) if row else None


async def update_profile(
    uid: int,
    full_name: str,
    phone: Optional[str],
    address: Optional[str],
    business_name: Optional[str] = None,
    gst_number: Optional[str] = None,
) -> bool:
    """Update the user-editable profile fields. Returns True if the profile exists."""
    if not full_name.strip():
        raise ValueError("Full name is required.")
    return await _update_columns(
        "profiles",
        uid,
        ("full_name", "phone", "address", "business_name", "gst_number"),
        {
            "full_name": full_name.strip(),
            "phone": (phone or "").strip() or None,
            "address": (address or "").strip() or None,
            "business_name": (business_name or "").strip() or None,
            "gst_number": (gst_number or "").strip() or None,
        },
    )


async def list_profiles(query: str = "") -> List[models.Profile]:
    """Customer profiles ordered by name, filtered by name/email/phone."""
    like = f"%{query.strip().lower()}%"
    async with connect() as conn:
        cur = await conn.execute(
            """
            SELECT p.*
            FROM profiles p
            JOIN users u ON u.uid = p.id
            WHERE u.role = 'customer'
              AND (LOWER(p.full_name) LIKE ? OR LOWER(p.email) LIKE ? OR COALESCE(p.phone, '') LIKE ?)
            ORDER BY p.full_name;
            """,
            (like, like, like),
        )
        rows = await cur.fetchall()
        await cur.close()
    return [_row_to_profile(r) for r in rows]


async def set_dealer_verified(uid: int, verified: bool) -> bool:
    """Admin: mark a dealer as verified (or revoke it). False if not a dealer."""
    async with connect() as conn:
        cur = await conn.execute(
            "UPDATE profiles SET is_verified = ? WHERE id = ? AND user_type = 'dealer';",
            (1 if verified else 0, uid),
        )
        await conn.commit()
        return cur.rowcount > 0


async def set_user_type(uid: int, user_type: str) -> bool:
    """Admin: switch a customer between retail and dealer."""
    if user_type not in ("retail", "dealer"):
        raise ValueError(f"Unknown user type: {user_type}")
    return await _update_columns("profiles", uid, ("user_type",), {"user_type": user_type})


# ---------------------------
# Catalog
# ---------------------------

_CATALOG_SELECT = """
    SELECT p.id, p.product_code, p.name, p.image_url, p.mrp, p.retail_price,
           p.wholesale_price, p.stock, c.name AS category_name, b.name AS brand_name
    FROM products p
    LEFT JOIN categories c ON c.id = p.category_id
    LEFT JOIN brands b ON b.id = p.brand_id
"""


def _row_to_catalog(row) -> models.CatalogProduct:
    return models.CatalogProduct(
        id=row["id"],
        code=row["product_code"],
        name=row["name"],
        image=row["image_url"],
        mrp=_dec(row["mrp"]),
        retail_price=_dec(row["retail_price"]),
        wholesale_price=_dec(row["wholesale_price"]),
        stock=row["stock"],
        category_name=row["category_name"],
        brand_name=row["brand_name"],
    )


async def list_catalog(
    query: str = "", category_id: Optional[int] = None
) -> List[models.CatalogProduct]:
    """
    Visible products for the storefront.
    Case-insensitive match on name or product code; optional category filter.
    """
    like = f"%{(query or '').strip().lower()}%"
    params: List[Any] = [like, like]
    sql = (
        _CATALOG_SELECT
        + " WHERE p.is_visible = 1 AND (LOWER(p.name) LIKE ? OR LOWER(p.product_code) LIKE ?)"
    )
    if category_id is not None:
        sql += " AND p.category_id = ?"
        params.append(category_id)
    sql += " ORDER BY p.product_code;"
    async with connect() as conn:
        cur = await conn.execute(sql, tuple(params))
        rows = await cur.fetchall()
        await cur.close()
    return [_row_to_catalog(r) for r in rows]


async def get_catalog_product(pid: int) -> Optional[models.CatalogProduct]:
    async with connect() as conn:
        cur = await conn.execute(_CATALOG_SELECT + " WHERE p.id = ?;", (pid,))
        row = await cur.fetchone()
        await cur.close()
    return _row_to_catalog(row) if row else None


async def list_products(query: str = "") -> List[models.Product]:
    """Admin listing, hidden products included."""
    like = f"%{(query or '').strip().lower()}%"
    async with connect() as conn:
        cur = await conn.execute(
            """
            SELECT * FROM products
            WHERE LOWER(name) LIKE ? OR LOWER(product_code) LIKE ?
            ORDER BY product_code;
            """,
            (like, like),
        )
        rows = await cur.fetchall()
        await cur.close()
    return [_row_to_product(r) for r in rows]


async def get_product(pid: int) -> Optional[models.Product]:
    """Fetch a product by id."""
    async with connect() as conn:
        cur = await conn.execute("SELECT * FROM products WHERE id = ?;", (pid,))
        row = await cur.fetchone()
        await cur.close()
    return _row_to_product(row) if row else None


async def count_products() -> int:
    async with connect() as conn:
        cur = await conn.execute("SELECT COUNT(*) FROM products;")
        row = await cur.fetchone()
        await cur.close()
    return int(row[0])


_PRODUCT_COLUMNS = (
    "product_code",
    "name",
    "image_url",
    "mrp",
    "retail_price",
    "wholesale_price",
    "stock",
    "category_id",
    "brand_id",
    "is_visible",
)


def _check_product_prices(fields: Dict[str, Any]) -> None:
    for col in ("mrp", "retail_price", "wholesale_price"):
        if col in fields and Decimal(fields[col]) < 0:
            raise ValueError(f"{col} cannot be negative")
    if "stock" in fields and int(fields["stock"]) < 0:
        raise ValueError("stock cannot be negative")


async def create_product(
    product_code: str,
    name: str,
    mrp: Decimal,
    retail_price: Decimal,
    wholesale_price: Decimal,
    stock: int = 0,
    category_id: Optional[int] = None,
    brand_id: Optional[int] = None,
    image_url: Optional[str] = None,
    is_visible: bool = True,
) -> int:
    fields = dict(
        product_code=product_code.strip(),
        name=name.strip(),
        image_url=image_url,
        mrp=Decimal(mrp),
        retail_price=Decimal(retail_price),
        wholesale_price=Decimal(wholesale_price),
        stock=int(stock),
        category_id=category_id,
        brand_id=brand_id,
        is_visible=1 if is_visible else 0,
    )
    if not fields["product_code"] or not fields["name"]:
        raise ValueError("Product code and name are required.")
    _check_product_prices(fields)
    async with connect() as conn:
        cur = await conn.execute(
            f"INSERT INTO products({', '.join(fields)}) "
            f"VALUES ({', '.join('?' * len(fields))});",
            tuple(fields.values()),
        )
        await conn.commit()
        return cur.lastrowid


async def update_product(pid: int, **fields) -> bool:
    """Update only provided fields. Return True if a row was updated."""
    _check_product_prices(fields)
    if "is_visible" in fields:
        fields["is_visible"] = 1 if fields["is_visible"] else 0
    return await _update_columns("products", pid, _PRODUCT_COLUMNS, fields)


async def toggle_product_visibility(pid: int) -> Optional[bool]:
    return await _toggle_flag("products", "is_visible", pid)


async def delete_product(pid: int) -> bool:
    return await _delete_row("products", pid)


async def list_categories(active_only: bool = False) -> List[models.Category]:
    """Categories in display order, each with its product count."""
    async with connect() as conn:
        cur = await conn.execute(
            f"""
            SELECT c.id, c.name, c.description, c.display_order, c.is_active,
                   COUNT(p.id) AS product_count
            FROM categories c
            LEFT JOIN products p ON p.category_id = c.id
            {"WHERE c.is_active = 1" if active_only else ""}
            GROUP BY c.id
            ORDER BY c.display_order, c.name;
            """
        )
        rows = await cur.fetchall()
        await cur.close()
    return [
        models.Category(
            id=r["id"],
            name=r["name"],
            description=r["description"],
            display_order=r["display_order"],
            is_active=bool(r["is_active"]),
            product_count=r["product_count"],
        )
        for r in rows
    ]


async def create_category(
    name: str, description: Optional[str] = None, display_order: int = 0
) -> int:
    if not name.strip():
        raise ValueError("Category name is required.")
    async with connect() as conn:
        cur = await conn.execute(
            "INSERT INTO categories(name, description, display_order) VALUES (?, ?, ?);",
            (name.strip(), description, display_order),
        )
        await conn.commit()
        return cur.lastrowid


async def update_category(category_id: int, **fields) -> bool:
    return await _update_columns(
        "categories", category_id, ("name", "description", "display_order"), fields
    )


async def toggle_category(category_id: int) -> Optional[bool]:
    return await _toggle_flag("categories", "is_active", category_id)


async def delete_category(category_id: int) -> bool:
    """Products of a deleted category become uncategorized."""
    return await _delete_row("categories", category_id)


async def list_brands() -> List[models.Brand]:
    async with connect() as conn:
        cur = await conn.execute(
            """
            SELECT b.id, b.name, b.is_active, COUNT(p.id) AS product_count
            FROM brands b
            LEFT JOIN products p ON p.brand_id = b.id
            GROUP BY b.id
            ORDER BY b.name;
            """
        )
        rows = await cur.fetchall()
        await cur.close()
    return [
        models.Brand(
            id=r["id"],
            name=r["name"],
            is_active=bool(r["is_active"]),
            product_count=r["product_count"],
        )
        for r in rows
    ]


async def create_brand(name: str) -> int:
    if not name.strip():
        raise ValueError("Brand name is required.")
    async with connect() as conn:
        cur = await conn.execute("INSERT INTO brands(name) VALUES (?);", (name.strip(),))
        await conn.commit()
        return cur.lastrowid


async def update_brand(brand_id: int, name: str) -> bool:
    return await _update_columns("brands", brand_id, ("name",), {"name": name.strip()})


async def toggle_brand(brand_id: int) -> Optional[bool]:
    return await _toggle_flag("brands", "is_active", brand_id)


async def delete_brand(brand_id: int) -> bool:
    return await _delete_row("brands", brand_id)


# ---------------------------
# Orders
# ---------------------------


async def next_order_number() -> str:
    """Allocate the next value of the order sequence, e.g. GKP-000042."""
    async with connect() as conn:
        await conn.execute(
            "INSERT OR IGNORE INTO order_sequence(id, last_number) VALUES (1, 0);"
        )
        await conn.execute(
            "UPDATE order_sequence SET last_number = last_number + 1 WHERE id = 1;"
        )
        cur = await conn.execute("SELECT last_number FROM order_sequence WHERE id = 1;")
        row = await cur.fetchone()
        await cur.close()
        await conn.commit()
    return f"GKP-{int(row[0]):06d}"


async def insert_order(
    order_number: str,
    customer_id: Optional[int],
    customer_name: str,
    customer_phone: str,
    customer_address: str,
    notes: Optional[str],
    total_items: int,
    total_amount: Decimal,
    discount_amount: Decimal,
    final_amount: Decimal,
    user_type: str,
    created_at: Optional[datetime] = None,
) -> int:
    """Insert an order header in 'pending' state and return its id."""
    async with connect() as conn:
        cur = await conn.execute(
            """
            INSERT INTO orders(order_number, customer_id, customer_name, customer_phone,
                               customer_address, notes, total_items, total_amount,
                               discount_amount, final_amount, user_type, status, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, 'pending', ?);
            """,
            (
                order_number,
                customer_id,
                customer_name,
                customer_phone,
                customer_address,
                notes,
                total_items,
                total_amount,
                discount_amount,
                final_amount,
                user_type,
                _ts(created_at),
            ),
        )
        await conn.commit()
        return cur.lastrowid


async def insert_order_items(order_id: int, items: Iterable) -> None:
    """
    Insert one order_items row per cart line, snapshotting name, code and price.
    `items` are cart line items (product_id, name, product_code, quantity, price).
    """
    rows = [
        (
            order_id,
            item.product_id,
            item.name,
            item.product_code or None,
            item.quantity,
            item.price,
            item.price * item.quantity,
        )
        for item in items
    ]
    async with connect() as conn:
        await conn.executemany(
            """
            INSERT INTO order_items(order_id, product_id, product_name, product_code,
                                    quantity, unit_price, total_price)
            VALUES (?, ?, ?, ?, ?, ?, ?);
            """,
            rows,
        )
        await conn.commit()


async def list_orders(customer_id: int) -> List[models.Order]:
    """A customer's orders, newest first."""
    async with connect() as conn:
        cur = await conn.execute(
            "SELECT * FROM orders WHERE customer_id = ? ORDER BY created_at DESC, id DESC;",
            (customer_id,),
        )
        rows = await cur.fetchall()
        await cur.close()
    return [_row_to_order(r) for r in rows]


async def list_all_orders(
    status: Optional[str] = None,
    since: Optional[datetime] = None,
    until: Optional[datetime] = None,
    limit: Optional[int] = None,
) -> List[models.Order]:
    """Admin listing, newest first, with optional status and date window."""
    clauses, params = [], []
    if status:
        clauses.append("status = ?")
        params.append(status)
    if since:
        clauses.append("created_at >= ?")
        params.append(_ts(since))
    if until:
        clauses.append("created_at <= ?")
        params.append(_ts(until))
    sql = "SELECT * FROM orders"
    if clauses:
        sql += " WHERE " + " AND ".join(clauses)
    sql += " ORDER BY created_at DESC, id DESC"
    if limit:
        sql += " LIMIT ?"
        params.append(limit)
    async with connect() as conn:
        cur = await conn.execute(sql + ";", tuple(params))
        rows = await cur.fetchall()
        await cur.close()
    return [_row_to_order(r) for r in rows]


async def get_order(order_id: int) -> Optional[models.Order]:
    async with connect() as conn:
        cur = await conn.execute("SELECT * FROM orders WHERE id = ?;", (order_id,))
        row = await cur.fetchone()
        await cur.close()
    return _row_to_order(row) if row else None


async def get_order_items(order_id: int) -> List[models.OrderItem]:
    async with connect() as conn:
        cur = await conn.execute(
            "SELECT * FROM order_items WHERE order_id = ? ORDER BY id;", (order_id,)
        )
        rows = await cur.fetchall()
        await cur.close()
    return [
        models.OrderItem(
            id=r["id"],
            order_id=r["order_id"],
            product_id=r["product_id"],
            product_name=r["product_name"],
            product_code=r["product_code"],
            quantity=r["quantity"],
            unit_price=_dec(r["unit_price"]),
            total_price=_dec(r["total_price"]),
        )
        for r in rows
    ]


async def update_order_status(order_id: int, new_status: str) -> models.Order:
    """
    Move an order along its lifecycle and return the updated order.
    Setting the current status again is a no-op; any other move the lifecycle
    does not allow raises ValueError.
    """
    if new_status not in order_status.ORDER_STATUSES:
        raise ValueError(f"Unknown order status: {new_status}")
    order = await get_order(order_id)
    if order is None:
        raise ValueError(f"Order {order_id} not found")
    if order.status == new_status:
        return order
    if not order_status.can_transition(order.status, new_status):
        raise ValueError(f"Cannot move order from {order.status} to {new_status}")

    async with connect() as conn:
        await conn.execute(
            "UPDATE orders SET status = ? WHERE id = ?;", (new_status, order_id)
        )
        await conn.commit()
    _logger.info(
        f"Order {order.order_number} status changed: {order.status} -> {new_status}"
    )
    return await get_order(order_id)


# ---------------------------
# Wallet
# ---------------------------


async def get_wallet_balance(uid: int) -> Decimal:
    async with connect() as conn:
        cur = await conn.execute(
            "SELECT wallet_balance FROM profiles WHERE id = ?;", (uid,)
        )
        row = await cur.fetchone()
        await cur.close()
    if not row:
        raise ValueError(f"No profile for user {uid}")
    return _dec(row[0])


async def _record_transaction(
    conn, uid: int, amount: Decimal, trans_type: str, description: str, reference_id=None
) -> None:
    await conn.execute(
        """
        INSERT INTO wallet_transactions(user_id, amount, transaction_type, description,
                                        reference_id, created_at)
        VALUES (?, ?, ?, ?, ?, ?);
        """,
        (uid, amount, trans_type, description, reference_id, _ts()),
    )


async def _adjust_balance(conn, uid: int, delta: Decimal) -> Optional[Decimal]:
    """
    Add `delta` to a wallet inside an IMMEDIATE transaction on `conn`.
    Returns the new balance, or None (transaction rolled back) when the
    profile is missing or the balance would go negative.
    """
    await conn.execute("BEGIN IMMEDIATE;")
    cur = await conn.execute(
        "SELECT wallet_balance FROM profiles WHERE id = ?;", (uid,)
    )
    row = await cur.fetchone()
    await cur.close()
    if not row:
        await conn.rollback()
        return None
    balance = _dec(row[0]) + delta
    if balance < 0:
        await conn.rollback()
        return None
    await conn.execute(
        "UPDATE profiles SET wallet_balance = ? WHERE id = ?;", (balance, uid)
    )
    return balance


async def apply_wallet_discount(
    uid: int, order_id: int, amount: Decimal, description: str
) -> Decimal:
    """
    Debit `amount` from the wallet for an order and return the new balance.
    Raises ValueError (nothing written) when the balance is insufficient.
    """
    amount = Decimal(amount)
    if amount <= 0:
        raise ValueError("Deduction must be positive.")
    async with connect() as conn:
        balance = await _adjust_balance(conn, uid, -amount)
        if balance is None:
            raise ValueError("Insufficient wallet balance.")
        await _record_transaction(conn, uid, -amount, "purchase", description, order_id)
        await conn.commit()
    return balance


async def list_wallet_transactions(
    uid: int, limit: int = 20
) -> List[models.WalletTransaction]:
    async with connect() as conn:
        cur = await conn.execute(
            """
            SELECT * FROM wallet_transactions
            WHERE user_id = ?
            ORDER BY created_at DESC, id DESC
            LIMIT ?;
            """,
            (uid, limit),
        )
        rows = await cur.fetchall()
        await cur.close()
    return [
        models.WalletTransaction(
            id=r["id"],
            user_id=r["user_id"],
            amount=_dec(r["amount"]),
            transaction_type=r["transaction_type"],
            description=r["description"],
            reference_id=r["reference_id"],
            created_at=_dt(r["created_at"]),
        )
        for r in rows
    ]


async def admin_wallet_transaction(
    uid: int, amount: Decimal, trans_type: str, description: str = ""
) -> Decimal:
    """
    Admin credit or debit of a positive `amount`; returns the new balance.
    A debit larger than the balance raises ValueError.
    """
    amount = Decimal(amount)
    if trans_type not in ("credit", "debit"):
        raise ValueError(f"Unknown transaction type: {trans_type}")
    if amount <= 0:
        raise ValueError("Amount must be positive.")
    signed = amount if trans_type == "credit" else -amount
    async with connect() as conn:
        balance = await _adjust_balance(conn, uid, signed)
        if balance is None:
            raise ValueError("Insufficient balance or unknown user.")
        await _record_transaction(
            conn, uid, signed, trans_type, description or f"Admin {trans_type}"
        )
        await conn.commit()
    _logger.info(f"Admin {trans_type} of {amount} for user {uid}")
    return balance


# ---------------------------
# Referrals
# ---------------------------

_REFERRAL_SELECT = """
    SELECT r.*, rr.full_name AS referrer_name, rd.full_name AS referred_name,
           rd.email AS referred_email
    FROM referrals r
    LEFT JOIN profiles rr ON rr.id = r.referrer_id
    LEFT JOIN profiles rd ON rd.id = r.referred_id
"""


async def list_referrals(referrer_id: int) -> List[models.Referral]:
    """Referrals made by one user, newest first."""
    async with connect() as conn:
        cur = await conn.execute(
            _REFERRAL_SELECT + " WHERE r.referrer_id = ? ORDER BY r.created_at DESC;",
            (referrer_id,),
        )
        rows = await cur.fetchall()
        await cur.close()
    return [_row_to_referral(r) for r in rows]


async def list_all_referrals() -> List[models.Referral]:
    async with connect() as conn:
        cur = await conn.execute(_REFERRAL_SELECT + " ORDER BY r.created_at DESC;")
        rows = await cur.fetchall()
        await cur.close()
    return [_row_to_referral(r) for r in rows]


async def claim_referral_bonus(referral_id: int) -> bool:
    """
    Release a referral bonus into both wallets and mark the referral claimed.
    Returns False if the referral is missing or already claimed.
    """
    settings = await get_site_settings()
    async with connect() as conn:
        await conn.execute("BEGIN IMMEDIATE;")
        cur = await conn.execute(
            _REFERRAL_SELECT + " WHERE r.id = ? AND r.is_claimed = 0;", (referral_id,)
        )
        row = await cur.fetchone()
        await cur.close()
        if not row:
            await conn.rollback()
            return False
        referral = _row_to_referral(row)
        referrer_bonus = (
            referral.bonus_amount
            if referral.bonus_amount is not None
            else settings.referral_bonus
        )
        referred_bonus = settings.referral_bonus_referred

        credits = (
            (
                referral.referrer_id,
                referrer_bonus,
                f"Referral bonus for {referral.referred_name}",
            ),
            (referral.referred_id, referred_bonus, "Signup referral bonus"),
        )
        for uid, bonus, description in credits:
            if bonus <= 0:
                continue
            cur = await conn.execute(
                "SELECT wallet_balance FROM profiles WHERE id = ?;", (uid,)
            )
            balance_row = await cur.fetchone()
            await cur.close()
            if not balance_row:
                continue
            await conn.execute(
                "UPDATE profiles SET wallet_balance = ? WHERE id = ?;",
                (_dec(balance_row[0]) + bonus, uid),
            )
            await _record_transaction(
                conn, uid, bonus, "referral_bonus", description, referral.id
            )
        await conn.execute(
            "UPDATE referrals SET is_claimed = 1, bonus_amount = ? WHERE id = ?;",
            (referrer_bonus, referral_id),
        )
        await conn.commit()
    _logger.info(f"Referral {referral_id} claimed")
    return True


# ---------------------------
# Site settings
# ---------------------------


async def get_site_settings() -> SiteSettings:
    """
    Stored settings merged over the defaults.
    Unknown keys and values that fail their field's validation are skipped.
    """
    async with connect() as conn:
        cur = await conn.execute("SELECT key, value FROM site_settings;")
        rows = await cur.fetchall()
        await cur.close()

    settings = SiteSettings()
    for row in rows:
        key = row["key"]
        if key not in SETTING_KEYS:
            continue
        try:
            setattr(settings, key, json.loads(row["value"]))
        except (ValueError, pydantic.ValidationError) as e:
            _logger.warning(f"Ignoring stored setting {key}: {e}")
    return settings


async def save_site_settings(settings: SiteSettings) -> None:
    now = _ts()
    async with connect() as conn:
        await conn.executemany(
            """
            INSERT INTO site_settings(key, value, updated_at) VALUES (?, ?, ?)
            ON CONFLICT(key) DO UPDATE SET value = excluded.value,
                                           updated_at = excluded.updated_at;
            """,
            [(k, json.dumps(v), now) for k, v in settings.to_rows().items()],
        )
        await conn.commit()
    _logger.info("Site settings saved")


# ---------------------------
# Announcements
# ---------------------------


async def list_announcements() -> List[models.Announcement]:
    async with connect() as conn:
        cur = await conn.execute(
            "SELECT * FROM announcements ORDER BY display_order, id;"
        )
        rows = await cur.fetchall()
        await cur.close()
    return [_row_to_announcement(r) for r in rows]


async def list_active_announcements(
    now: Optional[datetime] = None,
) -> List[models.Announcement]:
    """Active, show-on-load announcements whose optional window contains `now`."""
    ts = _ts(now)
    async with connect() as conn:
        cur = await conn.execute(
            """
            SELECT * FROM announcements
            WHERE is_active = 1 AND show_on_load = 1
              AND (start_date IS NULL OR start_date <= ?)
              AND (end_date IS NULL OR end_date >= ?)
            ORDER BY display_order, id;
            """,
            (ts, ts),
        )
        rows = await cur.fetchall()
        await cur.close()
    return [_row_to_announcement(r) for r in rows]


async def create_announcement(
    title: str,
    content: Optional[str] = None,
    popup_type: str = "announcement",
    show_on_load: bool = True,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    display_order: int = 0,
) -> int:
    if not title.strip():
        raise ValueError("Announcement title is required.")
    if start_date and end_date and end_date < start_date:
        raise ValueError("End date must be after start date.")
    async with connect() as conn:
        cur = await conn.execute(
            """
            INSERT INTO announcements(title, content, popup_type, show_on_load,
                                      start_date, end_date, display_order)
            VALUES (?, ?, ?, ?, ?, ?, ?);
            """,
            (
                title.strip(),
                content,
                popup_type,
                1 if show_on_load else 0,
                _ts(start_date) if start_date else None,
                _ts(end_date) if end_date else None,
                display_order,
            ),
        )
        await conn.commit()
        return cur.lastrowid


async def update_announcement(announcement_id: int, **fields) -> bool:
    for col in ("start_date", "end_date"):
        if isinstance(fields.get(col), datetime):
            fields[col] = _ts(fields[col])
    return await _update_columns(
        "announcements",
        announcement_id,
        (
            "title",
            "content",
            "popup_type",
            "show_on_load",
            "start_date",
            "end_date",
            "display_order",
        ),
        fields,
    )


async def toggle_announcement(announcement_id: int) -> Optional[bool]:
    return await _toggle_flag("announcements", "is_active", announcement_id)


async def delete_announcement(announcement_id: int) -> bool:
    return await _delete_row("announcements", announcement_id)
