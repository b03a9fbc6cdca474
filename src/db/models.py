# provide dataclass models

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional


@dataclass(frozen=True)
class User:
    uid: int
    email: str
    role: str  # "customer" or "admin"


@dataclass(frozen=True)
class Profile:
    id: int
    full_name: str
    email: str
    phone: Optional[str]
    user_type: str  # "retail" or "dealer"
    business_name: Optional[str]
    gst_number: Optional[str]
    address: Optional[str]
    referral_code: Optional[str]
    wallet_balance: Decimal
    is_verified: bool
    created_at: Optional[datetime] = None


@dataclass(frozen=True)
class Category:
    id: int
    name: str
    description: Optional[str]
    display_order: int
    is_active: bool
    product_count: int = 0


@dataclass(frozen=True)
class Brand:
    id: int
    name: str
    is_active: bool
    product_count: int = 0


@dataclass(frozen=True)
class Product:
    id: int
    product_code: str
    name: str
    image_url: Optional[str]
    mrp: Decimal
    retail_price: Decimal
    wholesale_price: Decimal
    stock: int
    category_id: Optional[int]
    brand_id: Optional[int]
    is_visible: bool


@dataclass(frozen=True)
class CatalogProduct:
    """Read-only catalog row handed to the storefront (names resolved)."""

    id: int
    code: str
    name: str
    image: Optional[str]
    mrp: Decimal
    retail_price: Decimal
    wholesale_price: Decimal
    stock: int
    category_name: Optional[str]
    brand_name: Optional[str]


@dataclass(frozen=True)
class Order:
    id: int
    order_number: str
    customer_id: Optional[int]
    customer_name: str
    customer_phone: str
    customer_address: str
    notes: Optional[str]
    total_items: int
    total_amount: Decimal  # before wallet discount
    discount_amount: Decimal
    final_amount: Decimal
    user_type: str
    status: str
    created_at: datetime


@dataclass(frozen=True)
class OrderItem:
    id: int
    order_id: int
    product_id: Optional[int]
    product_name: str
    product_code: Optional[str]
    quantity: int
    unit_price: Decimal  # unit price at time of order
    total_price: Decimal


@dataclass(frozen=True)
class WalletTransaction:
    id: int
    user_id: int
    amount: Decimal  # signed
    transaction_type: str  # credit | debit | purchase | referral_bonus
    description: Optional[str]
    reference_id: Optional[int]
    created_at: datetime


@dataclass(frozen=True)
class Referral:
    id: int
    referrer_id: int
    referred_id: int
    bonus_amount: Optional[Decimal]
    is_claimed: bool
    created_at: datetime
    referrer_name: Optional[str] = None
    referred_name: Optional[str] = None
    referred_email: Optional[str] = None


@dataclass(frozen=True)
class Announcement:
    id: int
    title: str
    content: Optional[str]
    popup_type: str  # announcement | offer | warning | info
    is_active: bool
    show_on_load: bool
    start_date: Optional[datetime]
    end_date: Optional[datetime]
    display_order: int
