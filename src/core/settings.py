"""
Site settings edited from the admin panel.

Every setting is an explicit field with a default; constrained fields carry
their own validator so one bad value is reported against its field.
"""

from __future__ import annotations

import re
from decimal import Decimal
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from core.pricing import DEALER

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class SiteSettings(BaseModel):
    model_config = ConfigDict(validate_assignment=True, extra="ignore")

    # store information
    store_name: str = Field("GKP Crackers", min_length=1)
    store_tagline: str = "Premium Crackers at Best Prices"
    store_email: str = "info@gkpcrackers.com"
    store_phone: str = "+91 98765 43210"
    store_whatsapp: str = "+91 86101 53961"
    store_address: str = "123 Main Street, Chennai, Tamil Nadu 600001"
    store_timings: str = "9:00 AM - 9:00 PM"

    # orders
    min_order_value: Decimal = Decimal(500)
    min_order_value_dealer: Decimal = Decimal(1000)
    # informational only: stored and edited, never applied to order totals
    delivery_charge: Decimal = Decimal(50)
    free_delivery_above: Decimal = Decimal(2000)
    dealer_discount: Decimal = Decimal(10)  # percent
    retail_discount: Decimal = Decimal(5)  # percent

    # referrals
    referral_bonus: Decimal = Decimal(50)  # credited to the referrer
    referral_bonus_referred: Decimal = Decimal(25)  # credited to the new user

    # features
    enable_notifications: bool = True
    enable_referrals: bool = True
    enable_wallet: bool = True
    maintenance_mode: bool = False

    @field_validator("store_email")
    @classmethod
    def _check_email(cls, v: str) -> str:
        v = v.strip()
        if v and not _EMAIL_RE.match(v):
            raise ValueError("not a valid email address")
        return v

    @field_validator("store_phone", "store_whatsapp")
    @classmethod
    def _check_phone(cls, v: str) -> str:
        v = v.strip()
        digits = re.sub(r"\D", "", v)
        if not 10 <= len(digits) <= 15:
            raise ValueError("phone number must have 10 to 15 digits")
        if re.search(r"[^\d\s+()-]", v):
            raise ValueError("phone number may only contain digits, spaces, + ( ) -")
        return v

    @field_validator(
        "min_order_value",
        "min_order_value_dealer",
        "delivery_charge",
        "free_delivery_above",
        "referral_bonus",
        "referral_bonus_referred",
    )
    @classmethod
    def _check_amount(cls, v: Decimal) -> Decimal:
        if v < 0:
            raise ValueError("amount cannot be negative")
        return v

    @field_validator("dealer_discount", "retail_discount")
    @classmethod
    def _check_percent(cls, v: Decimal) -> Decimal:
        if not 0 <= v <= 100:
            raise ValueError("percentage must be between 0 and 100")
        return v

    def minimum_order_value(self, classification: Optional[str]) -> Decimal:
        if classification == DEALER:
            return self.min_order_value_dealer
        return self.min_order_value

    @property
    def whatsapp_number(self) -> str:
        return re.sub(r"\D", "", self.store_whatsapp)

    def to_rows(self) -> Dict[str, Any]:
        """Key/value pairs as stored by the backend (JSON-compatible)."""
        return self.model_dump(mode="json")


SETTING_KEYS = tuple(SiteSettings.model_fields)
