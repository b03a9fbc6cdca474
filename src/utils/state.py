from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Literal, Optional

import db.crud as crud
from core.cart import CartStore, JsonFileStorage
from core.pricing import RETAIL, is_pending_dealer, is_verified_dealer
from core.settings import SiteSettings
from core.wallet import WalletLedger
from db.models import Profile
from utils import config
from utils.logger import get_logger

_logger = get_logger(__name__)


@dataclass
class GlobalState:
    """
    Centralized application state shared by screens.

    Fields:
      - uid: current logged-in user id (users.uid), None for guests
      - role: "customer" | "admin" | None if not logged in
      - profile: snapshot of the logged-in user's profile
      - cart: the session's cart store (persisted to device-local storage)
      - wallet: wallet ledger of the logged-in user
      - settings: last loaded site settings
    """

    cart: CartStore = field(
        default_factory=lambda: CartStore(JsonFileStorage(config.STORAGE_PATH))
    )
    uid: Optional[int] = None
    role: Optional[Literal["customer", "admin"]] = None
    profile: Optional[Profile] = None
    wallet: Optional[WalletLedger] = None
    settings: SiteSettings = field(default_factory=SiteSettings)
    is_guest: bool = False

    @property
    def classification(self) -> str:
        return self.profile.user_type if self.profile else RETAIL

    @property
    def is_verified_dealer(self) -> bool:
        return bool(self.profile) and is_verified_dealer(
            self.profile.user_type, self.profile.is_verified
        )

    @property
    def is_pending_dealer(self) -> bool:
        return bool(self.profile) and is_pending_dealer(
            self.profile.user_type, self.profile.is_verified
        )

    @property
    def wallet_balance(self) -> Decimal:
        return self.wallet.known_balance if self.wallet else Decimal(0)

    async def start_session(self, uid: int, role: str) -> None:
        self.uid = uid
        self.role = role
        self.is_guest = False
        await self.refresh_profile()
        await self.load_settings()

    def start_guest_session(self) -> None:
        self.uid = None
        self.role = None
        self.profile = None
        self.wallet = None
        self.is_guest = True

    async def refresh_profile(self) -> None:
        """Re-read the profile (and with it the wallet balance) from the backend."""
        if self.uid is None:
            return
        self.profile = await crud.get_profile(self.uid)
        if self.profile is None:
            self.wallet = None
            return
        if self.wallet is None or self.wallet.user_id != self.uid:
            self.wallet = WalletLedger(self.uid, self.profile.wallet_balance)
        else:
            self.wallet.known_balance = self.profile.wallet_balance

    async def load_settings(self) -> SiteSettings:
        self.settings = await crud.get_site_settings()
        return self.settings

    def end_session(self) -> None:
        """Called upon logging out; the cart stays on the device."""
        _logger.info(f"Session ended for {self.uid}")
        self.uid = None
        self.role = None
        self.profile = None
        self.wallet = None
        self.is_guest = False
