from __future__ import annotations

from decimal import Decimal
from typing import Optional

import aiosqlite

import db.crud as crud
from core.errors import NetworkError, WalletDeductionError
from utils.logger import get_logger

_logger = get_logger(__name__)

_BACKEND_ERRORS = (aiosqlite.Error, OSError)


class WalletLedger:
    """
    Client-side view of one user's wallet.

    `known_balance` is a cache of the authoritative balance. It only changes
    through `refresh()`, which is called after every deduction request
    whether or not the request succeeded.
    """

    def __init__(
        self,
        user_id: int,
        known_balance: Decimal = Decimal(0),
        backend=crud,
    ):
        self.user_id = user_id
        self.known_balance = Decimal(known_balance)
        self._backend = backend

    async def refresh(self) -> Decimal:
        try:
            balance = await self._backend.get_wallet_balance(self.user_id)
        except (ValueError, *_BACKEND_ERRORS) as e:
            raise NetworkError(f"Could not load wallet balance: {e}") from e
        self.known_balance = Decimal(balance)
        return self.known_balance

    async def apply_discount(
        self, order_id: int, amount: Decimal, order_number: Optional[str] = None
    ) -> None:
        """
        Request one debit of `amount` against the wallet for `order_id`.
        Never retried; a failure is raised once as WalletDeductionError.
        """
        amount = Decimal(amount)
        if amount <= 0:
            raise WalletDeductionError("Wallet deduction must be a positive amount.")
        if amount > self.known_balance:
            raise WalletDeductionError(
                f"Wallet deduction of {amount} exceeds the available balance "
                f"of {self.known_balance}."
            )

        description = f"Used for order {order_number or order_id}"
        failure: Optional[Exception] = None
        try:
            await self._backend.apply_wallet_discount(
                self.user_id, order_id, amount, description
            )
            _logger.info(f"Wallet debit {amount} for user {self.user_id} ({description})")
        except (ValueError, *_BACKEND_ERRORS) as e:
            failure = e
            _logger.error(f"Wallet debit failed for user {self.user_id}: {e}")

        try:
            await self.refresh()
        except NetworkError as e:
            _logger.warning(f"Wallet refresh after debit failed: {e}")

        if failure is not None:
            raise WalletDeductionError(
                "Your order was placed, but the wallet discount could not be "
                f"applied ({failure}). Your balance will update shortly."
            ) from failure
