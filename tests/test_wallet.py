import unittest
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import aiosqlite

from core.errors import NetworkError, WalletDeductionError
from core.wallet import WalletLedger


def make_backend(balance="100") -> MagicMock:
    backend = MagicMock()
    backend.get_wallet_balance = AsyncMock(return_value=Decimal(balance))
    backend.apply_wallet_discount = AsyncMock(return_value=Decimal(balance))
    return backend


class WalletLedgerTestCase(unittest.IsolatedAsyncioTestCase):
    async def test_refresh_updates_known_balance(self):
        backend = make_backend("275.50")
        wallet = WalletLedger(1001, Decimal(0), backend=backend)
        self.assertEqual(await wallet.refresh(), Decimal("275.50"))
        self.assertEqual(wallet.known_balance, Decimal("275.50"))

    async def test_refresh_failure_is_network_error(self):
        backend = make_backend()
        backend.get_wallet_balance.side_effect = aiosqlite.OperationalError("gone")
        wallet = WalletLedger(1001, Decimal(40), backend=backend)
        with self.assertRaises(NetworkError):
            await wallet.refresh()
        self.assertEqual(wallet.known_balance, Decimal(40))

    async def test_refresh_for_missing_profile_is_network_error(self):
        backend = make_backend()
        backend.get_wallet_balance.side_effect = ValueError("No profile for user 1001")
        wallet = WalletLedger(1001, Decimal(40), backend=backend)
        with self.assertRaises(NetworkError):
            await wallet.refresh()
        self.assertEqual(wallet.known_balance, Decimal(40))

    async def test_debit_survives_failed_lookup_afterwards(self):
        backend = make_backend()
        backend.get_wallet_balance.side_effect = ValueError("No profile for user 1001")
        wallet = WalletLedger(1001, Decimal(100), backend=backend)
        await wallet.apply_discount(7, Decimal(60))
        backend.apply_wallet_discount.assert_awaited_once()

    async def test_rejects_non_positive_and_excess_amounts(self):
        backend = make_backend()
        wallet = WalletLedger(1001, Decimal(100), backend=backend)
        for amount in (Decimal(0), Decimal(-5), Decimal("100.01")):
            with self.subTest(amount=amount):
                with self.assertRaises(WalletDeductionError):
                    await wallet.apply_discount(1, amount)
        backend.apply_wallet_discount.assert_not_awaited()

    async def test_successful_debit_refreshes_once(self):
        backend = make_backend("40")
        wallet = WalletLedger(1001, Decimal(100), backend=backend)
        await wallet.apply_discount(7, Decimal(60), order_number="GKP-000007")

        backend.apply_wallet_discount.assert_awaited_once_with(
            1001, 7, Decimal(60), "Used for order GKP-000007"
        )
        backend.get_wallet_balance.assert_awaited_once_with(1001)
        self.assertEqual(wallet.known_balance, Decimal(40))

    async def test_failed_debit_is_not_retried_and_still_refreshes(self):
        backend = make_backend("100")
        backend.apply_wallet_discount.side_effect = ValueError("Insufficient")
        wallet = WalletLedger(1001, Decimal(100), backend=backend)

        with self.assertRaises(WalletDeductionError):
            await wallet.apply_discount(7, Decimal(60))
        self.assertEqual(backend.apply_wallet_discount.await_count, 1)
        backend.get_wallet_balance.assert_awaited_once()

    async def test_failed_refresh_after_debit_is_not_fatal(self):
        backend = make_backend()
        backend.get_wallet_balance.side_effect = OSError("offline")
        wallet = WalletLedger(1001, Decimal(100), backend=backend)
        await wallet.apply_discount(7, Decimal(60))
        # cache is left as it was until the next successful refresh
        self.assertEqual(wallet.known_balance, Decimal(100))


if __name__ == "__main__":
    unittest.main()
