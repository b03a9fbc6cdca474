from textual import on, work
from textual.app import ComposeResult
from textual.containers import Vertical
from textual.events import ScreenResume
from textual.widgets import Button, MarkdownViewer

import db.crud
from core.errors import NetworkError
from core.referrals import summarize_referrals
from utils.messages import WalletChangedMessage
from utils.pure import format_currency, generate_markdown_table
from views.base_screen import BaseScreen


class WalletScreen(BaseScreen):
    """
    Wallet balance, recent transactions, and the user's referral code and
    referral earnings.
    """

    def compose(self) -> ComposeResult:
        yield from super().compose()
        with Vertical():
            yield MarkdownViewer(id="md-wallet", show_table_of_contents=False)
            yield Button("Refresh", id="btn-refresh")

    @on(ScreenResume)
    @on(Button.Pressed, "#btn-refresh")
    @work(exclusive=True)
    async def handle_reload(self) -> None:
        state = self.app.state
        if state.uid is None or state.wallet is None:
            await self.query_one(MarkdownViewer).document.update(
                "### Log in to see your wallet."
            )
            return

        try:
            balance = await state.wallet.refresh()
        except NetworkError as e:
            self.notify(str(e), severity="error")
            balance = state.wallet.known_balance
        else:
            self.app.post_message(WalletChangedMessage())

        transactions = await db.crud.list_wallet_transactions(state.uid)
        md = f"### Wallet Balance: {format_currency(balance)}\n\n"
        if state.settings.enable_wallet:
            md += "Your balance can be used as a discount at checkout.\n\n"
        else:
            md += "Wallet discounts are currently disabled by the store.\n\n"

        md += "#### Recent Transactions\n\n"
        rows = [
            [
                f"{t.created_at:%d %b %Y}" if t.created_at else "-",
                t.transaction_type.replace("_", " ").capitalize(),
                t.description or "",
                format_currency(t.amount),
            ]
            for t in transactions
        ]
        md += (
            generate_markdown_table(
                ["Date", "Type", "Description", "Amount"], rows, ["l", "l", "l", "r"]
            )
            or "_No transactions yet._"
        )

        if state.settings.enable_referrals and state.profile:
            referrals = await db.crud.list_referrals(state.uid)
            stats = summarize_referrals(referrals)
            md += (
                "\n\n### Refer & Earn\n\n"
                f"Your referral code: **{state.profile.referral_code}**  \n"
                f"Friends who sign up with it earn you "
                f"{format_currency(state.settings.referral_bonus)} each.\n\n"
                f"- Total referrals: {stats.total}\n"
                f"- Claimed: {stats.claimed}\n"
                f"- Pending: {stats.pending}\n"
                f"- Earnings: {format_currency(stats.earnings)}\n\n"
            )
            ref_rows = [
                [
                    r.referred_name or "-",
                    f"{r.created_at:%d %b %Y}" if r.created_at else "-",
                    "Claimed" if r.is_claimed else "Pending",
                    format_currency(r.bonus_amount or 0),
                ]
                for r in referrals
            ]
            md += generate_markdown_table(
                ["Friend", "Joined", "Status", "Bonus"], ref_rows, ["l", "l", "c", "r"]
            )

        await self.query_one(MarkdownViewer).document.update(md)
