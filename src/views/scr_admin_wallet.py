from decimal import Decimal, InvalidOperation
from typing import Optional

from textual import on, work
from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical
from textual.events import ScreenResume
from textual.validation import Number
from textual.widgets import Button, Input, Label, MarkdownViewer, Select

import db.crud as crud
from utils.pure import format_currency, generate_markdown_table
from views.base_screen import BaseScreen
from views.modal_dialog import DialogModal


class AdminWalletScreen(BaseScreen):
    """Manual wallet credits and debits, with the customer's history."""

    def compose(self) -> ComposeResult:
        yield from super().compose()
        with Vertical():
            with Horizontal(id="hort-filters"):
                yield Label("Customer")
                yield Select([], id="select-customer", prompt="Choose a customer")
            yield MarkdownViewer(id="md-wallet", show_table_of_contents=False)
            with Horizontal(id="hort-controls"):
                yield Select(
                    [("Credit", "credit"), ("Debit", "debit")],
                    value="credit",
                    allow_blank=False,
                    id="select-type",
                )
                yield Input(
                    placeholder="Amount (₹)",
                    id="input-amount",
                    type="number",
                    validators=[Number(minimum=0.01)],
                )
                yield Input(placeholder="Description", id="input-description")
                yield Button("Apply", id="btn-apply", variant="success")

    @on(ScreenResume)
    async def handle_resume(self) -> None:
        profiles = await crud.list_profiles()
        select = self.query_one("#select-customer", Select)
        current = select.value
        select.set_options(
            [
                (f"{p.full_name} ({format_currency(p.wallet_balance)})", p.id)
                for p in profiles
            ]
        )
        if isinstance(current, int) and any(p.id == current for p in profiles):
            select.value = current
        self.render_history()

    @property
    def _uid(self) -> Optional[int]:
        value = self.query_one("#select-customer", Select).value
        return value if isinstance(value, int) else None

    @on(Select.Changed, "#select-customer")
    @work(exclusive=True)
    async def render_history(self) -> None:
        viewer = self.query_one(MarkdownViewer)
        if self._uid is None:
            await viewer.document.update(
                "### Choose a customer to manage their wallet."
            )
            return
        profile = await crud.get_profile(self._uid)
        transactions = await crud.list_wallet_transactions(self._uid, limit=50)
        rows = [
            [
                f"{t.created_at:%d %b %Y %H:%M}" if t.created_at else "-",
                t.transaction_type.replace("_", " "),
                t.description or "",
                format_currency(t.amount),
            ]
            for t in transactions
        ]
        md = (
            f"### {profile.full_name}: {format_currency(profile.wallet_balance)}\n\n"
            + (
                generate_markdown_table(
                    ["Date", "Type", "Description", "Amount"],
                    rows,
                    ["l", "l", "l", "r"],
                )
                or "_No transactions yet._"
            )
        )
        await viewer.document.update(md)

    @on(Button.Pressed, "#btn-apply")
    @work(exclusive=True, group="apply")
    async def handle_apply(self) -> None:
        uid = self._uid
        if uid is None:
            self.notify("Choose a customer first.", severity="warning")
            return
        try:
            amount = Decimal(self.query_one("#input-amount", Input).value)
            if not amount.is_finite():
                raise InvalidOperation
        except InvalidOperation:
            self.notify("Enter a valid amount.", severity="error")
            return
        trans_type = self.query_one("#select-type", Select).value
        description = self.query_one("#input-description", Input).value.strip()

        if not await self.app.push_screen_wait(
            DialogModal(
                f"{trans_type.capitalize()} {format_currency(amount)}?",
                primary_text="Yes",
                secondary_text="No",
                tone="warning" if trans_type == "debit" else "positive",
            )
        ):
            return
        try:
            balance = await crud.admin_wallet_transaction(
                uid, amount, trans_type, description
            )
        except ValueError as e:
            self.notify(str(e), severity="error")
            return
        self.notify(f"Done. New balance {format_currency(balance)}.")
        self.query_one("#input-amount", Input).value = ""
        self.query_one("#input-description", Input).value = ""
        await self.handle_resume()
