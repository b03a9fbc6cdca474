from typing import Dict, Optional

from textual import on, work
from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical
from textual.events import ScreenResume
from textual.widgets import Button, DataTable, Input, Label

import db.crud as crud
from core.pricing import DEALER, RETAIL
from db.models import Profile
from utils.pure import format_currency
from views.base_screen import BaseScreen


def _verified_label(p: Profile) -> str:
    if p.user_type != DEALER:
        return "-"
    return "Yes" if p.is_verified else "Pending"


class AdminCustomersScreen(BaseScreen):
    """Customer list with dealer verification."""

    def __init__(self) -> None:
        super().__init__()
        self._profiles: Dict[int, Profile] = {}
        self._selected: Optional[Profile] = None

    def compose(self) -> ComposeResult:
        yield from super().compose()
        with Vertical():
            yield Input(
                id="input-search", placeholder="Search name, email or phone..."
            )
            table = DataTable(
                id="table-customers", cursor_type="row", zebra_stripes=True
            )
            table.add_columns(
                "Name", "Email", "Phone", "Type", "Verified", "Wallet", "Joined"
            )
            yield table
            with Horizontal(id="hort-controls"):
                yield Label("", id="label-selected")
                yield Button("Switch Retail/Dealer", id="btn-type")
                yield Button("Verify Dealer", id="btn-verify", variant="success")

    @on(ScreenResume)
    @on(Input.Changed, "#input-search")
    def handle_refresh(self) -> None:
        self.load_customers()

    @work(exclusive=True)
    async def load_customers(self) -> None:
        query = self.query_one("#input-search", Input).value
        profiles = await crud.list_profiles(query)
        self._profiles = {p.id: p for p in profiles}
        table = self.query_one(DataTable)
        table.clear()
        for p in profiles:
            table.add_row(
                p.full_name,
                p.email,
                p.phone or "-",
                p.user_type.capitalize(),
                _verified_label(p),
                format_currency(p.wallet_balance),
                f"{p.created_at:%d %b %Y}" if p.created_at else "-",
                key=str(p.id),
            )
        if self._selected is not None:
            self._select(self._profiles.get(self._selected.id))

    @on(DataTable.RowHighlighted)
    def handle_row_highlight(self, event: DataTable.RowHighlighted) -> None:
        self._select(self._profiles.get(int(event.row_key.value)))

    def _select(self, profile: Optional[Profile]) -> None:
        self._selected = profile
        verify = self.query_one("#btn-verify", Button)
        if profile is None:
            self.query_one("#label-selected", Label).update("")
            verify.disabled = True
            return
        label = profile.business_name or profile.full_name
        if profile.gst_number:
            label += f" (GST {profile.gst_number})"
        self.query_one("#label-selected", Label).update(label)
        verify.disabled = profile.user_type != DEALER
        verify.label = "Revoke Verification" if profile.is_verified else "Verify Dealer"

    @on(Button.Pressed, "#btn-verify")
    @work(exclusive=True, group="update")
    async def handle_verify(self) -> None:
        p = self._selected
        if p is None or p.user_type != DEALER:
            return
        await crud.set_dealer_verified(p.id, not p.is_verified)
        self.notify(
            f"{p.full_name} is "
            f"{'no longer' if p.is_verified else 'now'} a verified dealer."
        )
        self.load_customers()

    @on(Button.Pressed, "#btn-type")
    @work(exclusive=True, group="update")
    async def handle_switch_type(self) -> None:
        p = self._selected
        if p is None:
            return
        new_type = RETAIL if p.user_type == DEALER else DEALER
        await crud.set_user_type(p.id, new_type)
        self.notify(f"{p.full_name} is now a {new_type} customer.")
        self.load_customers()
