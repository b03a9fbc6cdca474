from typing import Dict, Optional

from textual import on, work
from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical
from textual.events import ScreenResume
from textual.widgets import Button, DataTable, Label, Markdown

import db.crud as crud
from core.referrals import summarize_referrals
from db.models import Referral
from utils.pure import format_currency, generate_markdown_table
from views.base_screen import BaseScreen


class AdminReferralsScreen(BaseScreen):
    """Every referral in the store; pending bonuses are released from here."""

    def __init__(self) -> None:
        super().__init__()
        self._referrals: Dict[int, Referral] = {}
        self._selected: Optional[Referral] = None

    def compose(self) -> ComposeResult:
        yield from super().compose()
        with Vertical():
            yield Markdown("", id="md-referral-stats")
            table = DataTable(
                id="table-referrals", cursor_type="row", zebra_stripes=True
            )
            table.add_columns("Date", "Referrer", "Referred", "Bonus", "Status")
            yield table
            with Horizontal(id="hort-controls"):
                yield Label("", id="label-selected")
                yield Button("Claim Bonus", id="btn-claim", variant="success")

    @on(ScreenResume)
    @work(exclusive=True, group="referrals")
    async def load_referrals(self) -> None:
        referrals = await crud.list_all_referrals()
        self._referrals = {r.id: r for r in referrals}

        stats = summarize_referrals(referrals)
        await self.query_one("#md-referral-stats", Markdown).update(
            generate_markdown_table(
                ["Total", "Claimed", "Pending", "Bonuses Paid"],
                [
                    [
                        stats.total,
                        stats.claimed,
                        stats.pending,
                        format_currency(stats.earnings),
                    ]
                ],
                ["r", "r", "r", "r"],
            )
        )

        table = self.query_one(DataTable)
        table.clear()
        for r in referrals:
            table.add_row(
                f"{r.created_at:%d %b %Y}",
                r.referrer_name or "-",
                r.referred_name or r.referred_email or "-",
                format_currency(r.bonus_amount) if r.bonus_amount is not None else "-",
                "Claimed" if r.is_claimed else "Pending",
                key=str(r.id),
            )
        self._select(
            self._referrals.get(self._selected.id) if self._selected else None
        )

    @on(DataTable.RowHighlighted)
    def handle_row_highlight(self, event: DataTable.RowHighlighted) -> None:
        self._select(self._referrals.get(int(event.row_key.value)))

    def _select(self, referral: Optional[Referral]) -> None:
        self._selected = referral
        label = self.query_one("#label-selected", Label)
        claim = self.query_one("#btn-claim", Button)
        if referral is None:
            label.update("")
            claim.disabled = True
            return
        label.update(f"{referral.referrer_name} → {referral.referred_name}")
        claim.disabled = referral.is_claimed

    @on(Button.Pressed, "#btn-claim")
    @work(exclusive=True, group="claim")
    async def handle_claim(self) -> None:
        if self._selected is None:
            return
        if not await crud.claim_referral_bonus(self._selected.id):
            self.notify("This bonus was already claimed.", severity="warning")
        else:
            self.notify("Referral bonus credited to both wallets.")
        self.load_referrals()
