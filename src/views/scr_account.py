from textual import on, work
from textual.app import ComposeResult
from textual.containers import Horizontal, VerticalScroll
from textual.events import ScreenResume
from textual.widgets import Button, Input, Label

import db.crud
from core.pricing import DEALER
from views.base_screen import BaseScreen


class AccountScreen(BaseScreen):
    """Profile details the customer can edit."""

    def compose(self) -> ComposeResult:
        yield from super().compose()
        with VerticalScroll(id="div-account"):
            yield Label("", id="label-account-info")
            yield Label("Full Name")
            yield Input(id="input-name")
            yield Label("Phone")
            yield Input(id="input-phone")
            yield Label("Default Delivery Address")
            yield Input(id="input-address")
            yield Label("Business Name", classes="dealer-only")
            yield Input(id="input-business", classes="dealer-only")
            yield Label("GST Number", classes="dealer-only")
            yield Input(id="input-gst", classes="dealer-only")
            with Horizontal(id="hort-buttons"):
                yield Button("Reset", id="btn-reset")
                yield Button("Save", id="btn-save", variant="primary")

    @on(ScreenResume)
    @on(Button.Pressed, "#btn-reset")
    def handle_fill(self) -> None:
        state = self.app.state
        p = state.profile
        if p is None:
            return
        status = ""
        if state.is_verified_dealer:
            status = ", verified dealer"
        elif state.is_pending_dealer:
            status = ", dealer pending verification"
        self.query_one("#label-account-info", Label).update(
            f"{p.email} ({p.user_type}{status})"
        )
        self.query_one("#input-name", Input).value = p.full_name
        self.query_one("#input-phone", Input).value = p.phone or ""
        self.query_one("#input-address", Input).value = p.address or ""
        self.query_one("#input-business", Input).value = p.business_name or ""
        self.query_one("#input-gst", Input).value = p.gst_number or ""
        for widget in self.query(".dealer-only"):
            widget.set_class(p.user_type != DEALER, "hidden")

    @on(Button.Pressed, "#btn-save")
    @work(exclusive=True)
    async def handle_save(self) -> None:
        state = self.app.state
        name = self.query_one("#input-name", Input).value
        if not name.strip():
            self.query_one("#input-name", Input).add_class("-invalid")
            self.notify("Full name is required.", severity="error")
            return

        await db.crud.update_profile(
            state.uid,
            full_name=name,
            phone=self.query_one("#input-phone", Input).value,
            address=self.query_one("#input-address", Input).value,
            business_name=self.query_one("#input-business", Input).value,
            gst_number=self.query_one("#input-gst", Input).value,
        )
        await state.refresh_profile()
        self.notify("Profile updated.")
        self.handle_fill()
