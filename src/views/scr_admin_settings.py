from typing import Any, Dict

from pydantic import ValidationError
from textual import on, work
from textual.app import ComposeResult
from textual.containers import Horizontal, VerticalScroll
from textual.events import ScreenResume
from textual.widgets import Button, Input, Label, Switch

import db.crud as crud
from core.settings import SETTING_KEYS, SiteSettings
from views.base_screen import BaseScreen

SECTIONS = {
    "Store Information": (
        "store_name",
        "store_tagline",
        "store_email",
        "store_phone",
        "store_whatsapp",
        "store_address",
        "store_timings",
    ),
    "Orders": (
        "min_order_value",
        "min_order_value_dealer",
        "delivery_charge",
        "free_delivery_above",
        "dealer_discount",
        "retail_discount",
    ),
    "Referrals": ("referral_bonus", "referral_bonus_referred"),
    "Features": (
        "enable_notifications",
        "enable_referrals",
        "enable_wallet",
        "maintenance_mode",
    ),
}


def _label(key: str) -> str:
    return key.replace("_", " ").capitalize()


def _is_flag(key: str) -> bool:
    return SiteSettings.model_fields[key].annotation is bool


class AdminSettingsScreen(BaseScreen):
    """
    Edit the site settings. Every field is validated on save; invalid fields
    are highlighted and nothing is stored until all of them pass.
    """

    def compose(self) -> ComposeResult:
        yield from super().compose()
        with VerticalScroll(id="scroll-settings"):
            for section, keys in SECTIONS.items():
                yield Label(section, classes="settings-section")
                for key in keys:
                    with Horizontal(classes="settings-row"):
                        yield Label(_label(key), classes="settings-label")
                        if _is_flag(key):
                            yield Switch(id=f"field-{key}")
                        else:
                            yield Input(id=f"field-{key}")
                        yield Label("", id=f"error-{key}", classes="settings-error")
        with Horizontal(id="hort-controls"):
            yield Button("Reset", id="btn-reset")
            yield Button("Save Settings", id="btn-save", variant="success")

    @on(ScreenResume)
    @on(Button.Pressed, "#btn-reset")
    @work(exclusive=True, group="settings")
    async def load_form(self) -> None:
        settings = await self.app.state.load_settings()
        for key in SETTING_KEYS:
            value = getattr(settings, key)
            if _is_flag(key):
                self.query_one(f"#field-{key}", Switch).value = value
            else:
                self.query_one(f"#field-{key}", Input).value = str(value)
        self._clear_errors()

    def _read_form(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {}
        for key in SETTING_KEYS:
            if _is_flag(key):
                data[key] = self.query_one(f"#field-{key}", Switch).value
            else:
                data[key] = self.query_one(f"#field-{key}", Input).value.strip()
        return data

    def _clear_errors(self) -> None:
        for key in SETTING_KEYS:
            self.query_one(f"#error-{key}", Label).update("")
            if not _is_flag(key):
                self.query_one(f"#field-{key}", Input).remove_class("-invalid")

    def _show_errors(self, error: ValidationError) -> None:
        for err in error.errors():
            key = str(err["loc"][0]) if err["loc"] else ""
            if key not in SETTING_KEYS:
                continue
            self.query_one(f"#error-{key}", Label).update(err["msg"])
            if not _is_flag(key):
                self.query_one(f"#field-{key}", Input).add_class("-invalid")

    @on(Button.Pressed, "#btn-save")
    @work(exclusive=True, group="settings")
    async def handle_save(self) -> None:
        self._clear_errors()
        try:
            settings = SiteSettings.model_validate(self._read_form())
        except ValidationError as e:
            self._show_errors(e)
            self.notify(
                f"{e.error_count()} setting(s) need fixing.", severity="error"
            )
            return
        await crud.save_site_settings(settings)
        await self.app.state.load_settings()
        self.app.title = settings.store_name
        if settings.maintenance_mode:
            self.notify(
                "Maintenance mode is on; customers see a notice at sign in.",
                severity="warning",
            )
        self.notify("Settings saved.")

