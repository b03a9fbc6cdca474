from __future__ import annotations

from datetime import datetime
from typing import Dict, Optional

from textual import on, work
from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical
from textual.events import ScreenResume
from textual.validation import Number
from textual.widgets import (
    Button,
    DataTable,
    Input,
    Label,
    Select,
    Switch,
    TabbedContent,
    TabPane,
    TextArea,
)

import db.crud as crud
from db.models import Announcement, Brand, Category
from views.base_screen import BaseScreen
from views.modal_dialog import DialogModal

POPUP_TYPES = ("announcement", "offer", "warning", "info")
DATE_FORMAT = "%Y-%m-%d"


def parse_date(value: str) -> Optional[datetime]:
    """Blank means no bound; anything else must be YYYY-MM-DD."""
    value = value.strip()
    if not value:
        return None
    return datetime.strptime(value, DATE_FORMAT)


def _fmt_date(value: Optional[datetime]) -> str:
    return value.strftime(DATE_FORMAT) if value else ""


class AdminCatalogScreen(BaseScreen):
    """
    Categories, brands and storefront announcements, one tab each.
    Every tab follows the same pattern: pick a row to edit it, or press New.
    """

    def __init__(self) -> None:
        super().__init__()
        self._categories: Dict[int, Category] = {}
        self._brands: Dict[int, Brand] = {}
        self._announcements: Dict[int, Announcement] = {}
        self._category_id: Optional[int] = None
        self._brand_id: Optional[int] = None
        self._announcement_id: Optional[int] = None

    def compose(self) -> ComposeResult:
        yield from super().compose()
        with TabbedContent(id="tabs-catalog"):
            with TabPane("Categories", id="tab-categories"):
                table = DataTable(
                    id="table-categories", cursor_type="row", zebra_stripes=True
                )
                table.add_columns("Order", "Name", "Products", "Active")
                yield table
                with Horizontal(classes="catalog-form"):
                    yield Input(placeholder="Name", id="input-category-name")
                    yield Input(
                        placeholder="Description", id="input-category-description"
                    )
                    yield Input(
                        placeholder="Order",
                        id="input-category-order",
                        type="integer",
                        validators=[Number(minimum=0)],
                    )
                with Horizontal(classes="catalog-controls"):
                    yield Button("New", id="btn-category-new")
                    yield Button("Toggle Active", id="btn-category-toggle")
                    yield Button("Delete", id="btn-category-delete", variant="error")
                    yield Button("Save", id="btn-category-save", variant="success")

            with TabPane("Brands", id="tab-brands"):
                table = DataTable(
                    id="table-brands", cursor_type="row", zebra_stripes=True
                )
                table.add_columns("Name", "Products", "Active")
                yield table
                with Horizontal(classes="catalog-form"):
                    yield Input(placeholder="Name", id="input-brand-name")
                with Horizontal(classes="catalog-controls"):
                    yield Button("New", id="btn-brand-new")
                    yield Button("Toggle Active", id="btn-brand-toggle")
                    yield Button("Delete", id="btn-brand-delete", variant="error")
                    yield Button("Save", id="btn-brand-save", variant="success")

            with TabPane("Announcements", id="tab-announcements"):
                table = DataTable(
                    id="table-announcements", cursor_type="row", zebra_stripes=True
                )
                table.add_columns(
                    "Order", "Title", "Type", "On Load", "From", "Until", "Active"
                )
                yield table
                with Horizontal(classes="catalog-form"):
                    with Vertical():
                        yield Input(placeholder="Title", id="input-ann-title")
                        yield TextArea(id="input-ann-content")
                    with Vertical():
                        yield Select(
                            [(t.capitalize(), t) for t in POPUP_TYPES],
                            value=POPUP_TYPES[0],
                            allow_blank=False,
                            id="select-ann-type",
                        )
                        yield Input(
                            placeholder="From (YYYY-MM-DD)", id="input-ann-start"
                        )
                        yield Input(placeholder="Until (YYYY-MM-DD)", id="input-ann-end")
                        yield Input(
                            placeholder="Order",
                            id="input-ann-order",
                            type="integer",
                            validators=[Number(minimum=0)],
                        )
                        with Horizontal():
                            yield Label("Show on load")
                            yield Switch(value=True, id="switch-ann-on-load")
                with Horizontal(classes="catalog-controls"):
                    yield Button("New", id="btn-ann-new")
                    yield Button("Toggle Active", id="btn-ann-toggle")
                    yield Button("Delete", id="btn-ann-delete", variant="error")
                    yield Button("Save", id="btn-ann-save", variant="success")

    @on(ScreenResume)
    def handle_resume(self) -> None:
        self.load_categories()
        self.load_brands()
        self.load_announcements()

    async def _confirm_delete(self, caption: str) -> bool:
        return await self.app.push_screen_wait(
            DialogModal(
                caption,
                primary_text="Delete",
                secondary_text="Cancel",
                tone="error",
            )
        )

    # categories

    @work(exclusive=True, group="categories")
    async def load_categories(self) -> None:
        categories = await crud.list_categories()
        self._categories = {c.id: c for c in categories}
        table = self.query_one("#table-categories", DataTable)
        table.clear()
        for c in categories:
            table.add_row(
                c.display_order,
                c.name,
                c.product_count,
                "Yes" if c.is_active else "No",
                key=str(c.id),
            )

    @on(DataTable.RowSelected, "#table-categories")
    def handle_category_selected(self, event: DataTable.RowSelected) -> None:
        c = self._categories.get(int(event.row_key.value))
        if c is None:
            return
        self._category_id = c.id
        self.query_one("#input-category-name", Input).value = c.name
        self.query_one("#input-category-description", Input).value = (
            c.description or ""
        )
        self.query_one("#input-category-order", Input).value = str(c.display_order)

    @on(Button.Pressed, "#btn-category-new")
    def handle_category_new(self) -> None:
        self._category_id = None
        for suffix in ("name", "description", "order"):
            self.query_one(f"#input-category-{suffix}", Input).value = ""
        self.query_one("#input-category-name", Input).focus()

    @on(Button.Pressed, "#btn-category-save")
    @work(exclusive=True, group="category-edit")
    async def handle_category_save(self) -> None:
        name = self.query_one("#input-category-name", Input).value.strip()
        description = (
            self.query_one("#input-category-description", Input).value.strip()
            or None
        )
        try:
            order = int(self.query_one("#input-category-order", Input).value or 0)
            if self._category_id is None:
                self._category_id = await crud.create_category(
                    name, description, order
                )
                self.notify(f"Category {name} created.")
            else:
                await crud.update_category(
                    self._category_id,
                    name=name,
                    description=description,
                    display_order=order,
                )
                self.notify("Category updated.")
        except ValueError as e:
            self.notify(str(e), severity="error")
        self.load_categories()

    @on(Button.Pressed, "#btn-category-toggle")
    @work(exclusive=True, group="category-edit")
    async def handle_category_toggle(self) -> None:
        if self._category_id is None:
            self.notify("Select a category first.", severity="warning")
            return
        active = await crud.toggle_category(self._category_id)
        self.notify("Category is now active." if active else "Category hidden.")
        self.load_categories()

    @on(Button.Pressed, "#btn-category-delete")
    @work(exclusive=True, group="category-edit")
    async def handle_category_delete(self) -> None:
        c = self._categories.get(self._category_id) if self._category_id else None
        if c is None:
            self.notify("Select a category first.", severity="warning")
            return
        if not await self._confirm_delete(
            f"Delete {c.name}? Its {c.product_count} products become uncategorized."
        ):
            return
        await crud.delete_category(c.id)
        self.notify(f"{c.name} deleted.")
        self.handle_category_new()
        self.load_categories()

    # brands

    @work(exclusive=True, group="brands")
    async def load_brands(self) -> None:
        brands = await crud.list_brands()
        self._brands = {b.id: b for b in brands}
        table = self.query_one("#table-brands", DataTable)
        table.clear()
        for b in brands:
            table.add_row(
                b.name,
                b.product_count,
                "Yes" if b.is_active else "No",
                key=str(b.id),
            )

    @on(DataTable.RowSelected, "#table-brands")
    def handle_brand_selected(self, event: DataTable.RowSelected) -> None:
        b = self._brands.get(int(event.row_key.value))
        if b is None:
            return
        self._brand_id = b.id
        self.query_one("#input-brand-name", Input).value = b.name

    @on(Button.Pressed, "#btn-brand-new")
    def handle_brand_new(self) -> None:
        self._brand_id = None
        name = self.query_one("#input-brand-name", Input)
        name.value = ""
        name.focus()

    @on(Button.Pressed, "#btn-brand-save")
    @work(exclusive=True, group="brand-edit")
    async def handle_brand_save(self) -> None:
        name = self.query_one("#input-brand-name", Input).value
        try:
            if self._brand_id is None:
                self._brand_id = await crud.create_brand(name)
                self.notify(f"Brand {name.strip()} created.")
            else:
                await crud.update_brand(self._brand_id, name)
                self.notify("Brand updated.")
        except ValueError as e:
            self.notify(str(e), severity="error")
        self.load_brands()

    @on(Button.Pressed, "#btn-brand-toggle")
    @work(exclusive=True, group="brand-edit")
    async def handle_brand_toggle(self) -> None:
        if self._brand_id is None:
            self.notify("Select a brand first.", severity="warning")
            return
        active = await crud.toggle_brand(self._brand_id)
        self.notify("Brand is now active." if active else "Brand hidden.")
        self.load_brands()

    @on(Button.Pressed, "#btn-brand-delete")
    @work(exclusive=True, group="brand-edit")
    async def handle_brand_delete(self) -> None:
        b = self._brands.get(self._brand_id) if self._brand_id else None
        if b is None:
            self.notify("Select a brand first.", severity="warning")
            return
        if not await self._confirm_delete(f"Delete {b.name}?"):
            return
        await crud.delete_brand(b.id)
        self.notify(f"{b.name} deleted.")
        self.handle_brand_new()
        self.load_brands()

    # announcements

    @work(exclusive=True, group="announcements")
    async def load_announcements(self) -> None:
        announcements = await crud.list_announcements()
        self._announcements = {a.id: a for a in announcements}
        table = self.query_one("#table-announcements", DataTable)
        table.clear()
        for a in announcements:
            table.add_row(
                a.display_order,
                a.title,
                a.popup_type.capitalize(),
                "Yes" if a.show_on_load else "No",
                _fmt_date(a.start_date) or "-",
                _fmt_date(a.end_date) or "-",
                "Yes" if a.is_active else "No",
                key=str(a.id),
            )

    @on(DataTable.RowSelected, "#table-announcements")
    def handle_announcement_selected(self, event: DataTable.RowSelected) -> None:
        a = self._announcements.get(int(event.row_key.value))
        if a is None:
            return
        self._announcement_id = a.id
        self.query_one("#input-ann-title", Input).value = a.title
        self.query_one("#input-ann-content", TextArea).text = a.content or ""
        self.query_one("#select-ann-type", Select).value = (
            a.popup_type if a.popup_type in POPUP_TYPES else POPUP_TYPES[0]
        )
        self.query_one("#input-ann-start", Input).value = _fmt_date(a.start_date)
        self.query_one("#input-ann-end", Input).value = _fmt_date(a.end_date)
        self.query_one("#input-ann-order", Input).value = str(a.display_order)
        self.query_one("#switch-ann-on-load", Switch).value = a.show_on_load

    @on(Button.Pressed, "#btn-ann-new")
    def handle_announcement_new(self) -> None:
        self._announcement_id = None
        for suffix in ("title", "start", "end", "order"):
            self.query_one(f"#input-ann-{suffix}", Input).value = ""
        self.query_one("#input-ann-content", TextArea).text = ""
        self.query_one("#select-ann-type", Select).value = POPUP_TYPES[0]
        self.query_one("#switch-ann-on-load", Switch).value = True
        self.query_one("#input-ann-title", Input).focus()

    @on(Button.Pressed, "#btn-ann-save")
    @work(exclusive=True, group="announcement-edit")
    async def handle_announcement_save(self) -> None:
        try:
            start = parse_date(self.query_one("#input-ann-start", Input).value)
            end = parse_date(self.query_one("#input-ann-end", Input).value)
        except ValueError:
            self.notify("Dates must look like 2026-10-20.", severity="error")
            return
        fields = dict(
            title=self.query_one("#input-ann-title", Input).value.strip(),
            content=self.query_one("#input-ann-content", TextArea).text.strip()
            or None,
            popup_type=self.query_one("#select-ann-type", Select).value,
            show_on_load=self.query_one("#switch-ann-on-load", Switch).value,
            start_date=start,
            end_date=end,
        )
        try:
            fields["display_order"] = int(
                self.query_one("#input-ann-order", Input).value or 0
            )
            if self._announcement_id is None:
                self._announcement_id = await crud.create_announcement(**fields)
                self.notify("Announcement created.")
            else:
                if end and start and end < start:
                    raise ValueError("End date must be after start date.")
                if not fields["title"]:
                    raise ValueError("Announcement title is required.")
                await crud.update_announcement(self._announcement_id, **fields)
                self.notify("Announcement updated.")
        except ValueError as e:
            self.notify(str(e), severity="error")
        self.load_announcements()

    @on(Button.Pressed, "#btn-ann-toggle")
    @work(exclusive=True, group="announcement-edit")
    async def handle_announcement_toggle(self) -> None:
        if self._announcement_id is None:
            self.notify("Select an announcement first.", severity="warning")
            return
        active = await crud.toggle_announcement(self._announcement_id)
        self.notify(
            "Announcement is now active." if active else "Announcement hidden."
        )
        self.load_announcements()

    @on(Button.Pressed, "#btn-ann-delete")
    @work(exclusive=True, group="announcement-edit")
    async def handle_announcement_delete(self) -> None:
        a = (
            self._announcements.get(self._announcement_id)
            if self._announcement_id
            else None
        )
        if a is None:
            self.notify("Select an announcement first.", severity="warning")
            return
        if not await self._confirm_delete(f"Delete {a.title}?"):
            return
        await crud.delete_announcement(a.id)
        self.notify(f"{a.title} deleted.")
        self.handle_announcement_new()
        self.load_announcements()
