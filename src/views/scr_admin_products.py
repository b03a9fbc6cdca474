from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Dict, Optional

import aiosqlite
from textual import on, work
from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical
from textual.events import ScreenResume
from textual.validation import Number
from textual.widgets import Button, DataTable, Input, Label, Select

from db.crud import (
    create_product,
    delete_product,
    list_brands,
    list_categories,
    list_products,
    toggle_product_visibility,
    update_product,
)
from db.models import Product
from utils.pure import format_currency
from views.base_screen import BaseScreen
from views.modal_dialog import DialogModal

NONE = 0
_NON_NEG = Number(minimum=0)


class AdminProductsScreen(BaseScreen):
    """
    Admins search the catalog, edit prices and stock, add or remove products
    and hide them from the storefront.
    """

    current_pid: Optional[int] = None

    def __init__(self) -> None:
        super().__init__()
        self._products: Dict[int, Product] = {}

    def compose(self) -> ComposeResult:
        yield from super().compose()
        with Vertical():
            yield Input(id="input-search", placeholder="Search for product...")
            table = DataTable(
                id="table-products", cursor_type="row", zebra_stripes=True
            )
            table.add_columns(
                "Code", "Name", "MRP", "Retail", "Wholesale", "Stock", "Visible"
            )
            yield table
            with Horizontal(id="hort-form"):
                with Vertical():
                    yield Label("Code")
                    yield Input(id="input-code")
                    yield Label("Name")
                    yield Input(id="input-name")
                with Vertical():
                    yield Label("MRP (₹)")
                    yield Input(id="input-mrp", type="number", validators=[_NON_NEG])
                    yield Label("Retail (₹)")
                    yield Input(
                        id="input-retail", type="number", validators=[_NON_NEG]
                    )
                with Vertical():
                    yield Label("Wholesale (₹)")
                    yield Input(
                        id="input-wholesale", type="number", validators=[_NON_NEG]
                    )
                    yield Label("Stock")
                    yield Input(
                        id="input-stock", type="integer", validators=[_NON_NEG]
                    )
                with Vertical():
                    yield Label("Category")
                    yield Select(
                        [("None", NONE)],
                        value=NONE,
                        allow_blank=False,
                        id="select-category",
                    )
                    yield Label("Brand")
                    yield Select(
                        [("None", NONE)],
                        value=NONE,
                        allow_blank=False,
                        id="select-brand",
                    )
            with Horizontal(id="hort-controls"):
                yield Button("New", id="btn-new")
                yield Button("Toggle Visibility", id="btn-toggle")
                yield Button("Delete", id="btn-delete", variant="error")
                yield Button("Save", id="btn-save", variant="success")

    @on(ScreenResume)
    async def handle_resume(self) -> None:
        categories, brands = await list_categories(), await list_brands()
        self.query_one("#select-category", Select).set_options(
            [("None", NONE)] + [(c.name, c.id) for c in categories]
        )
        self.query_one("#select-brand", Select).set_options(
            [("None", NONE)] + [(b.name, b.id) for b in brands]
        )
        self.update_table()

    @on(Input.Changed, "#input-search")
    def handle_search(self) -> None:
        self.update_table()

    @work(exclusive=True)
    async def update_table(self) -> None:
        products = await list_products(self.query_one("#input-search", Input).value)
        self._products = {p.id: p for p in products}
        table = self.query_one(DataTable)
        table.clear()
        for p in products:
            table.add_row(
                p.product_code,
                p.name,
                format_currency(p.mrp),
                format_currency(p.retail_price),
                format_currency(p.wholesale_price),
                p.stock,
                "Yes" if p.is_visible else "No",
                key=str(p.id),
            )

    @on(DataTable.RowSelected)
    def handle_select(self, event: DataTable.RowSelected) -> None:
        prod = self._products.get(int(event.row_key.value))
        if prod is None:
            return
        self.current_pid = prod.id
        self.query_one("#input-code", Input).value = prod.product_code
        self.query_one("#input-name", Input).value = prod.name
        self.query_one("#input-mrp", Input).value = str(prod.mrp)
        self.query_one("#input-retail", Input).value = str(prod.retail_price)
        self.query_one("#input-wholesale", Input).value = str(prod.wholesale_price)
        self.query_one("#input-stock", Input).value = str(prod.stock)
        self.query_one("#select-category", Select).value = prod.category_id or NONE
        self.query_one("#select-brand", Select).value = prod.brand_id or NONE

    @on(Button.Pressed, "#btn-new")
    def handle_new(self) -> None:
        self.current_pid = None
        for input_id in ("code", "name", "mrp", "retail", "wholesale", "stock"):
            self.query_one(f"#input-{input_id}", Input).value = ""
        self.query_one("#select-category", Select).value = NONE
        self.query_one("#select-brand", Select).value = NONE
        self.query_one("#input-code", Input).focus()

    def _read_form(self) -> Optional[dict]:
        fields = {
            "product_code": self.query_one("#input-code", Input).value.strip(),
            "name": self.query_one("#input-name", Input).value.strip(),
        }
        if not fields["product_code"] or not fields["name"]:
            self.notify("Code and name are required.", severity="error")
            return None
        try:
            for col, input_id in (
                ("mrp", "mrp"),
                ("retail_price", "retail"),
                ("wholesale_price", "wholesale"),
            ):
                fields[col] = Decimal(self.query_one(f"#input-{input_id}", Input).value)
            fields["stock"] = int(self.query_one("#input-stock", Input).value or 0)
        except (InvalidOperation, ValueError):
            self.notify("Prices and stock must be numbers.", severity="error")
            return None
        category = self.query_one("#select-category", Select).value
        brand = self.query_one("#select-brand", Select).value
        fields["category_id"] = None if category == NONE else category
        fields["brand_id"] = None if brand == NONE else brand
        return fields

    @on(Button.Pressed, "#btn-save")
    @work(exclusive=True, group="edit")
    async def handle_save(self) -> None:
        fields = self._read_form()
        if fields is None:
            return
        try:
            if self.current_pid is None:
                self.current_pid = await create_product(**fields)
                self.notify(f"Product {fields['product_code']} created.")
            elif await update_product(self.current_pid, **fields):
                self.notify("Product updated successfully.")
            else:
                self.notify("Update failed.", severity="error")
        except ValueError as e:
            self.notify(str(e), severity="error")
        except aiosqlite.IntegrityError:
            self.notify("Product code already exists.", severity="error")
        self.update_table()

    @on(Button.Pressed, "#btn-toggle")
    @work(exclusive=True, group="edit")
    async def handle_toggle(self) -> None:
        if self.current_pid is None:
            self.notify("Select a product first.", severity="warning")
            return
        visible = await toggle_product_visibility(self.current_pid)
        self.notify("Product is now visible." if visible else "Product hidden.")
        self.update_table()

    @on(Button.Pressed, "#btn-delete")
    @work(exclusive=True, group="edit")
    async def handle_delete(self) -> None:
        prod = self._products.get(self.current_pid) if self.current_pid else None
        if prod is None:
            self.notify("Select a product first.", severity="warning")
            return
        if not await self.app.push_screen_wait(
            DialogModal(
                f"Delete {prod.name}? Past orders keep their copy of the item.",
                primary_text="Delete",
                secondary_text="Cancel",
                tone="error",
            )
        ):
            return
        await delete_product(prod.id)
        self.notify(f"{prod.name} deleted.")
        self.handle_new()
        self.update_table()
