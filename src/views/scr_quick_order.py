from typing import Dict, List

from textual import on, work
from textual.app import ComposeResult
from textual.binding import Binding
from textual.containers import Horizontal
from textual.events import ScreenResume
from textual.widgets import DataTable, Input, Label, Select

import db.crud
from core.cart import CartLineItem
from core.pricing import resolve_unit_price
from db.models import CatalogProduct
from utils.messages import CartChangedMessage
from utils.pure import format_currency
from views.base_screen import BaseScreen
from views.modal_add_to_cart import AddToCartModal

ALL_CATEGORIES = 0


class QuickOrderScreen(BaseScreen):
    """
    Spreadsheet-like catalog grid. Prices follow the current user's
    classification and are re-resolved every time the grid is rendered.
    """

    BINDINGS = [
        Binding("enter", "noop", "Choose Quantity", show=True, key_display="⏎"),
        Binding("plus", "add_one", "Add 1", show=True, key_display="+"),
        Binding("minus", "remove_one", "Remove 1", show=True, key_display="-"),
    ]

    def __init__(self):
        super().__init__()
        self._products: Dict[int, CatalogProduct] = {}

    def compose(self) -> ComposeResult:
        yield from super().compose()
        with Horizontal(id="hort-filters"):
            yield Input(id="input-search", placeholder="Search by name or code...")
            yield Select(
                [("All categories", ALL_CATEGORIES)],
                value=ALL_CATEGORIES,
                allow_blank=False,
                id="select-category",
            )
        yield Label("", id="label-dealer-banner", classes="hidden")
        table = DataTable(id="table-catalog", cursor_type="row", zebra_stripes=True)
        table.add_columns(
            "Code", "Product", "Category", "MRP", "Your Price", "Stock", "In Cart"
        )
        yield table
        yield Label("", id="label-cart-summary")

    async def on_mount(self):
        await self.load_categories()
        self.query_one("#input-search").focus()

    async def load_categories(self) -> None:
        categories = await db.crud.list_categories(active_only=True)
        self.query_one("#select-category", Select).set_options(
            [("All categories", ALL_CATEGORIES)]
            + [(c.name, c.id) for c in categories]
        )

    @on(ScreenResume)
    @on(CartChangedMessage)
    @on(Input.Changed, "#input-search")
    @on(Select.Changed, "#select-category")
    def handle_refresh(self) -> None:
        self.update_banner()
        self.update_catalog()

    def update_banner(self) -> None:
        banner = self.query_one("#label-dealer-banner", Label)
        if self.app.state.is_pending_dealer:
            banner.update(
                "Your dealer account is pending verification. "
                "Wholesale prices are shown as an estimate."
            )
            banner.remove_class("hidden")
        else:
            banner.add_class("hidden")

    @work(exclusive=True)
    async def update_catalog(self) -> None:
        query = self.query_one("#input-search", Input).value
        category = self.query_one("#select-category", Select).value
        products: List[CatalogProduct] = await db.crud.list_catalog(
            query, None if category == ALL_CATEGORIES else category
        )
        self._products = {p.id: p for p in products}

        classification = self.app.state.classification
        cart = self.app.state.cart
        table = self.query_one(DataTable)
        cursor_row = table.cursor_row
        table.clear()
        for p in products:
            in_cart = cart.get_item(p.id)
            table.add_row(
                p.code,
                p.name,
                p.category_name or "-",
                format_currency(p.mrp),
                format_currency(resolve_unit_price(p, classification)),
                p.stock if p.stock > 0 else "Out",
                in_cart.quantity if in_cart else "",
                key=str(p.id),
            )
        if products:
            table.move_cursor(row=min(cursor_row, len(products) - 1))

        self.query_one("#label-cart-summary", Label).update(
            f"Estimate cart: {cart.total_items} items, "
            f"{format_currency(cart.total_amount)}"
            + (
                f" (you save {format_currency(cart.total_savings)})"
                if cart.total_savings > 0
                else ""
            )
        )

    def _selected_product(self) -> CatalogProduct | None:
        table = self.query_one(DataTable)
        if table.row_count == 0:
            return None
        row_key, _ = table.coordinate_to_cell_key(table.cursor_coordinate)
        return self._products.get(int(row_key.value))

    @on(DataTable.RowSelected)
    @work(exclusive=True, group="modal")
    async def handle_row_selected(self) -> None:
        product = self._selected_product()
        if product and await self.app.push_screen_wait(AddToCartModal(product)):
            self.post_message(CartChangedMessage())

    def action_noop(self) -> None:
        pass

    def action_add_one(self) -> None:
        product = self._selected_product()
        if not product:
            return
        if product.stock < 1:
            self.notify(f"{product.name} is out of stock.", severity="warning")
            return
        self.app.state.cart.add_item(
            CartLineItem(
                product_id=product.id,
                name=product.name,
                product_code=product.code,
                price=resolve_unit_price(product, self.app.state.classification),
                mrp=product.mrp,
                image_url=product.image,
            )
        )
        self.post_message(CartChangedMessage())

    def action_remove_one(self) -> None:
        product = self._selected_product()
        item = self.app.state.cart.get_item(product.id) if product else None
        if item:
            self.app.state.cart.update_quantity(product.id, item.quantity - 1)
            self.post_message(CartChangedMessage())

