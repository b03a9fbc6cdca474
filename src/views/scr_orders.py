from math import ceil
from typing import Dict, List

from textual import on, work
from textual.app import ComposeResult
from textual.binding import Binding
from textual.containers import Horizontal, Vertical
from textual.events import ScreenResume
from textual.reactive import reactive
from textual.widgets import Button, DataTable, Label, MarkdownViewer

import db.crud
from db.models import Order, OrderItem
from utils.pure import format_currency, generate_markdown_table
from views.base_screen import BaseScreen

PAGE_SIZE = 10


def render_order_markdown(order: Order, items: List[OrderItem]) -> str:
    """Order header, line items and totals as markdown."""
    header = (
        f"### Order {order.order_number}\n"
        f"Placed: {order.created_at:%d %b %Y, %I:%M %p}  \n"
        f"Status: **{order.status.capitalize()}**  \n"
        f"Deliver to: {order.customer_name}, {order.customer_phone}, "
        f"{order.customer_address}\n\n"
    )
    if order.notes:
        header += f"Notes: {order.notes}\n\n"
    rows = [
        [
            f"{i.product_name} ({i.product_code})"
            if i.product_code
            else i.product_name,
            i.quantity,
            format_currency(i.unit_price),
            format_currency(i.total_price),
        ]
        for i in items
    ]
    table = generate_markdown_table(
        ["Product", "Qty", "Unit Price", "Line Total"], rows, ["l", "r", "r", "r"]
    )
    footer = f"\n\n**Subtotal:** {format_currency(order.total_amount)}  \n"
    if order.discount_amount > 0:
        footer += f"**Wallet discount:** -{format_currency(order.discount_amount)}  \n"
    footer += f"**Total:** {format_currency(order.final_amount)}"
    return header + table + footer


class OrdersScreen(BaseScreen):
    """
    A customer's orders, newest first, with the selected order's details.
    """

    BINDINGS = [
        Binding("left", "prev_page", "Prev Page", show=True),
        Binding("right", "next_page", "Next Page", show=True),
    ]

    page_idx = reactive(1)

    def __init__(self) -> None:
        super().__init__()
        self._orders: List[Order] = []
        self._by_id: Dict[int, Order] = {}

    def compose(self) -> ComposeResult:
        yield from super().compose()
        with Vertical():
            yield MarkdownViewer(id="md-order-detail", show_table_of_contents=False)
            table = DataTable(id="table-orders", cursor_type="row", zebra_stripes=True)
            table.add_columns("Order No", "Date", "Items", "Total", "Status")
            yield table
        with Horizontal(id="hort-table-control"):
            yield Button("<", id="btn-prev")
            yield Label("1 / 1", id="label-page")
            yield Button(">", id="btn-next")

    @on(ScreenResume)
    @work(exclusive=True, group="orders")
    async def handle_refresh(self):
        if self.app.state.uid is None:
            self._orders = []
        else:
            self._orders = await db.crud.list_orders(self.app.state.uid)
        self._by_id = {o.id: o for o in self._orders}
        self.page_idx = 1
        self._render_page()

    @property
    def page_cnt(self) -> int:
        return max(ceil(len(self._orders) / PAGE_SIZE), 1)

    def watch_page_idx(self) -> None:
        self._render_page()

    def _render_page(self) -> None:
        start = (self.page_idx - 1) * PAGE_SIZE
        table = self.query_one(DataTable)
        table.clear()
        for o in self._orders[start : start + PAGE_SIZE]:
            table.add_row(
                o.order_number,
                f"{o.created_at:%d %b %Y}",
                o.total_items,
                format_currency(o.final_amount),
                o.status.capitalize(),
                key=str(o.id),
            )
        page_label = f"{self.page_idx} / {self.page_cnt}"
        self.query_one("#label-page", Label).update(page_label)
        self.query_one("#btn-prev", Button).disabled = self.page_idx <= 1
        self.query_one("#btn-next", Button).disabled = self.page_idx >= self.page_cnt
        if table.row_count == 0:
            self.query_one(MarkdownViewer).document.update(
                "### No orders yet.\n\nPlaced orders show up here."
            )

    @on(Button.Pressed, "#btn-prev")
    def action_prev_page(self) -> None:
        if self.page_idx > 1:
            self.page_idx -= 1

    @on(Button.Pressed, "#btn-next")
    def action_next_page(self) -> None:
        if self.page_idx < self.page_cnt:
            self.page_idx += 1

    @on(DataTable.RowHighlighted)
    @work(exclusive=True, group="detail")
    async def handle_row_highlight(self, event: DataTable.RowHighlighted) -> None:
        order = self._by_id.get(int(event.row_key.value))
        if order is None:
            return
        items = await db.crud.get_order_items(order.id)
        await self.query_one(MarkdownViewer).document.update(
            render_order_markdown(order, items)
        )
