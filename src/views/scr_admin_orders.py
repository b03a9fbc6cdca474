from typing import Dict, List, Optional

from textual import on, work
from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical
from textual.events import ScreenResume
from textual.widgets import Button, DataTable, Label, MarkdownViewer, Select

import db.crud as crud
from core.order_status import ORDER_STATUSES, allowed_transitions
from db.models import Order
from utils.pure import format_currency
from views.base_screen import BaseScreen
from views.scr_orders import render_order_markdown

ALL = "all"


class AdminOrdersScreen(BaseScreen):
    """
    Every order, filterable by status; the selected order can be moved
    along its lifecycle.
    """

    def __init__(self) -> None:
        super().__init__()
        self._orders: Dict[int, Order] = {}
        self._selected: Optional[Order] = None

    def compose(self) -> ComposeResult:
        yield from super().compose()
        with Vertical():
            with Horizontal(id="hort-filters"):
                yield Label("Status")
                yield Select(
                    [("All", ALL)] + [(s.capitalize(), s) for s in ORDER_STATUSES],
                    value=ALL,
                    allow_blank=False,
                    id="select-filter",
                )
            table = DataTable(id="table-orders", cursor_type="row", zebra_stripes=True)
            table.add_columns(
                "Order No", "Date", "Customer", "Phone", "Type", "Total", "Status"
            )
            yield table
            yield MarkdownViewer(id="md-order-detail", show_table_of_contents=False)
            with Horizontal(id="hort-controls"):
                yield Label("Move to")
                yield Select([], id="select-next-status", prompt="No moves")
                yield Button("Update Status", id="btn-update", variant="success")

    @on(ScreenResume)
    @on(Select.Changed, "#select-filter")
    def handle_refresh(self) -> None:
        self.load_orders()

    @work(exclusive=True, group="orders")
    async def load_orders(self) -> None:
        status = self.query_one("#select-filter", Select).value
        orders: List[Order] = await crud.list_all_orders(
            status=None if status == ALL else status
        )
        self._orders = {o.id: o for o in orders}
        table = self.query_one(DataTable)
        table.clear()
        for o in orders:
            table.add_row(
                o.order_number,
                f"{o.created_at:%d %b %Y %H:%M}",
                o.customer_name,
                o.customer_phone,
                (o.user_type or "-").capitalize(),
                format_currency(o.final_amount),
                o.status.capitalize(),
                key=str(o.id),
            )
        if not orders:
            self._selected = None
            self._update_controls()
            await self.query_one(MarkdownViewer).document.update("### No orders.")

    @on(DataTable.RowHighlighted)
    @work(exclusive=True, group="detail")
    async def handle_row_highlight(self, event: DataTable.RowHighlighted) -> None:
        order = self._orders.get(int(event.row_key.value))
        if order is None:
            return
        self._selected = order
        self._update_controls()
        items = await crud.get_order_items(order.id)
        await self.query_one(MarkdownViewer).document.update(
            render_order_markdown(order, items)
        )

    def _update_controls(self) -> None:
        moves = allowed_transitions(self._selected.status) if self._selected else ()
        select = self.query_one("#select-next-status", Select)
        select.set_options([(s.capitalize(), s) for s in moves])
        select.disabled = not moves
        self.query_one("#btn-update", Button).disabled = not moves

    @on(Button.Pressed, "#btn-update")
    @work(exclusive=True, group="update")
    async def handle_update(self) -> None:
        new_status = self.query_one("#select-next-status", Select).value
        if self._selected is None or not isinstance(new_status, str):
            self.notify("Choose a status first.", severity="warning")
            return
        try:
            order = await crud.update_order_status(self._selected.id, new_status)
        except ValueError as e:
            self.notify(str(e), severity="error")
            return
        self.notify(f"Order {order.order_number} is now {order.status}.")
        self.load_orders()
