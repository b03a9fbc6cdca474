from textual import events, on
from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical
from textual.reactive import reactive
from textual.screen import ModalScreen
from textual.validation import Number
from textual.widgets import Button, Input, Label, MarkdownViewer

from core.cart import CartLineItem
from core.pricing import resolve_unit_price
from db.models import CatalogProduct
from utils.pure import format_currency, generate_markdown_table


class AddToCartModal(ModalScreen[bool]):
    """
    Product detail plus quantity picker for the estimate cart.
    Returns True if the cart changed, False if not.
    """

    order_qty = reactive(1)

    def __init__(self, product: CatalogProduct) -> None:
        super().__init__()
        self._prod = product
        self._existing: CartLineItem | None = None

    def compose(self) -> ComposeResult:
        with Horizontal(id="hort-prod-detail"):
            yield MarkdownViewer("", show_table_of_contents=False)
            with Vertical(id="div-qty"):
                yield Label("Quantity")
                with Horizontal():
                    yield Button("-", id="btn-sub-qty")
                    yield Input(value="1", id="input-order-qty", type="integer")
                    yield Button("+", id="btn-add-qty")
                with Horizontal():
                    yield Button("Go Back", id="btn-quit")
                    yield Button(
                        "Add to Estimate Cart", id="btn-addcart", variant="primary"
                    )

    @property
    def unit_price(self):
        return resolve_unit_price(self._prod, self.app.state.classification)

    async def on_mount(self):
        p = self._prod
        price = self.unit_price
        rows = [
            ["Code", p.code],
            ["Category", p.category_name or "-"],
            ["Brand", p.brand_name or "-"],
            ["MRP", format_currency(p.mrp)],
            ["Your Price", format_currency(price)],
            ["You Save", format_currency(max(p.mrp - price, 0))],
            ["In Stock", p.stock],
        ]
        md = f"### {p.name}\n\n" + generate_markdown_table(
            ["Attribute", "Value"], rows, ["l", "l"]
        )
        await self.query_one(MarkdownViewer).document.update(md)

        qty_input = self.query_one("#input-order-qty", Input)
        if p.stock < 1:
            order_btn = self.query_one("#btn-addcart", Button)
            order_btn.label = "Out of Stock"
            order_btn.disabled = True
            order_btn.variant = "warning"
        qty_input.validators = [Number(minimum=1, maximum=max(p.stock, 1))]

        self._existing = self.app.state.cart.get_item(p.id)
        if self._existing:
            self.order_qty = self._existing.quantity
            self.query_one("#btn-addcart", Button).label = "Update Cart"

        qty_input.focus()

    def on_key(self, event: events.Key) -> None:
        if event.key == "escape":
            self.dismiss(False)

    def on_input_changed(self, message: Input.Changed) -> None:
        if (
            message.input.id == "input-order-qty"
            and message.input.is_valid
            and self.focused == message.input
        ):
            self.order_qty = int(message.value)

    def watch_order_qty(self, qty: int) -> None:
        self.query_one("#btn-sub-qty", Button).disabled = qty <= 1
        self.query_one("#btn-add-qty", Button).disabled = qty >= self._prod.stock
        self.query_one("#input-order-qty", Input).value = str(qty)

    @on(Button.Pressed, "#btn-add-qty")
    def handle_add_qty(self):
        self.order_qty += 1

    @on(Button.Pressed, "#btn-sub-qty")
    def handle_sub_qty(self):
        self.order_qty -= 1

    @on(Button.Pressed, "#btn-quit")
    def handle_quit(self):
        self.dismiss(False)

    @on(Button.Pressed, "#btn-addcart")
    def handle_addcart(self):
        cart = self.app.state.cart
        if self._existing:
            cart.update_quantity(self._prod.id, self.order_qty)
            self.app.notify("Updated cart item quantity.")
        else:
            p = self._prod
            cart.add_item(
                CartLineItem(
                    product_id=p.id,
                    name=p.name,
                    product_code=p.code,
                    price=self.unit_price,
                    mrp=p.mrp,
                    image_url=p.image,
                ),
                self.order_qty,
            )
            self.app.notify(f"{p.name} added to the estimate cart.")
        self.dismiss(True)
