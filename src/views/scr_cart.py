from textual import on, work
from textual.app import ComposeResult
from textual.containers import Container, Horizontal, HorizontalGroup, VerticalScroll
from textual.events import ScreenResume
from textual.message import Message
from textual.widgets import Button, Label, Rule

from core.cart import CartLineItem
from utils.messages import CartChangedMessage
from utils.pure import format_currency
from views.base_screen import BaseScreen
from views.modal_checkout import CheckoutModal
from views.modal_dialog import DialogModal


class CartItemActionMessage(Message):
    bubble = True

    def __init__(self, product_id: int, delta: int = 0, remove: bool = False):
        super().__init__()
        self.product_id = product_id
        self.delta = delta
        self.remove = remove


class CartItemActionLabel(Label):
    def __init__(self, product_id: int, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.product_id = product_id

    def action_change(self, delta: int):
        self.post_message(CartItemActionMessage(self.product_id, delta=delta))

    def action_remove(self):
        self.post_message(CartItemActionMessage(self.product_id, remove=True))


class CartItemWidget(HorizontalGroup):
    def __init__(self, item: CartLineItem):
        super().__init__()
        self.item = item

    def compose(self):
        item = self.item
        with Container(classes="div-cart-item-group"):
            with Container(classes="div-item"):
                code = f" ({item.product_code})" if item.product_code else ""
                yield Label(f"{item.name}{code}", classes="label-item-name")
                yield Label(
                    f"{item.quantity} × {format_currency(item.price)}",
                    classes="label-item-qty",
                )
                yield Label(
                    format_currency(item.line_total), classes="label-item-price"
                )
                if item.mrp > item.price:
                    yield Label(
                        f"MRP {format_currency(item.line_mrp)}, "
                        f"save {format_currency(item.line_savings)}",
                        classes="label-item-savings",
                    )
            with Container(classes="div-actions"):
                yield CartItemActionLabel(
                    item.product_id,
                    "[@click=change(-1)] − [/]",
                    classes="link-item-sub",
                )
                yield CartItemActionLabel(
                    item.product_id, "[@click=change(1)] + [/]", classes="link-item-add"
                )
                yield CartItemActionLabel(
                    item.product_id,
                    "[@click=remove()]Remove[/]",
                    classes="link-item-remove",
                )


class CartScreen(BaseScreen):
    """
    The estimate cart: quantities, totals with savings, checkout.
    """

    def compose(self) -> ComposeResult:
        yield from super().compose()
        yield VerticalScroll(id="vertscroll-content")
        yield Label("", id="label-cart-total")
        yield Rule(line_style="dashed")
        with Horizontal(id="hort-buttons"):
            yield Button("Clear Cart", id="btn-clear-cart")
            yield Button("Checkout", id="btn-checkout", variant="primary")

    def on_mount(self):
        self.handle_cart_change()

    @on(CartChangedMessage)
    @on(ScreenResume)
    @work(exclusive=True)  # must exclusive, else might race cond and gen duplicate
    async def handle_cart_change(self):
        cart = self.app.state.cart
        content = self.query_one("#vertscroll-content")
        await content.remove_children()
        await content.mount_all([CartItemWidget(item) for item in cart.items])
        content.set_class(cart.is_empty, "no-items")

        total = (
            f"Items: {cart.total_items}   "
            f"MRP: {format_currency(cart.total_mrp)}   "
            f"Total: {format_currency(cart.total_amount)}"
        )
        if cart.total_savings > 0:
            total += f"   You save: {format_currency(cart.total_savings)}"
        self.query_one("#label-cart-total", Label).update(total)

    @on(CartItemActionMessage)
    @work(exclusive=True, group="cart-action")
    async def handle_item_action(self, message: CartItemActionMessage):
        cart = self.app.state.cart
        item = cart.get_item(message.product_id)
        if item is None:
            return

        if message.remove or item.quantity + message.delta <= 0:
            if not await self.app.push_screen_wait(
                DialogModal(
                    f"Remove {item.name} from the cart?",
                    primary_text="Yes",
                    secondary_text="No",
                    tone="warning",
                )
            ):
                return
            cart.remove_item(item.product_id)
            self.notify("Item removed from cart.")
        else:
            cart.update_quantity(item.product_id, item.quantity + message.delta)
        self.post_message(CartChangedMessage())

    @on(Button.Pressed, "#btn-clear-cart")
    @work(exclusive=True, group="cart-action")
    async def handle_clear_cart(self) -> None:
        if self.app.state.cart.is_empty:
            self.app.notify("Cart is empty.", severity="warning")
            return

        if await self.app.push_screen_wait(
            DialogModal(
                "Do you really want to remove all items from cart?",
                primary_text="Yes",
                secondary_text="No",
                tone="error",
            )
        ):
            self.app.state.cart.clear_cart()
            self.post_message(CartChangedMessage())

    @on(Button.Pressed, "#btn-checkout")
    @work(exclusive=True, group="cart-action")
    async def handle_checkout(self) -> None:
        if self.app.state.cart.is_empty:
            self.app.notify("Cart is empty.", severity="warning")
            return

        await self.finish_checkout(await self.app.push_screen_wait(CheckoutModal()))

    async def finish_checkout(self, placed: bool) -> None:
        """A placed order lands the user on their order history."""
        self.post_message(CartChangedMessage())
        if placed:
            await self.app.switch_mode("orders")
