from typing import Optional

from textual import events, on, work
from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical, VerticalScroll
from textual.screen import ModalScreen
from textual.widgets import Button, Input, Label, MarkdownViewer, Switch

from core.composer import (
    CustomerDetails,
    OrderComposer,
    OrderDraft,
    compute_wallet_discount,
)
from core.errors import (
    MinimumOrderNotMetError,
    NetworkError,
    PersistenceError,
    ValidationError,
)
from utils import config
from utils.messages import OrderPlacedMessage, WalletChangedMessage
from utils.pure import format_currency, generate_markdown_table
from views.modal_dialog import DialogModal, SimpleDialogModal

_FIELD_INPUTS = {
    "name": "#input-name",
    "phone": "#input-phone",
    "address": "#input-address",
}


class CheckoutModal(ModalScreen[bool]):
    """
    Customer details, optional wallet discount, then either place the order
    or hand the estimate over to WhatsApp.
    Returns True when an order was placed.
    """

    def compose(self) -> ComposeResult:
        with Horizontal(id="hort-checkout"):
            yield MarkdownViewer("", show_table_of_contents=False)
            with VerticalScroll(id="div-checkout-form"):
                yield Label("Name")
                yield Input(id="input-name")
                yield Label("Phone")
                yield Input(id="input-phone")
                yield Label("Delivery Address")
                yield Input(placeholder="Door no, street, city", id="input-address")
                yield Label("Notes (optional)")
                yield Input(id="input-notes")
                with Horizontal(id="div-wallet"):
                    yield Switch(value=False, id="switch-wallet")
                    yield Label("", id="label-wallet")
                with Vertical(id="div-checkout-btns"):
                    yield Button("Go Back", id="btn-quit")
                    yield Button(
                        "Send via WhatsApp", id="btn-whatsapp", variant="success"
                    )
                    yield Button("Place Order", id="btn-submit", variant="primary")

    async def on_mount(self):
        state = self.app.state
        if state.profile:
            p = state.profile
            self.query_one("#input-name", Input).value = p.full_name or ""
            self.query_one("#input-phone", Input).value = p.phone or ""
            self.query_one("#input-address", Input).value = p.address or ""

        if self._wallet_available:
            self.query_one("#label-wallet", Label).update(
                f"Use wallet balance ({format_currency(state.wallet_balance)})"
            )
        else:
            self.query_one("#div-wallet").add_class("hidden")
        if state.is_guest:
            self.query_one("#btn-submit", Button).tooltip = "Log in to place orders"

        await self.render_summary()
        self.query_one("#input-name").focus()

    @property
    def _wallet_available(self) -> bool:
        state = self.app.state
        return (
            state.wallet is not None
            and state.settings.enable_wallet
            and state.wallet_balance > 0
        )

    @property
    def _use_wallet(self) -> bool:
        switch = self.query_one("#switch-wallet", Switch)
        return self._wallet_available and switch.value

    @on(Switch.Changed, "#switch-wallet")
    async def render_summary(self) -> None:
        state = self.app.state
        cart = state.cart
        rows = [
            [
                item.name,
                item.quantity,
                format_currency(item.price),
                format_currency(item.line_total),
            ]
            for item in cart.items
        ]
        md = "### Order Summary\n\n" + generate_markdown_table(
            ["Product", "Qty", "Unit Price", "Total"], rows, ["l", "c", "r", "r"]
        )

        discount = compute_wallet_discount(
            state.wallet_balance, cart.total_amount, self._use_wallet
        )
        md += (
            f"\n\n**Total items:** {cart.total_items}  \n"
            f"**MRP total:** {format_currency(cart.total_mrp)}  \n"
            f"**You save:** {format_currency(cart.total_savings)}  \n"
            f"**Subtotal:** {format_currency(cart.total_amount)}  \n"
        )
        if discount > 0:
            md += f"**Wallet discount:** -{format_currency(discount)}  \n"
        final = cart.total_amount - discount
        md += f"**Estimated total:** {format_currency(final)}\n"

        minimum = state.settings.minimum_order_value(state.classification)
        if cart.total_amount < minimum:
            md += (
                f"\n> Minimum order value is {format_currency(minimum)}. "
                f"Add {format_currency(minimum - cart.total_amount)} more.\n"
            )
        await self.query_one(MarkdownViewer).document.update(md)

    def on_key(self, event: events.Key) -> None:
        if event.key == "escape":
            self.dismiss(False)

    def _details(self) -> CustomerDetails:
        return CustomerDetails(
            name=self.query_one("#input-name", Input).value,
            phone=self.query_one("#input-phone", Input).value,
            address=self.query_one("#input-address", Input).value,
            notes=self.query_one("#input-notes", Input).value,
        )

    def _prepare(self, composer: OrderComposer) -> Optional[OrderDraft]:
        """Run the local checks; report the first problem and return None."""
        state = self.app.state
        for selector in _FIELD_INPUTS.values():
            self.query_one(selector, Input).remove_class("-invalid")
        try:
            return composer.prepare(
                self._details(),
                self._use_wallet,
                state.settings.minimum_order_value(state.classification),
            )
        except ValidationError as e:
            if e.field in _FIELD_INPUTS:
                field_input = self.query_one(_FIELD_INPUTS[e.field], Input)
                field_input.add_class("-invalid")
                field_input.focus()
            self.notify(e.message, severity="error")
        except MinimumOrderNotMetError as e:
            self.notify(
                f"Minimum order value is {format_currency(e.threshold)}. "
                f"Add {format_currency(e.shortfall)} more to continue.",
                severity="warning",
            )
        return None

    @on(Button.Pressed, "#btn-whatsapp")
    def handle_whatsapp(self) -> None:
        state = self.app.state
        composer = OrderComposer(state.cart, state.wallet)
        draft = self._prepare(composer)
        if draft is None:
            return
        number = state.settings.whatsapp_number or config.WHATSAPP_NUMBER
        url = composer.send_via_whatsapp(draft, state.settings.store_name, number)
        self.app.open_url(url)
        self.notify("Opening WhatsApp with your order estimate.")

    @on(Button.Pressed, "#btn-submit")
    @work(exclusive=True)
    async def handle_submit(self) -> None:
        state = self.app.state
        if state.uid is None:
            self.notify(
                "Please log in to place an order, or send it via WhatsApp.",
                severity="warning",
            )
            return

        composer = OrderComposer(state.cart, state.wallet)
        draft = self._prepare(composer)
        if draft is None:
            return

        if not await self.app.push_screen_wait(
            DialogModal(
                f"Place order for {format_currency(draft.totals.final_amount)}?",
                primary_text="Yes",
                secondary_text="No",
                tone="positive",
            )
        ):
            return

        try:
            receipt = await composer.place_order(
                draft, state.uid, state.classification
            )
        except NetworkError as e:
            self.notify(str(e), severity="error")
            return
        except PersistenceError as e:
            if e.order_number:
                await self.app.push_screen_wait(
                    SimpleDialogModal(
                        f"Order {e.order_number} was created but its items could not "
                        "be saved. Please contact the store with this order number.",
                        tone="error",
                    )
                )
            else:
                self.notify(str(e), severity="error")
            return

        if receipt.wallet_warning:
            self.notify(receipt.wallet_warning, severity="warning")
        if receipt.totals.wallet_discount > 0:
            self.app.post_message(WalletChangedMessage())

        self.app.post_message(OrderPlacedMessage(receipt.order_number))
        await self.app.push_screen_wait(
            SimpleDialogModal(
                f"Order placed. Your order number is {receipt.order_number}.",
                tone="positive",
            )
        )
        self.dismiss(True)

    @on(Button.Pressed, "#btn-quit")
    def handle_quit(self):
        self.dismiss(False)
