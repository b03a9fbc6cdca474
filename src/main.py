from textual import on, work
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.widgets import LoadingIndicator

import db.crud
from utils.logger import get_logger
from utils.messages import (
    ModeSwitchedMessage,
    OrderPlacedMessage,
    QuitRequestedMessage,
    UserLoginMessage,
    UserLogoutMessage,
    WalletChangedMessage,
)
from utils.state import GlobalState
from views.modal_dialog import AnnouncementModal, SimpleDialogModal
from views.scr_account import AccountScreen
from views.scr_admin_catalog import AdminCatalogScreen
from views.scr_admin_customers import AdminCustomersScreen
from views.scr_admin_dashboard import AdminDashboardScreen
from views.scr_admin_orders import AdminOrdersScreen
from views.scr_admin_products import AdminProductsScreen
from views.scr_admin_referrals import AdminReferralsScreen
from views.scr_admin_settings import AdminSettingsScreen
from views.scr_admin_wallet import AdminWalletScreen
from views.scr_cart import CartScreen
from views.scr_login import LoginScreen
from views.scr_orders import OrdersScreen
from views.scr_quick_order import QuickOrderScreen
from views.scr_wallet import WalletScreen

_logger = get_logger(__name__)


class StorefrontApp(App):
    BINDINGS = [
        Binding("ctrl+t", "switch_light", "Toggle Theme", show=True),
    ]

    MODES = {
        "quick_order": QuickOrderScreen,
        "cart": CartScreen,
        "orders": OrdersScreen,
        "wallet": WalletScreen,
        "account": AccountScreen,
        "admin_dashboard": AdminDashboardScreen,
        "admin_products": AdminProductsScreen,
        "admin_catalog": AdminCatalogScreen,
        "admin_orders": AdminOrdersScreen,
        "admin_customers": AdminCustomersScreen,
        "admin_wallet": AdminWalletScreen,
        "admin_referrals": AdminReferralsScreen,
        "admin_settings": AdminSettingsScreen,
    }

    CUSTOMER_MODES = {
        "quick_order": "Quick Order",
        "cart": "Estimate Cart",
        "orders": "My Orders",
        "wallet": "Wallet & Referrals",
        "account": "My Account",
    }
    GUEST_MODES = {
        "quick_order": "Quick Order",
        "cart": "Estimate Cart",
    }
    ADMIN_MODES = {
        "admin_dashboard": "Dashboard",
        "admin_products": "Products",
        "admin_catalog": "Categories & Offers",
        "admin_orders": "Orders",
        "admin_customers": "Customers",
        "admin_wallet": "Wallets",
        "admin_referrals": "Referrals",
        "admin_settings": "Settings",
    }
    ALL_MODE_TITLES = {**CUSTOMER_MODES, **ADMIN_MODES}

    CSS_PATH = [
        "styles/index.tcss",
        "styles/dialog.tcss",
        "styles/login.tcss",
        "styles/quick_order.tcss",
        "styles/cart.tcss",
        "styles/checkout.tcss",
        "styles/orders.tcss",
        "styles/admin.tcss",
    ]

    state: GlobalState

    def __init__(self):
        super().__init__()
        self.state = GlobalState()
        self._announced = False

    def compose(self) -> ComposeResult:
        yield LoadingIndicator()

    async def on_mount(self) -> None:
        self.main_flow()

    def action_switch_light(self):
        if self.theme == "textual-dark":
            self.theme = "solarized-light"
        else:
            self.theme = "textual-dark"
        self.notify(f"Theme changed to {self.theme}")

    @on(UserLoginMessage)
    def handle_user_login(self):
        _logger.info(
            f"Session started: uid={self.state.uid} role={self.state.role} "
            f"guest={self.state.is_guest}"
        )

    @on(UserLogoutMessage)
    @work
    async def handle_user_logout(self):
        was_guest = self.state.is_guest
        self.state.end_session()
        self._announced = False
        if not was_guest:
            self.notify("Logout successful.")
        self.main_flow()

    @on(QuitRequestedMessage)
    def handle_quit(self):
        if self.state.uid:
            self.state.end_session()
        self.exit()

    @on(WalletChangedMessage)
    @work(exclusive=True, group="wallet")
    async def handle_wallet_changed(self):
        await self.state.refresh_profile()

    @on(OrderPlacedMessage)
    def handle_order_placed(self, message: OrderPlacedMessage):
        _logger.info(f"Order {message.order_number} placed by {self.state.uid}")

    @on(ModeSwitchedMessage)
    def handle_mode_switched(self, message: ModeSwitchedMessage):
        _logger.debug(f"Mode {message.old_mode} -> {message.new_mode}")

    @work(exclusive=True, group="main")
    async def main_flow(self):
        while True:
            await self.push_screen_wait(LoginScreen())
            if self.state.role == "admin" or not self.state.settings.maintenance_mode:
                break
            await self.push_screen_wait(
                SimpleDialogModal(
                    f"{self.state.settings.store_name} is under maintenance. "
                    "Please check back soon.",
                    tone="warning",
                )
            )
            self.state.end_session()

        new_mode = "admin_dashboard" if self.state.role == "admin" else "quick_order"
        self.post_message(ModeSwitchedMessage(self.current_mode, new_mode))
        await self.switch_mode(new_mode)

        settings = self.state.settings
        if (
            self.state.role != "admin"
            and settings.enable_notifications
            and not self._announced
        ):
            self._announced = True
            for announcement in await db.crud.list_active_announcements():
                await self.push_screen_wait(AnnouncementModal(announcement))


def main():
    StorefrontApp().run()


if __name__ == "__main__":
    main()
