from textual import on, work
from textual.app import ComposeResult
from textual.binding import Binding
from textual.containers import Container
from textual.events import Resize, ScreenResume
from textual.screen import Screen
from textual.widgets import Button, Footer, Header, Label, ListItem, ListView, Markdown

from utils.messages import ModeSwitchedMessage, UserLogoutMessage
from utils.pure import format_currency, generate_markdown_table
from views.modal_dialog import DialogModal, QuitDialogModal, ResizeScreenPromptModal


class Sidebar(Container):
    def compose(self) -> ComposeResult:
        yield Label("User Info", id="label-info-1")
        yield Markdown("", id="md-userinfo")
        yield Button("Log out", id="btn-logout", variant="error")
        yield Label("Menu", id="label-info-2")
        yield ListView(id="list-menu")

    def on_mount(self):
        self.refresh_info()

    @work(exclusive=True, group="sidebar")
    async def refresh_info(self) -> None:
        """Rebuild the user card and the menu for the current session."""
        state = self.app.state
        if state.role == "admin":
            name = state.profile.full_name if state.profile else "-"
            rows = [["Name", name], ["Role", "Administrator"]]
            modes = self.app.ADMIN_MODES
        elif state.role == "customer" and state.profile:
            account = state.profile.user_type.capitalize()
            if state.is_verified_dealer:
                account += " (verified)"
            elif state.is_pending_dealer:
                account += " (pending verification)"
            rows = [
                ["Name", state.profile.full_name],
                ["Account", account],
                ["Wallet", format_currency(state.wallet_balance)],
            ]
            modes = self.app.CUSTOMER_MODES
        else:
            rows = [["Name", "Guest"], ["Account", "Retail prices"]]
            modes = self.app.GUEST_MODES

        await self.query_one("#md-userinfo", Markdown).update(
            generate_markdown_table(None, rows, ["l", "l"])
        )
        self.query_one("#btn-logout", Button).label = (
            "Sign in" if state.is_guest else "Log out"
        )

        list_menu: ListView = self.query_one("#list-menu")
        await list_menu.clear()
        await list_menu.extend(
            [ListItem(Label(v), name=k) for k, v in modes.items()]
        )
        self.highlight_item(self.app.current_mode)

    async def on_list_view_selected(self, event: ListView.Selected):
        selected_mode = event.item.name
        if self.app.current_mode != selected_mode:
            self.app.post_message(
                ModeSwitchedMessage(self.app.current_mode, selected_mode)
            )
            await self.app.switch_mode(selected_mode)

    @on(Button.Pressed, "#btn-logout")
    @work(exclusive=True)
    async def handle_logout(self):
        if not self.app.state.is_guest and not await self.app.push_screen_wait(
            DialogModal(
                "Are you sure you want to log out?",
                primary_text="Yes",
                secondary_text="No",
                tone="warning",
            )
        ):
            return

        self.app.post_message(UserLogoutMessage())

    def highlight_item(self, mode_str: str):
        list_menu = self.query_one("#list-menu", ListView)
        for i, item in enumerate(list_menu.children):
            if item.name == mode_str:
                list_menu.index = i
                break


class BaseScreen(Screen):
    """
    Inherited by all screens, contains common elements like
    headers, footers, sidebar, and keybindings.
    """

    BINDINGS = [
        Binding("ctrl+z", "quit", "Quit App", show=True),
    ]

    MIN_WIDTH = 60
    MIN_HEIGHT = 20

    def __init__(self):
        super().__init__()

        self.configure()

    def configure(
        self,
        header_sub_title: str = "",
        show_sidebar: bool = True,
    ) -> None:
        """
        configure behavior of the base screen
        :return:
        """
        self.app.title = self.app.state.settings.store_name
        self.sub_title = header_sub_title
        for k, v in self.app.MODES.items():
            if isinstance(self, v):
                self.sub_title = self.app.ALL_MODE_TITLES.get(k, header_sub_title)

        self._show_sidebar = show_sidebar

    def compose(self) -> ComposeResult:
        if self._show_sidebar:
            yield Sidebar()
        yield Header()
        yield Footer(show_command_palette=False)

    async def on_resize(self, event: Resize) -> None:
        if event.size.width < self.MIN_WIDTH or event.size.height < self.MIN_HEIGHT:
            self.app.push_screen(
                ResizeScreenPromptModal(self.MIN_WIDTH, self.MIN_HEIGHT)
            )

    @on(ScreenResume)
    def handle_sidebar_resume(self):
        # the session may have changed while this screen was in the background
        if self._show_sidebar:
            self.query_one(Sidebar).refresh_info()

    @work()
    async def action_quit(self):
        await self.app.push_screen_wait(QuitDialogModal())
