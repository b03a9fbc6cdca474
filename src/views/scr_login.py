from textual import on, work
from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical, VerticalScroll
from textual.events import Key
from textual.widgets import (
    Button,
    Input,
    Label,
    RadioButton,
    RadioSet,
    TabbedContent,
    TabPane,
)

import db.crud
from core.pricing import DEALER, RETAIL
from utils.logger import get_logger
from utils.messages import UserLoginMessage
from views.base_screen import BaseScreen
from views.modal_dialog import QuitDialogModal, SimpleDialogModal

_logger = get_logger(__name__)


class LoginScreen(BaseScreen):
    """
    Email login, sign-up, or browsing as a guest.
    Dismisses once app.state holds the new session.
    """

    def __init__(self):
        super().__init__()
        self.configure(header_sub_title="Sign in", show_sidebar=False)

    def compose(self) -> ComposeResult:
        yield from super().compose()
        with TabbedContent(id="super-tab-loginscr"):
            with TabPane("Login", id="tab-login"):
                with Vertical(id="div-login"):
                    yield Label("Email")
                    yield Input(placeholder="you@example.com", id="input-login-email")
                    yield Label("Password")
                    yield Input(
                        placeholder="*********", password=True, id="input-login-pwd"
                    )
                    with Horizontal(id="div-login-btns"):
                        yield Button("Quit", id="btn-quit")
                        yield Button("Continue as Guest", id="btn-guest")
                        yield Button("Login", id="btn-login", variant="primary")

            with TabPane("Sign up", id="tab-signup"):
                with VerticalScroll(id="div-reg"):
                    yield Label("Full Name")
                    yield Input(placeholder="Jane Doe", id="input-reg-name")
                    yield Label("Email")
                    yield Input(placeholder="you@example.com", id="input-reg-email")
                    yield Label("Phone")
                    yield Input(placeholder="+91 98765 43210", id="input-reg-phone")
                    yield Label("Password")
                    yield Input(
                        placeholder="at least 6 characters",
                        password=True,
                        id="input-reg-pwd",
                    )
                    yield Label("Account Type")
                    with RadioSet(id="radio-reg-type"):
                        yield RadioButton(
                            "Retail customer", value=True, id="radio-retail"
                        )
                        yield RadioButton("Dealer / wholesale", id="radio-dealer")
                    with Vertical(id="div-reg-dealer", classes="hidden"):
                        yield Label("Business Name")
                        yield Input(id="input-reg-business")
                        yield Label("GST Number (optional)")
                        yield Input(id="input-reg-gst")
                    yield Label("Referral Code (optional)")
                    yield Input(placeholder="ALICE001", id="input-reg-referral")
                    with Horizontal(id="div-reg-btns"):
                        yield Button("Register", id="btn-reg", variant="primary")

    def on_mount(self):
        self.query_one("#input-login-email").focus()

    def on_key(self, event: Key) -> None:
        if event.key == "enter" and self.focused == self.query_one("#input-login-pwd"):
            self.handle_login_submit()

    @property
    def _reg_user_type(self) -> str:
        radio = self.query_one("#radio-reg-type", RadioSet)
        if radio.pressed_button and radio.pressed_button.id == "radio-dealer":
            return DEALER
        return RETAIL

    @on(RadioSet.Changed, "#radio-reg-type")
    def handle_type_change(self) -> None:
        self.query_one("#div-reg-dealer").set_class(
            self._reg_user_type != DEALER, "hidden"
        )

    @on(Button.Pressed, "#btn-login")
    @work(exclusive=True)
    async def handle_login_submit(self) -> None:
        email = self.query_one("#input-login-email", Input).value.strip()
        pwd = self.query_one("#input-login-pwd", Input).value.strip()

        if not email or not pwd:
            self.notify("Email or password cannot be empty!", severity="error")
            return

        user = await db.crud.login(email, pwd)

        if user:
            await self.app.state.start_session(user.uid, user.role)
            profile = self.app.state.profile
            name = profile.full_name if profile else user.email
            self.notify(f"Welcome back, {name}!")
            self.app.post_message(UserLoginMessage())
            self.dismiss()
        else:
            _logger.info(f"Failed login attempt for {email}")
            self.notify("Invalid email or password.", severity="error")
            input_login_pwd = self.query_one("#input-login-pwd", Input)
            input_login_pwd.value = ""
            input_login_pwd.focus()
            input_login_pwd.add_class("-invalid")

    @on(Button.Pressed, "#btn-guest")
    @work(exclusive=True)
    async def handle_guest(self) -> None:
        self.app.state.start_guest_session()
        await self.app.state.load_settings()
        self.app.post_message(UserLoginMessage())
        self.dismiss()

    @on(Button.Pressed, "#btn-reg")
    @work(exclusive=True)
    async def handle_registration_submit(self) -> None:
        name = self.query_one("#input-reg-name", Input).value.strip()
        email = self.query_one("#input-reg-email", Input).value.strip()
        phone = self.query_one("#input-reg-phone", Input).value.strip()
        pwd = self.query_one("#input-reg-pwd", Input).value.strip()
        business = self.query_one("#input-reg-business", Input).value.strip()
        gst = self.query_one("#input-reg-gst", Input).value.strip()
        referral = self.query_one("#input-reg-referral", Input).value.strip()
        user_type = self._reg_user_type

        if not name or not email or not pwd:
            self.notify("Name, email and password are required.", severity="error")
            return
        if len(pwd) < 6:
            self.notify("Password must be at least 6 characters.", severity="error")
            return
        if user_type == DEALER and not business:
            self.notify("Dealers must provide a business name.", severity="error")
            return

        if not await db.crud.email_available(email):
            self.notify("Email already taken.", severity="error")
            return

        await db.crud.register_customer(
            name,
            email,
            pwd,
            phone=phone or None,
            user_type=user_type,
            business_name=business or None,
            gst_number=gst or None,
            referral_code=referral or None,
        )
        caption = "Registration successful. You can now log in."
        if user_type == DEALER:
            caption += " Your dealer account is pending admin verification."
        await self.app.push_screen_wait(SimpleDialogModal(caption, tone="positive"))

        self.get_child_by_type(TabbedContent).active = "tab-login"
        self.query_one("#input-login-email", Input).value = email
        input_login_pwd = self.query_one("#input-login-pwd", Input)
        input_login_pwd.value = pwd
        input_login_pwd.focus()

    @on(Button.Pressed, "#btn-quit")
    def handle_quit_(self) -> None:
        self.app.push_screen(QuitDialogModal())
