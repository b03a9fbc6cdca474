from textual.message import Message


class QuitRequestedMessage(Message):
    """
    broadcasted when the app is about to quit
    """

    bubble = True


class UserLogoutMessage(Message):
    """
    broadcasted when the user logs out
    """

    bubble = True


class UserLoginMessage(Message):
    """
    Fired once the profile is loaded after login (or when continuing as guest).
    Screens that show prices re-resolve them, since the classification may
    have changed.
    """

    bubble = True


class CartChangedMessage(Message):
    """
    Fired whenever the cart store is mutated (quick order, cart screen, checkout).
    Must be posted at App level so screens in other modes receive it.
    """

    bubble = True


class OrderPlacedMessage(Message):
    """
    Fired when a new order is stored.
    Listened to by the orders screen and the admin screens.
    """

    bubble = True

    def __init__(self, order_number: str) -> None:
        super().__init__()
        self.order_number = order_number


class WalletChangedMessage(Message):
    """
    Fired after the wallet balance was re-read from the backend.
    """

    bubble = True


class ModeSwitchedMessage(Message):
    """
    fired whenever switch_mode is called
    must be fired from app level
    """

    bubble = True

    def __init__(self, old_mode: str, new_mode: str) -> None:
        super().__init__()
        self.old_mode = old_mode
        self.new_mode = new_mode
