from typing import Dict, Literal, Optional, Tuple

from typing_extensions import override

from textual.app import ComposeResult
from textual.containers import Container, Horizontal
from textual.events import Resize
from textual.screen import ModalScreen
from textual.widgets import Button, Label, Markdown

from db.models import Announcement
from utils.messages import QuitRequestedMessage

Tone = Literal["default", "positive", "warning", "error"]


class DialogModal(ModalScreen[bool]):
    """
    Confirmation / information box. Dismisses with True for the primary
    button and False for the secondary one.
    """

    VARIANT_MAP: Dict[
        str, Tuple[Literal["primary", "default", "success", "warning", "error"], ...]
    ] = {
        "default": ("primary", "default"),
        "positive": ("success", "default"),
        "warning": ("warning", "default"),
        "error": ("error", "primary"),
    }

    def __init__(
        self,
        caption: str,
        primary_text: str = "OK",
        secondary_text: str = "",
        tone: Tone = "default",
        heading: Optional[str] = None,
    ):
        super().__init__()
        self.caption = caption
        self.primary_text = primary_text
        self.secondary_text = secondary_text
        self.tone = tone
        self.heading = heading

    def compose(self) -> ComposeResult:
        with Container(id="div-dialog", classes=f"tone-{self.tone}"):
            if self.heading:
                yield Label(self.heading, id="dialog-title")
            yield Label(self.caption, id="caption")
            with Horizontal(id="dialog"):
                if self.secondary_text:
                    yield Button(
                        self.secondary_text,
                        variant=DialogModal.VARIANT_MAP[self.tone][1],
                        id="btn-secondary",
                    )
                yield Button(
                    self.primary_text,
                    variant=DialogModal.VARIANT_MAP[self.tone][0],
                    id="btn-primary",
                )

    def on_mount(self):
        # destructive questions default to the safe answer
        if self.secondary_text and self.tone == "error":
            self.query_one("#btn-secondary").focus()
        else:
            self.query_one("#btn-primary").focus()

    def on_button_pressed(self, event: Button.Pressed) -> None:
        self.dismiss(event.button.id == "btn-primary")


class SimpleDialogModal(DialogModal):
    def __init__(self, caption: str, tone: Tone = "default"):
        super().__init__(caption, tone=tone)


class QuitDialogModal(DialogModal):
    def __init__(self):
        super().__init__("Are you sure you want to quit?", "Yes", "No", "error")

    @override
    def on_button_pressed(self, event: Button.Pressed) -> None:
        if event.button.id == "btn-primary":
            self.post_message(QuitRequestedMessage())
            self.dismiss(True)
        else:
            self.dismiss(False)


class AnnouncementModal(ModalScreen[bool]):
    """Popup for a store announcement shown after login."""

    TONES: Dict[str, Tone] = {
        "announcement": "default",
        "offer": "positive",
        "warning": "warning",
        "info": "default",
    }

    def __init__(self, announcement: Announcement):
        super().__init__()
        self.announcement = announcement

    def compose(self) -> ComposeResult:
        tone = self.TONES.get(self.announcement.popup_type, "default")
        with Container(id="div-dialog", classes=f"tone-{tone}"):
            yield Label(self.announcement.title, id="dialog-title")
            yield Markdown(self.announcement.content or "", id="md-announcement")
            with Horizontal(id="dialog"):
                yield Button(
                    "Got it", variant=DialogModal.VARIANT_MAP[tone][0], id="btn-primary"
                )

    def on_mount(self):
        self.query_one("#btn-primary").focus()

    def on_button_pressed(self, event: Button.Pressed) -> None:
        self.dismiss(True)


class ResizeScreenPromptModal(ModalScreen[bool]):
    """Covers the screen until the terminal is at least min_width x min_height."""

    def __init__(self, min_width: int = 60, min_height: int = 20) -> None:
        super().__init__()
        self.min_width = min_width
        self.min_height = min_height

    def compose(self) -> ComposeResult:
        with Container(id="div-resize"):
            yield Label(
                f"Terminal too small. Resize to at least "
                f"{self.min_width}x{self.min_height}.",
                id="prompt",
            )

    def on_resize(self, event: Resize) -> None:
        if event.size.width >= self.min_width and event.size.height >= self.min_height:
            self.dismiss(True)
