"""Input row containing the message field and send button."""

from __future__ import annotations

from textual.containers import Horizontal
from textual.widgets import Button, Input


class InputBox(Horizontal):
    """Message field and send button; both are disabled while a turn streams."""

    def compose(self):  # type: ignore[override]
        yield Input(placeholder="Ask both assistants...", id="message_input")
        yield Button("Send", id="send_button", variant="success")

    def set_busy(self, busy: bool) -> None:
        self.query_one("#message_input", Input).disabled = busy
        self.query_one("#send_button", Button).disabled = busy
