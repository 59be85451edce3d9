"""Render one turn: the user's text and one pane per provider."""

from __future__ import annotations

from typing import Any

from rich.markdown import Markdown
from rich.text import Text
from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical
from textual.widgets import Static

from ..conversation import Reply, ReplyPhase, Turn

WAITING_TEXT = "Waiting for response..."


class ReplyPane(Static):
    """One provider's accumulated reply, or its error."""

    DEFAULT_CSS = """
    ReplyPane {
        width: 1fr;
        height: auto;
        padding: 0 1;
        border: round $panel;
    }
    ReplyPane.failed {
        border: round $error;
    }
    """

    def __init__(self, provider: str, reply: Reply, **kwargs: Any) -> None:
        super().__init__("", **kwargs)
        self.provider = provider
        self.border_title = provider
        self.reply = reply

    def on_mount(self) -> None:
        self.show(self.reply)

    def show(self, reply: Reply) -> None:
        self.reply = reply
        self.set_class(reply.phase is ReplyPhase.FAILED, "failed")
        if reply.error is not None:
            body: Any = Text()
            if reply.text:
                body.append(reply.text.rstrip() + "\n\n")
            body.append(f"Error: {reply.error}", style="bold red")
        elif reply.text:
            body = Markdown(reply.text.rstrip())
        elif reply.settled:
            body = Text("(No response from model.)", style="dim")
        else:
            body = Text(WAITING_TEXT, style="dim italic")
        self.update(body)


class TurnView(Vertical):
    """User text above the provider panes, addressed by turn id."""

    DEFAULT_CSS = """
    TurnView {
        height: auto;
        margin: 1 0;
    }
    TurnView > .user-text {
        padding: 0 1;
        background: $primary 20%;
    }
    TurnView > Horizontal {
        height: auto;
    }
    """

    def __init__(self, turn: Turn, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.turn = turn
        self._panes: dict[str, ReplyPane] = {}

    def compose(self) -> ComposeResult:
        yield Static(Text(f"You: {self.turn.user_text}"), classes="user-text")
        with Horizontal():
            for provider, reply in self.turn.replies.items():
                pane = ReplyPane(provider, reply)
                self._panes[provider] = pane
                yield pane

    def refresh_turn(self, turn: Turn) -> None:
        self.turn = turn
        for provider, reply in turn.replies.items():
            pane = self._panes.get(provider)
            if pane is not None:
                pane.show(reply)
