"""Textual front-end showing both providers' replies side by side."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import VerticalScroll
from textual.widgets import Button, Footer, Header, Input

from .config import load_config
from .conversation import Turn
from .coordinator import TurnCoordinator
from .exceptions import CoordinatorBusyError, EmptyMessageError
from .logging_utils import configure_logging
from .runtime import build_coordinator
from .widgets.input_box import InputBox
from .widgets.turn_view import TurnView

LOGGER = logging.getLogger(__name__)


class DuoChatApp(App[None]):
    """Chat with two providers at once and watch both replies stream in."""

    CSS = """
    Screen {
        layout: vertical;
    }

    #conversation {
        height: 1fr;
        padding: 0 1;
    }

    InputBox {
        height: auto;
        padding: 0 1 1 1;
        border-top: solid $panel;
    }

    #message_input {
        width: 1fr;
    }

    #send_button {
        margin-left: 1;
        min-width: 10;
    }
    """

    BINDINGS = [Binding("ctrl+q", "quit", "Quit")]

    def __init__(
        self,
        config: dict[str, Any] | None = None,
        coordinator: TurnCoordinator | None = None,
    ) -> None:
        super().__init__()
        self.config = config if config is not None else load_config()
        configure_logging(self.config["logging"])
        self.title = str(self.config["app"]["title"])
        self.coordinator = coordinator or build_coordinator(self.config)
        self._turn_views: dict[str, TurnView] = {}
        self._turn_tasks: set[asyncio.Task[Turn]] = set()

    def compose(self) -> ComposeResult:
        yield Header()
        yield VerticalScroll(id="conversation")
        yield InputBox()
        yield Footer()

    def on_mount(self) -> None:
        self.coordinator.log.subscribe(self._on_turn_changed)
        self.coordinator.add_busy_listener(self._on_busy_changed)
        self.sub_title = "Ready"
        self.query_one("#message_input", Input).focus()

    def on_unmount(self) -> None:
        self.coordinator.log.unsubscribe(self._on_turn_changed)
        self.coordinator.remove_busy_listener(self._on_busy_changed)
        for task in self._turn_tasks:
            task.cancel()

    def _on_turn_changed(self, turn: Turn) -> None:
        view = self._turn_views.get(turn.id)
        if view is None:
            view = TurnView(turn, id=f"turn-{turn.id}")
            self._turn_views[turn.id] = view
            conversation = self.query_one("#conversation", VerticalScroll)
            conversation.mount(view)
            conversation.scroll_end(animate=False)
            return
        view.refresh_turn(turn)

    def _on_busy_changed(self, busy: bool) -> None:
        self.query_one(InputBox).set_busy(busy)
        self.sub_title = "Streaming responses..." if busy else "Ready"
        if not busy:
            self.query_one("#message_input", Input).focus()

    async def on_input_submitted(self, event: Input.Submitted) -> None:
        if event.input.id == "message_input":
            await self.send_user_message()

    async def on_button_pressed(self, event: Button.Pressed) -> None:
        if event.button.id == "send_button":
            await self.send_user_message()

    async def send_user_message(self) -> None:
        """Start a turn for the current input; replies stream in the background."""
        input_widget = self.query_one("#message_input", Input)
        try:
            task = self.coordinator.start(input_widget.value)
        except (EmptyMessageError, CoordinatorBusyError) as exc:
            self.sub_title = str(exc)
            return
        input_widget.value = ""
        self._turn_tasks.add(task)
        task.add_done_callback(self._turn_tasks.discard)
