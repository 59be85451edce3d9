"""Runtime-style tests for the real Textual app class."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from copy import deepcopy
import logging
import unittest

from duochat.config import DEFAULT_CONFIG
from duochat.coordinator import TurnCoordinator
from duochat.exceptions import ProviderTransportError
from duochat.providers.base import TurnInput
from duochat.snapshot import StaticSnapshotProvider

try:
    from textual.widgets import Input

    from duochat.app import DuoChatApp
    from duochat.widgets.turn_view import ReplyPane, TurnView
except ModuleNotFoundError:
    Input = None  # type: ignore[assignment]
    DuoChatApp = None  # type: ignore[assignment]


class _RuntimeFakeAdapter:
    def __init__(
        self,
        name: str,
        deltas: list[str],
        error: Exception | None = None,
        gate: asyncio.Event | None = None,
    ) -> None:
        self.name = name
        self.deltas = deltas
        self.error = error
        self.gate = gate

    async def send(self, turn_input: TurnInput) -> AsyncIterator[str]:
        for delta in self.deltas:
            yield delta
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error


@unittest.skipIf(DuoChatApp is None, "textual is not installed")
class AppRuntimeTests(unittest.IsolatedAsyncioTestCase):
    """Drive the real app class with fake providers."""

    def setUp(self) -> None:
        root = logging.getLogger()
        self._original_level = root.level
        self._original_handlers = list(root.handlers)

    def tearDown(self) -> None:
        root = logging.getLogger()
        root.setLevel(self._original_level)
        root.handlers.clear()
        root.handlers.extend(self._original_handlers)

    def _build_app(self, *adapters: _RuntimeFakeAdapter) -> DuoChatApp:
        assert DuoChatApp is not None
        config = deepcopy(DEFAULT_CONFIG)
        config["logging"]["structured"] = False
        coordinator = TurnCoordinator(list(adapters), StaticSnapshotProvider())
        return DuoChatApp(config=config, coordinator=coordinator)

    async def _drain(self, app: DuoChatApp) -> None:
        await asyncio.gather(*list(app._turn_tasks))

    async def test_send_renders_both_replies(self) -> None:
        app = self._build_app(
            _RuntimeFakeAdapter("gemini", ["hello", " world"]),
            _RuntimeFakeAdapter("openai", ["hi"]),
        )
        async with app.run_test() as pilot:
            input_widget = app.query_one("#message_input", Input)
            input_widget.value = "question"
            await app.send_user_message()
            self.assertEqual(input_widget.value, "")

            await self._drain(app)
            await pilot.pause()

            turn = app.coordinator.log.turns[0]
            view = app.query_one(f"#turn-{turn.id}", TurnView)
            self.assertEqual(view.turn.user_text, "question")
            self.assertEqual(view.turn.text("gemini"), "hello world")
            self.assertEqual(view.turn.text("openai"), "hi")
            self.assertEqual(app.sub_title, "Ready")
            self.assertFalse(input_widget.disabled)

    async def test_failed_provider_shows_error_beside_other_reply(self) -> None:
        app = self._build_app(
            _RuntimeFakeAdapter("gemini", ["fine"]),
            _RuntimeFakeAdapter(
                "openai", [], error=ProviderTransportError("Invalid API key", provider="openai")
            ),
        )
        async with app.run_test() as pilot:
            app.query_one("#message_input", Input).value = "hello"
            await app.send_user_message()
            await self._drain(app)
            await pilot.pause()

            turn = app.coordinator.log.turns[0]
            self.assertEqual(turn.text("gemini"), "fine")
            self.assertEqual(turn.error("openai"), "Invalid API key")
            view = app.query_one(f"#turn-{turn.id}", TurnView)
            self.assertEqual(view.turn.error("openai"), "Invalid API key")

    async def test_input_disabled_until_both_settle(self) -> None:
        gate = asyncio.Event()
        app = self._build_app(
            _RuntimeFakeAdapter("gemini", ["quick"]),
            _RuntimeFakeAdapter("openai", ["slow"], gate=gate),
        )
        async with app.run_test() as pilot:
            input_widget = app.query_one("#message_input", Input)
            input_widget.value = "hello"
            await app.send_user_message()
            await pilot.pause()

            self.assertTrue(input_widget.disabled)
            self.assertEqual(app.sub_title, "Streaming responses...")

            input_widget.value = "second"
            await app.send_user_message()
            self.assertEqual(app.sub_title, "Busy. Wait for the current turn to finish.")
            self.assertEqual(len(app.coordinator.log), 1)

            gate.set()
            await self._drain(app)
            await pilot.pause()
            self.assertFalse(input_widget.disabled)
            self.assertEqual(app.sub_title, "Ready")

    async def test_empty_message_is_rejected(self) -> None:
        app = self._build_app(_RuntimeFakeAdapter("gemini", ["x"]))
        async with app.run_test():
            app.query_one("#message_input", Input).value = "   "
            await app.send_user_message()
            self.assertEqual(app.sub_title, "Cannot send an empty message.")
            self.assertEqual(len(app.coordinator.log), 0)

    async def test_pending_pane_is_unsettled(self) -> None:
        gate = asyncio.Event()
        app = self._build_app(_RuntimeFakeAdapter("gemini", [], gate=gate))
        async with app.run_test() as pilot:
            app.query_one("#message_input", Input).value = "hello"
            await app.send_user_message()
            await pilot.pause()

            turn = app.coordinator.log.turns[0]
            view = app.query_one(f"#turn-{turn.id}", TurnView)
            self.assertEqual(view.turn.text("gemini"), "")
            pane = view.query_one(ReplyPane)
            self.assertEqual(pane.provider, "gemini")
            self.assertFalse(pane.reply.settled)

            gate.set()
            await self._drain(app)

    async def test_on_unmount_cancels_turn_tasks(self) -> None:
        gate = asyncio.Event()
        app = self._build_app(_RuntimeFakeAdapter("gemini", [], gate=gate))
        async with app.run_test() as pilot:
            app.query_one("#message_input", Input).value = "hello"
            await app.send_user_message()
            await pilot.pause()
            tasks = list(app._turn_tasks)
            self.assertEqual(len(tasks), 1)

        await asyncio.gather(*tasks, return_exceptions=True)
        self.assertTrue(all(task.done() for task in tasks))


if __name__ == "__main__":
    unittest.main()
