"""Tests for the stateful Gemini session adapter."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from types import SimpleNamespace
from typing import Any
import unittest
from unittest.mock import patch

import httpx

from duochat.exceptions import (
    ProviderConfigurationError,
    ProviderSessionError,
    ProviderStreamError,
    ProviderTransportError,
)
from duochat.providers.base import TurnInput
from duochat.providers.gemini import GeminiSessionAdapter, _extract_chunk_text


def _chunk(*parts: tuple[str, bool]) -> SimpleNamespace:
    return SimpleNamespace(
        candidates=[
            SimpleNamespace(
                content=SimpleNamespace(
                    parts=[SimpleNamespace(text=text, thought=thought) for text, thought in parts]
                )
            )
        ]
    )


class FakeChat:
    def __init__(self, replies: list[list[Any]], error: Exception | None = None) -> None:
        self.replies = replies
        self.error = error
        self.messages: list[str] = []

    async def send_message_stream(self, message: str) -> AsyncIterator[Any]:
        self.messages.append(message)
        chunks = self.replies.pop(0) if self.replies else []
        error = self.error

        async def iterate() -> AsyncIterator[Any]:
            for chunk in chunks:
                yield chunk
            if error is not None:
                raise error

        return iterate()


class GatedChat:
    """Chat whose replies stay open until the gate is set."""

    def __init__(self, gate: asyncio.Event) -> None:
        self.gate = gate
        self.messages: list[str] = []
        self.active = 0
        self.max_active = 0

    async def send_message_stream(self, message: str) -> AsyncIterator[Any]:
        self.messages.append(message)
        self.active += 1
        self.max_active = max(self.max_active, self.active)

        async def iterate() -> AsyncIterator[Any]:
            try:
                yield _chunk((message, False))
                await self.gate.wait()
            finally:
                self.active -= 1

        return iterate()


class FakeClient:
    def __init__(self, chat_factory=None, create_error: Exception | None = None) -> None:
        self.created: list[dict[str, Any]] = []
        self.chats_made: list[FakeChat] = []
        self._chat_factory = chat_factory or (lambda: FakeChat([[_chunk(("ok", False))]] * 5))
        self._create_error = create_error
        self.aio = SimpleNamespace(chats=SimpleNamespace(create=self._create))

    def _create(self, *, model: str, config: Any) -> FakeChat:
        if self._create_error is not None:
            raise self._create_error
        self.created.append({"model": model, "config": config})
        chat = self._chat_factory()
        self.chats_made.append(chat)
        return chat


def _turn_input(system_prompt: str = "PROMPT-A", user_text: str = "hello") -> TurnInput:
    return TurnInput(turn_id="t", user_text=user_text, system_prompt=system_prompt)


class GeminiSessionAdapterTests(unittest.IsolatedAsyncioTestCase):
    """Validate session memoisation, streaming and error mapping."""

    async def _collect(self, adapter: GeminiSessionAdapter, turn_input: TurnInput) -> list[str]:
        return [delta async for delta in adapter.send(turn_input)]

    async def test_streams_text_parts_in_order(self) -> None:
        client = FakeClient(
            lambda: FakeChat([[_chunk(("Hel", False)), _chunk(("lo", False))]])
        )
        adapter = GeminiSessionAdapter(model="gemini-test", client=client)

        deltas = await self._collect(adapter, _turn_input())

        self.assertEqual(deltas, ["Hel", "lo"])
        self.assertEqual(client.created[0]["model"], "gemini-test")
        self.assertEqual(client.created[0]["config"].system_instruction, "PROMPT-A")
        self.assertEqual(client.chats_made[0].messages, ["hello"])

    async def test_session_is_reused_while_prompt_is_unchanged(self) -> None:
        client = FakeClient()
        adapter = GeminiSessionAdapter(client=client)

        await self._collect(adapter, _turn_input(user_text="one"))
        await self._collect(adapter, _turn_input(user_text="two"))

        self.assertEqual(len(client.created), 1)
        self.assertEqual(client.chats_made[0].messages, ["one", "two"])
        self.assertEqual(adapter.session_generation, 1)

    async def test_prompt_change_rebuilds_session(self) -> None:
        client = FakeClient()
        adapter = GeminiSessionAdapter(client=client)

        await self._collect(adapter, _turn_input("PROMPT-A"))
        first_fingerprint = adapter.session_fingerprint
        with self.assertLogs("duochat.providers.gemini", level="INFO") as logs:
            await self._collect(adapter, _turn_input("PROMPT-B"))

        self.assertEqual(len(client.created), 2)
        self.assertEqual(client.created[1]["config"].system_instruction, "PROMPT-B")
        self.assertNotEqual(adapter.session_fingerprint, first_fingerprint)
        self.assertEqual(adapter.session_generation, 2)
        self.assertTrue(any("provider.session.rebuilt" in line for line in logs.output))

    async def test_overlapping_sends_on_one_session_are_serialised(self) -> None:
        gate = asyncio.Event()
        chat = GatedChat(gate)
        adapter = GeminiSessionAdapter(client=FakeClient(lambda: chat))

        first = asyncio.create_task(self._collect(adapter, _turn_input(user_text="one")))
        second = asyncio.create_task(self._collect(adapter, _turn_input(user_text="two")))
        for _ in range(10):
            await asyncio.sleep(0)
        self.assertEqual(chat.messages, ["one"])

        gate.set()
        results = await asyncio.gather(first, second)

        self.assertEqual(results, [["one"], ["two"]])
        self.assertEqual(chat.messages, ["one", "two"])
        self.assertEqual(chat.max_active, 1)
        self.assertEqual(adapter.session_generation, 1)

    async def test_missing_api_key_names_environment_variable(self) -> None:
        with patch.dict("os.environ", {}, clear=True):
            adapter = GeminiSessionAdapter()

        with self.assertRaises(ProviderConfigurationError) as ctx:
            await self._collect(adapter, _turn_input())

        self.assertIn("GEMINI_API_KEY", str(ctx.exception))
        self.assertEqual(ctx.exception.credential, "GEMINI_API_KEY")

    async def test_session_creation_failure(self) -> None:
        adapter = GeminiSessionAdapter(client=FakeClient(create_error=ValueError("bad model")))

        with self.assertRaises(ProviderSessionError) as ctx:
            await self._collect(adapter, _turn_input())

        self.assertIn("bad model", str(ctx.exception))
        self.assertIsNone(adapter.session_fingerprint)

    async def test_mid_stream_failure_keeps_delivered_deltas(self) -> None:
        client = FakeClient(
            lambda: FakeChat([[_chunk(("partial", False))]], error=RuntimeError("reset"))
        )
        adapter = GeminiSessionAdapter(client=client)
        received: list[str] = []

        with self.assertRaises(ProviderStreamError):
            async for delta in adapter.send(_turn_input()):
                received.append(delta)

        self.assertEqual(received, ["partial"])

    async def test_http_failure_maps_to_transport_error(self) -> None:
        client = FakeClient(
            lambda: FakeChat([[]], error=httpx.ConnectError("unreachable"))
        )
        adapter = GeminiSessionAdapter(client=client)

        with self.assertRaises(ProviderTransportError):
            await self._collect(adapter, _turn_input())


class ExtractChunkTextTests(unittest.TestCase):
    """Validate chunk text extraction."""

    def test_thought_parts_are_skipped(self) -> None:
        chunk = _chunk(("thinking...", True), ("answer", False), ("!", False))
        self.assertEqual(_extract_chunk_text(chunk), "answer!")

    def test_chunk_without_candidates_is_empty(self) -> None:
        self.assertEqual(_extract_chunk_text(SimpleNamespace(candidates=None)), "")
        self.assertEqual(_extract_chunk_text(SimpleNamespace()), "")


if __name__ == "__main__":
    unittest.main()
