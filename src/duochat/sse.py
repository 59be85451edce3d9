"""Incremental parser for ``text/event-stream`` chat completion bodies.

The parser is network-independent: it accepts lines or raw chunks and yields
content deltas, so it can be exercised against literal fixtures.
"""

from __future__ import annotations

from collections.abc import AsyncIterable, AsyncIterator, Iterable, Iterator
import codecs
from enum import Enum
import json
import logging
from typing import Any

from .exceptions import ProviderStreamError

LOGGER = logging.getLogger(__name__)

DATA_PREFIX = "data:"
DONE_SENTINEL = "[DONE]"


class ParserState(str, Enum):
    """Resting states of the frame parser between lines."""

    AWAITING_LINE = "AWAITING_LINE"
    TERMINATED = "TERMINATED"


def extract_delta(payload: Any) -> str:
    """Return the incremental content of a decoded frame, or ``""``.

    Reads ``choices[0].delta.content``; a top-level ``content`` string is
    accepted for servers that flatten the frame.
    """
    if not isinstance(payload, dict):
        return ""
    choices = payload.get("choices")
    if isinstance(choices, list) and choices:
        first = choices[0]
        if isinstance(first, dict):
            delta = first.get("delta")
            if isinstance(delta, dict):
                content = delta.get("content")
                if isinstance(content, str):
                    return content
        return ""
    content = payload.get("content")
    return content if isinstance(content, str) else ""


class SSEFrameParser:
    """Turn ``data: <json>`` frames into content deltas until ``[DONE]``.

    One parser instance handles exactly one response body; once terminated
    it ignores everything it is fed.
    """

    def __init__(self, provider: str = "") -> None:
        self.provider = provider
        self._state = ParserState.AWAITING_LINE
        self._buffer = ""
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self.skipped_frames = 0

    @property
    def state(self) -> ParserState:
        return self._state

    @property
    def terminated(self) -> bool:
        return self._state is ParserState.TERMINATED

    def feed_line(self, line: str) -> str | None:
        """Process one line and return its delta, if it carries one."""
        if self.terminated:
            return None
        line = line.rstrip("\r\n")
        if not line.startswith(DATA_PREFIX):
            return None

        payload_raw = line[len(DATA_PREFIX) :].strip()
        if payload_raw == DONE_SENTINEL:
            self._state = ParserState.TERMINATED
            return None
        if not payload_raw:
            return None

        try:
            payload = json.loads(payload_raw)
        except json.JSONDecodeError as exc:
            self._skip(payload_raw, str(exc))
            return None
        if not isinstance(payload, dict):
            self._skip(payload_raw, "payload is not a JSON object")
            return None

        upstream_error = payload.get("error")
        if isinstance(upstream_error, dict):
            message = str(upstream_error.get("message", "")).strip()
            raise ProviderStreamError(
                message or "The provider reported an error mid-stream.",
                provider=self.provider,
            )

        delta = extract_delta(payload)
        return delta or None

    def _skip(self, payload_raw: str, reason: str) -> None:
        self.skipped_frames += 1
        LOGGER.warning(
            "sse.frame.malformed",
            extra={
                "event": "sse.frame.malformed",
                "provider": self.provider,
                "reason": reason,
                "payload_preview": payload_raw[:120],
            },
        )

    def feed(self, chunk: str | bytes) -> list[str]:
        """Consume an arbitrary slice of the body; partial lines are buffered."""
        if self.terminated:
            return []
        text = self._decoder.decode(chunk) if isinstance(chunk, bytes) else chunk
        self._buffer += text
        deltas: list[str] = []
        while not self.terminated:
            newline = self._buffer.find("\n")
            if newline < 0:
                break
            line, self._buffer = self._buffer[:newline], self._buffer[newline + 1 :]
            delta = self.feed_line(line)
            if delta:
                deltas.append(delta)
        if self.terminated:
            self._buffer = ""
        return deltas

    def close(self) -> list[str]:
        """Flush a trailing line that was not newline-terminated."""
        if self.terminated:
            return []
        tail = self._buffer + self._decoder.decode(b"", final=True)
        self._buffer = ""
        delta = self.feed_line(tail) if tail else None
        self._state = ParserState.TERMINATED
        return [delta] if delta else []

    def iter_deltas(self, lines: Iterable[str]) -> Iterator[str]:
        """Lazily yield deltas from an iterable of lines."""
        for line in lines:
            delta = self.feed_line(line)
            if self.terminated:
                break
            if delta:
                yield delta
        self._state = ParserState.TERMINATED

    async def aiter_deltas(self, lines: AsyncIterable[str]) -> AsyncIterator[str]:
        """Async twin of :meth:`iter_deltas` for streamed response bodies."""
        async for line in lines:
            delta = self.feed_line(line)
            if self.terminated:
                break
            if delta:
                yield delta
        self._state = ParserState.TERMINATED
