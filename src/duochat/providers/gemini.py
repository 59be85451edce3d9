"""Stateful adapter holding a Gemini chat session across turns."""

from __future__ import annotations

from collections.abc import AsyncIterator
import asyncio
import logging
import os
from typing import Any

import httpx
from google import genai
from google.genai import errors as genai_errors
from google.genai import types

from ..exceptions import (
    ProviderConfigurationError,
    ProviderError,
    ProviderSessionError,
    ProviderStreamError,
    ProviderTransportError,
)
from ..prompt import prompt_fingerprint
from .base import TurnInput

LOGGER = logging.getLogger(__name__)

DEFAULT_MODEL = "gemini-2.5-flash"
DEFAULT_API_KEY_ENV = "GEMINI_API_KEY"


def _extract_chunk_text(chunk: Any) -> str:
    """Join the non-thought text parts of a streamed response chunk."""
    candidates = getattr(chunk, "candidates", None)
    if not candidates:
        return ""
    content = getattr(candidates[0], "content", None)
    parts = getattr(content, "parts", None) or []
    texts: list[str] = []
    for part in parts:
        if getattr(part, "thought", None):
            continue
        text = getattr(part, "text", None)
        if isinstance(text, str) and text:
            texts.append(text)
    return "".join(texts)


class GeminiSessionAdapter:
    """Forward each turn to a server-side chat session.

    The session is memoised on the fingerprint of the system prompt. When the
    prompt changes the session is replaced, which drops everything the
    provider remembered about earlier turns. Sends on one session are
    serialised so overlapping turns cannot interleave its history.
    """

    def __init__(
        self,
        model: str = DEFAULT_MODEL,
        api_key: str | None = None,
        api_key_env: str = DEFAULT_API_KEY_ENV,
        client: Any | None = None,
        name: str = "gemini",
    ) -> None:
        self.name = name
        self.model = model
        self.api_key_env = api_key_env
        self._api_key = (
            api_key if api_key is not None else os.environ.get(api_key_env, "")
        ).strip()
        self._client = client
        self._session: Any | None = None
        self._session_fingerprint: str | None = None
        self._session_lock = asyncio.Lock()
        self.session_generation = 0

    @property
    def session_fingerprint(self) -> str | None:
        return self._session_fingerprint

    def _get_client(self) -> Any:
        if self._client is not None:
            return self._client
        if not self._api_key:
            raise ProviderConfigurationError(
                f"Gemini API key is not configured; set {self.api_key_env}.",
                provider=self.name,
                credential=self.api_key_env,
            )
        try:
            self._client = genai.Client(api_key=self._api_key)
        except Exception as exc:  # noqa: BLE001 - SDK validates eagerly.
            raise ProviderSessionError(
                f"Unable to create Gemini client: {exc}", provider=self.name
            ) from exc
        return self._client

    def ensure_session(self, system_prompt: str) -> Any:
        """Return the session for ``system_prompt``, rebuilding it on change."""
        fingerprint = prompt_fingerprint(system_prompt)
        if self._session is not None and fingerprint == self._session_fingerprint:
            return self._session

        client = self._get_client()
        try:
            session = client.aio.chats.create(
                model=self.model,
                config=types.GenerateContentConfig(system_instruction=system_prompt),
            )
        except Exception as exc:  # noqa: BLE001 - SDK can fail in many ways.
            raise ProviderSessionError(
                f"Unable to start Gemini chat session: {exc}", provider=self.name
            ) from exc

        if self._session is not None:
            LOGGER.info(
                "provider.session.rebuilt",
                extra={
                    "event": "provider.session.rebuilt",
                    "provider": self.name,
                    "previous_fingerprint": self._session_fingerprint,
                    "fingerprint": fingerprint,
                    "history_discarded": True,
                },
            )
        self._session = session
        self._session_fingerprint = fingerprint
        self._session_lock = asyncio.Lock()
        self.session_generation += 1
        return session

    def _map_exception(self, exc: Exception) -> ProviderError:
        if isinstance(exc, ProviderError):
            return exc
        if isinstance(exc, genai_errors.APIError):
            message = getattr(exc, "message", None) or str(exc)
            return ProviderTransportError(
                str(message), provider=self.name, status_code=getattr(exc, "code", None)
            )
        if isinstance(exc, httpx.HTTPError):
            return ProviderTransportError(
                f"Unable to reach Gemini: {exc}", provider=self.name
            )
        return ProviderStreamError(
            f"Failed to stream response from Gemini: {exc}", provider=self.name
        )

    async def send(self, turn_input: TurnInput) -> AsyncIterator[str]:
        """Stream the session's reply to ``turn_input`` as content deltas."""
        session = self.ensure_session(turn_input.system_prompt)
        lock = self._session_lock
        try:
            async with lock:
                stream = await session.send_message_stream(turn_input.user_text)
                async for chunk in stream:
                    text = _extract_chunk_text(chunk)
                    if text:
                        yield text
        except ProviderError:
            raise
        except Exception as exc:  # noqa: BLE001 - external API can fail in many ways.
            raise self._map_exception(exc) from exc
