"""Stateless adapter for OpenAI-compatible ``/chat/completions`` streaming."""

from __future__ import annotations

from collections.abc import AsyncIterator, Callable
import json
import logging
from typing import Any

import httpx

from ..exceptions import (
    ProviderConfigurationError,
    ProviderError,
    ProviderTransportError,
)
from ..sse import SSEFrameParser
from .base import TurnInput

LOGGER = logging.getLogger(__name__)

DEFAULT_URL = "https://api.openai.com/v1/chat/completions"


def _error_message(response: httpx.Response) -> str:
    """Best human-readable message from a failed response body."""
    fallback = f"Request failed with status {response.status_code}"
    try:
        data = json.loads(response.text)
    except (json.JSONDecodeError, UnicodeDecodeError):
        return fallback
    if not isinstance(data, dict):
        return fallback
    error = data.get("error")
    if isinstance(error, dict):
        message = error.get("message")
        if isinstance(message, str) and message.strip():
            return message.strip()
    elif isinstance(error, str) and error.strip():
        return error.strip()
    message = data.get("message")
    if isinstance(message, str) and message.strip():
        return message.strip()
    return fallback


class OpenAICompatibleAdapter:
    """Resend the full context on every call and parse the SSE reply."""

    def __init__(
        self,
        model: str,
        url: str = DEFAULT_URL,
        timeout: float = 120,
        client: httpx.AsyncClient | None = None,
        name: str = "openai",
        parser_factory: Callable[[str], SSEFrameParser] = SSEFrameParser,
    ) -> None:
        self.name = name
        self.model = model
        self.url = url
        self.timeout = timeout
        self._client = client
        self._parser_factory = parser_factory

    def build_request_body(self, turn_input: TurnInput) -> dict[str, Any]:
        """Return the JSON body for one streamed completion."""
        return {
            "model": self.model,
            "messages": [
                {"role": "system", "content": turn_input.system_prompt},
                {"role": "user", "content": turn_input.user_text},
            ],
            "stream": True,
        }

    def _map_exception(self, exc: Exception) -> ProviderError:
        if isinstance(exc, ProviderError):
            return exc
        if isinstance(exc, httpx.TimeoutException):
            return ProviderTransportError(
                f"Timed out waiting for {self.url}.", provider=self.name
            )
        if isinstance(exc, httpx.HTTPError):
            return ProviderTransportError(
                f"Unable to reach {self.url}: {exc}", provider=self.name
            )
        return ProviderTransportError(
            f"Failed to stream response from {self.url}: {exc}", provider=self.name
        )

    async def send(self, turn_input: TurnInput) -> AsyncIterator[str]:
        """Stream the reply to ``turn_input`` as content deltas."""
        api_key = turn_input.credentials.api_key
        if not api_key:
            raise ProviderConfigurationError(
                "OpenAI API key (apiKey) is not configured.",
                provider=self.name,
                credential="apiKey",
            )

        headers = {
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
            "Accept": "text/event-stream",
        }
        body = self.build_request_body(turn_input)
        client = self._client or httpx.AsyncClient(timeout=self.timeout)
        try:
            async with client.stream(
                "POST", self.url, json=body, headers=headers
            ) as response:
                if not response.is_success:
                    await response.aread()
                    message = _error_message(response)
                    LOGGER.warning(
                        "provider.request.rejected",
                        extra={
                            "event": "provider.request.rejected",
                            "provider": self.name,
                            "turn_id": turn_input.turn_id,
                            "status_code": response.status_code,
                        },
                    )
                    raise ProviderTransportError(
                        message,
                        provider=self.name,
                        status_code=response.status_code,
                    )
                parser = self._parser_factory(self.name)
                async for delta in parser.aiter_deltas(response.aiter_lines()):
                    yield delta
                if parser.skipped_frames:
                    LOGGER.info(
                        "provider.stream.skipped_frames",
                        extra={
                            "event": "provider.stream.skipped_frames",
                            "provider": self.name,
                            "turn_id": turn_input.turn_id,
                            "count": parser.skipped_frames,
                        },
                    )
        except ProviderError:
            raise
        except Exception as exc:  # noqa: BLE001 - transport can fail in many ways.
            raise self._map_exception(exc) from exc
        finally:
            if self._client is None:
                await client.aclose()
