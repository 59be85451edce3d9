"""Common streaming-send contract shared by every provider adapter."""

from __future__ import annotations

from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable

from ..snapshot import Credentials


@dataclass(frozen=True)
class TurnInput:
    """Everything an adapter needs to answer one turn."""

    turn_id: str
    user_text: str
    system_prompt: str
    credentials: Credentials = field(default_factory=Credentials)


@runtime_checkable
class ProviderAdapter(Protocol):
    """Stream the reply to one turn as content deltas, in arrival order.

    Normal exhaustion of the iterator is success; any ``ProviderError``
    raised from it is a terminal failure for this provider only.
    """

    name: str

    def send(self, turn_input: TurnInput) -> AsyncIterator[str]: ...
