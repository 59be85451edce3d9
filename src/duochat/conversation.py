"""Turn records and the append-only conversation log."""

from __future__ import annotations

from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass, field, replace
from enum import Enum
import logging
from types import MappingProxyType
from typing import Mapping
import uuid

LOGGER = logging.getLogger(__name__)


class ReplyPhase(str, Enum):
    """Lifecycle of one provider's reply within a turn."""

    PENDING = "PENDING"
    STREAMING = "STREAMING"
    DONE = "DONE"
    FAILED = "FAILED"


@dataclass(frozen=True)
class Reply:
    """Accumulated text and error state for one provider."""

    text: str = ""
    error: str | None = None
    phase: ReplyPhase = ReplyPhase.PENDING

    @property
    def settled(self) -> bool:
        return self.phase in (ReplyPhase.DONE, ReplyPhase.FAILED)


def new_turn_id() -> str:
    """Return a random id that stays unique under rapid submission."""
    return uuid.uuid4().hex


@dataclass(frozen=True)
class Turn:
    """One user utterance plus every provider's reply."""

    id: str
    user_text: str
    replies: Mapping[str, Reply] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.user_text.strip():
            raise ValueError("Turn.user_text must not be empty.")
        object.__setattr__(self, "replies", MappingProxyType(dict(self.replies)))

    @classmethod
    def create(cls, user_text: str, providers: Iterable[str]) -> Turn:
        return cls(
            id=new_turn_id(),
            user_text=user_text,
            replies={name: Reply() for name in providers},
        )

    def text(self, provider: str) -> str:
        return self.replies[provider].text

    def error(self, provider: str) -> str | None:
        return self.replies[provider].error

    @property
    def settled(self) -> bool:
        return all(reply.settled for reply in self.replies.values())

    def _with_reply(self, provider: str, reply: Reply) -> Turn:
        replies = dict(self.replies)
        replies[provider] = reply
        return replace(self, replies=replies)

    def with_phase(self, provider: str, phase: ReplyPhase) -> Turn:
        return self._with_reply(provider, replace(self.replies[provider], phase=phase))

    def with_delta(self, provider: str, delta: str) -> Turn:
        current = self.replies[provider]
        return self._with_reply(
            provider,
            replace(current, text=current.text + delta, phase=ReplyPhase.STREAMING),
        )

    def with_error(self, provider: str, message: str) -> Turn:
        return self._with_reply(
            provider,
            replace(self.replies[provider], error=message, phase=ReplyPhase.FAILED),
        )


TurnListener = Callable[[Turn], None]


class ConversationLog:
    """Ordered, append-only sequence of turns addressed by id.

    Updates replace the stored turn under its id, so the turn's position never
    changes and concurrent completions cannot touch an unrelated turn.
    """

    def __init__(self) -> None:
        self._turns: dict[str, Turn] = {}
        self._listeners: list[TurnListener] = []

    def __len__(self) -> int:
        return len(self._turns)

    def __iter__(self) -> Iterator[Turn]:
        return iter(list(self._turns.values()))

    def __contains__(self, turn_id: object) -> bool:
        return turn_id in self._turns

    @property
    def turns(self) -> list[Turn]:
        """Return the turns in submission order."""
        return list(self._turns.values())

    def get(self, turn_id: str) -> Turn:
        try:
            return self._turns[turn_id]
        except KeyError:
            raise KeyError(f"Unknown turn id {turn_id!r}") from None

    def append(self, turn: Turn) -> Turn:
        if turn.id in self._turns:
            raise ValueError(f"Duplicate turn id {turn.id!r}")
        self._turns[turn.id] = turn
        self._notify(turn)
        return turn

    def update(self, turn_id: str, change: Callable[[Turn], Turn]) -> Turn:
        """Read the turn by id, apply ``change`` and store the result."""
        current = self.get(turn_id)
        updated = change(current)
        if updated.id != turn_id:
            raise ValueError("A turn update must not change the turn id.")
        self._turns[turn_id] = updated
        self._notify(updated)
        return updated

    def subscribe(self, listener: TurnListener) -> None:
        self._listeners.append(listener)

    def unsubscribe(self, listener: TurnListener) -> None:
        try:
            self._listeners.remove(listener)
        except ValueError:
            pass

    def _notify(self, turn: Turn) -> None:
        for listener in list(self._listeners):
            try:
                listener(turn)
            except Exception as exc:  # noqa: BLE001 - a listener must not break streaming.
                LOGGER.error(
                    "conversation.listener.failed",
                    extra={
                        "event": "conversation.listener.failed",
                        "turn_id": turn.id,
                        "error": str(exc),
                    },
                )
