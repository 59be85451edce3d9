"""Fan a user utterance out to every provider and fan the deltas back in."""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Sequence
import inspect
import logging
from typing import Any

from .conversation import ConversationLog, ReplyPhase, Turn
from .exceptions import (
    CoordinatorBusyError,
    EmptyMessageError,
    ProviderError,
    SnapshotError,
)
from .prompt import build_system_prompt
from .providers.base import ProviderAdapter, TurnInput
from .snapshot import ContextSnapshotProvider, Snapshot

LOGGER = logging.getLogger(__name__)

BusyListener = Callable[[bool], None]


class TurnCoordinator:
    """Create turns, stream every adapter concurrently and track busy state.

    Every adapter runs to completion or failure on its own; one adapter's
    failure is recorded on that adapter's reply and nothing else.
    """

    def __init__(
        self,
        adapters: Sequence[ProviderAdapter],
        snapshot_provider: ContextSnapshotProvider,
        log: ConversationLog | None = None,
        prompt_builder: Callable[[Snapshot], str] = build_system_prompt,
        allow_concurrent_turns: bool = False,
    ) -> None:
        names = [adapter.name for adapter in adapters]
        if not names:
            raise ValueError("At least one provider adapter is required.")
        if len(set(names)) != len(names):
            raise ValueError(f"Provider adapter names must be unique: {names}")
        self.adapters: tuple[ProviderAdapter, ...] = tuple(adapters)
        self.snapshot_provider = snapshot_provider
        self.log = log if log is not None else ConversationLog()
        self.prompt_builder = prompt_builder
        self.allow_concurrent_turns = allow_concurrent_turns
        self._in_flight = 0
        self._busy_listeners: list[BusyListener] = []

    @property
    def provider_names(self) -> list[str]:
        return [adapter.name for adapter in self.adapters]

    @property
    def in_flight(self) -> int:
        return self._in_flight

    @property
    def busy(self) -> bool:
        """True while any turn still has an unsettled provider."""
        return self._in_flight > 0

    def add_busy_listener(self, listener: BusyListener) -> None:
        self._busy_listeners.append(listener)

    def remove_busy_listener(self, listener: BusyListener) -> None:
        if listener in self._busy_listeners:
            self._busy_listeners.remove(listener)

    def _set_in_flight(self, value: int) -> None:
        was_busy = self.busy
        self._in_flight = value
        if was_busy == self.busy:
            return
        LOGGER.info(
            "coordinator.busy.changed",
            extra={"event": "coordinator.busy.changed", "busy": self.busy},
        )
        for listener in list(self._busy_listeners):
            try:
                listener(self.busy)
            except Exception as exc:  # noqa: BLE001 - UI callbacks must not break turns.
                LOGGER.error(
                    "coordinator.busy_listener.failed",
                    extra={"event": "coordinator.busy_listener.failed", "error": str(exc)},
                )

    def _open_turn(self, user_text: str) -> Turn:
        normalized = user_text.strip()
        if not normalized:
            raise EmptyMessageError("Cannot send an empty message.")
        if self.busy and not self.allow_concurrent_turns:
            raise CoordinatorBusyError("Busy. Wait for the current turn to finish.")
        turn = self.log.append(Turn.create(normalized, self.provider_names))
        self._set_in_flight(self._in_flight + 1)
        LOGGER.info(
            "coordinator.turn.created",
            extra={
                "event": "coordinator.turn.created",
                "turn_id": turn.id,
                "providers": self.provider_names,
            },
        )
        return turn

    def start(self, user_text: str) -> asyncio.Task[Turn]:
        """Append a turn, mark busy and schedule its streaming.

        Must be called from a running event loop. The returned task resolves
        to the settled turn.
        """
        turn = self._open_turn(user_text)
        try:
            return asyncio.create_task(self._run_turn(turn))
        except BaseException:
            self._set_in_flight(self._in_flight - 1)
            raise

    async def submit(self, user_text: str) -> Turn:
        """Append a turn and wait until every provider has settled."""
        return await self.start(user_text)

    async def _read_snapshot(self) -> Snapshot:
        try:
            result: Any = self.snapshot_provider.read_snapshot()
            if inspect.isawaitable(result):
                result = await result
        except SnapshotError:
            raise
        except Exception as exc:  # noqa: BLE001 - collaborator is external.
            raise SnapshotError(f"Unable to read dashboard state: {exc}") from exc
        if not isinstance(result, Snapshot):
            raise SnapshotError(
                f"Dashboard state provider returned {type(result).__name__}, not a Snapshot."
            )
        return result

    async def _prepare_prompt(self) -> tuple[Snapshot, str]:
        snapshot = await self._read_snapshot()
        try:
            system_prompt = self.prompt_builder(snapshot)
        except Exception as exc:  # noqa: BLE001 - builder is injectable.
            raise SnapshotError(f"Unable to build system prompt: {exc}") from exc
        return snapshot, system_prompt

    async def _run_turn(self, turn: Turn) -> Turn:
        try:
            try:
                snapshot, system_prompt = await self._prepare_prompt()
            except SnapshotError as exc:
                LOGGER.warning(
                    "coordinator.snapshot.failed",
                    extra={
                        "event": "coordinator.snapshot.failed",
                        "turn_id": turn.id,
                        "error": str(exc),
                    },
                )
                for name in self.provider_names:
                    self.log.update(turn.id, lambda t, n=name: t.with_error(n, str(exc)))
                return self.log.get(turn.id)

            turn_input = TurnInput(
                turn_id=turn.id,
                user_text=turn.user_text,
                system_prompt=system_prompt,
                credentials=snapshot.credentials,
            )
            await asyncio.gather(
                *(self._drive(adapter, turn_input) for adapter in self.adapters)
            )
            return self.log.get(turn.id)
        finally:
            self._set_in_flight(self._in_flight - 1)
            settled = self.log.get(turn.id)
            LOGGER.info(
                "coordinator.turn.settled",
                extra={
                    "event": "coordinator.turn.settled",
                    "turn_id": turn.id,
                    "phases": {
                        name: reply.phase.value for name, reply in settled.replies.items()
                    },
                },
            )

    async def _drive(self, adapter: ProviderAdapter, turn_input: TurnInput) -> None:
        name = adapter.name
        turn_id = turn_input.turn_id
        self.log.update(turn_id, lambda t: t.with_phase(name, ReplyPhase.STREAMING))
        try:
            async for delta in adapter.send(turn_input):
                self.log.update(turn_id, lambda t, d=delta: t.with_delta(name, d))
        except ProviderError as exc:
            self._record_failure(turn_id, name, exc)
            return
        except Exception as exc:  # noqa: BLE001 - isolate siblings from adapter bugs.
            LOGGER.exception(
                "coordinator.provider.crashed",
                extra={
                    "event": "coordinator.provider.crashed",
                    "provider": name,
                    "turn_id": turn_id,
                },
            )
            self._record_failure(turn_id, name, exc)
            return
        self.log.update(turn_id, lambda t: t.with_phase(name, ReplyPhase.DONE))

    def _record_failure(self, turn_id: str, name: str, exc: Exception) -> None:
        message = str(exc) or exc.__class__.__name__
        LOGGER.warning(
            "coordinator.provider.failed",
            extra={
                "event": "coordinator.provider.failed",
                "provider": name,
                "turn_id": turn_id,
                "error_type": exc.__class__.__name__,
            },
        )
        self.log.update(turn_id, lambda t: t.with_error(name, message))
