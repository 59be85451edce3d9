"""Top-level package for duochat."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .app import DuoChatApp
    from .config import ensure_config_dir, load_config
    from .conversation import ConversationLog, Reply, ReplyPhase, Turn
    from .coordinator import TurnCoordinator
    from .exceptions import (
        ConfigValidationError,
        CoordinatorBusyError,
        DuoChatError,
        EmptyMessageError,
        ProviderError,
        SnapshotError,
    )
    from .prompt import build_system_prompt
    from .snapshot import Snapshot
    from .sse import SSEFrameParser

__all__ = [
    "ConfigValidationError",
    "ConversationLog",
    "CoordinatorBusyError",
    "DuoChatApp",
    "DuoChatError",
    "EmptyMessageError",
    "ProviderError",
    "Reply",
    "ReplyPhase",
    "SSEFrameParser",
    "Snapshot",
    "SnapshotError",
    "Turn",
    "TurnCoordinator",
    "build_system_prompt",
    "ensure_config_dir",
    "load_config",
]

_EXCEPTIONS = {
    "ConfigValidationError",
    "CoordinatorBusyError",
    "DuoChatError",
    "EmptyMessageError",
    "ProviderError",
    "SnapshotError",
}


def __getattr__(name: str) -> Any:
    """Lazily import symbols to keep the UI dependency optional at import time."""
    if name in {"load_config", "ensure_config_dir"}:
        from . import config

        return getattr(config, name)
    if name in _EXCEPTIONS:
        from . import exceptions

        return getattr(exceptions, name)
    if name in {"ConversationLog", "Reply", "ReplyPhase", "Turn"}:
        from . import conversation

        return getattr(conversation, name)
    if name == "TurnCoordinator":
        from .coordinator import TurnCoordinator

        return TurnCoordinator
    if name == "build_system_prompt":
        from .prompt import build_system_prompt

        return build_system_prompt
    if name == "Snapshot":
        from .snapshot import Snapshot

        return Snapshot
    if name == "SSEFrameParser":
        from .sse import SSEFrameParser

        return SSEFrameParser
    if name == "DuoChatApp":
        from .app import DuoChatApp

        return DuoChatApp
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
