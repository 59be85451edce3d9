"""Wire configured adapters, snapshot source and coordinator together."""

from __future__ import annotations

from pathlib import Path
from typing import Any

from .coordinator import TurnCoordinator
from .providers import GeminiSessionAdapter, OpenAICompatibleAdapter
from .snapshot import ContextSnapshotProvider, JsonSnapshotProvider, StaticSnapshotProvider


def build_snapshot_provider(config: dict[str, Any]) -> ContextSnapshotProvider:
    """Read the dashboard export when configured, else start from an empty dashboard."""
    snapshot_path = str(config["context"]["snapshot_path"]).strip()
    if snapshot_path:
        return JsonSnapshotProvider(Path(snapshot_path))
    return StaticSnapshotProvider()


def build_coordinator(
    config: dict[str, Any],
    snapshot_provider: ContextSnapshotProvider | None = None,
) -> TurnCoordinator:
    """Return a coordinator driving the stateful and stateless providers."""
    gemini = config["gemini"]
    openai = config["openai"]
    adapters = [
        GeminiSessionAdapter(model=gemini["model"], api_key_env=gemini["api_key_env"]),
        OpenAICompatibleAdapter(
            model=openai["model"], url=openai["url"], timeout=openai["timeout"]
        ),
    ]
    return TurnCoordinator(
        adapters=adapters,
        snapshot_provider=snapshot_provider or build_snapshot_provider(config),
        allow_concurrent_turns=bool(config["coordinator"]["allow_concurrent_turns"]),
    )
