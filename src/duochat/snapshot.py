"""Read-only access to the dashboard state used to build system prompts."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable
import logging
from pathlib import Path
from typing import Any, Literal, Protocol

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .exceptions import SnapshotError

LOGGER = logging.getLogger(__name__)

DEFAULT_SYSTEM_INSTRUCTION = (
    "As the central orchestrator, prioritize efficient resource allocation and task "
    "sequencing. Ensure seamless handoffs between AI agents (LYRA, KARA) and monitor "
    "overall progress. If a task stalls, initiate automated retry mechanisms or "
    "escalate to human oversight. Maintain a comprehensive log of all operations and "
    "decisions for post-mortem analysis. Focus on minimizing latency and maximizing "
    "throughput across the entire deployment pipeline. Adapt dynamically to changing "
    "project requirements and resource availability."
)

DEFAULT_AI_SUPERVISOR_INSTRUCTION = (
    "As the AI Supervisor, ensure all agent outputs (code, configurations, responses) "
    "adhere to the highest quality standards, security best practices, and user "
    "requirements. Verify consistency, correctness, and completeness. Provide "
    "constructive feedback to individual agents for continuous improvement. Intervene "
    "if agent behavior deviates from expected norms or if outputs are suboptimal. "
    "Maintain a clear audit trail of agent actions and decisions. Optimize for "
    "interpretability and explainability of agent-generated artifacts."
)


class _Record(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")


class Link(_Record):
    """A saved dashboard link."""

    description: str
    url: str
    category: Literal["informative", "development"] = "informative"
    is_home: bool = Field(default=False, alias="isHome")
    visit_count: int = Field(default=0, ge=0, alias="visitCount")
    rating: int = Field(default=0, ge=0, le=5)


class Task(_Record):
    """A kanban task."""

    text: str
    status: Literal["todo", "in-progress", "done"] = "todo"


class Endpoint(_Record):
    """A registered inference endpoint."""

    name: str
    url: str


class OperatorInstructions(_Record):
    """Operator-supplied orchestrator and supervisor instructions.

    Blank values fall back to the dashboard defaults.
    """

    system_text: str = Field(default=DEFAULT_SYSTEM_INSTRUCTION, alias="systemText")
    ai_supervisor_text: str = Field(
        default=DEFAULT_AI_SUPERVISOR_INSTRUCTION, alias="aiSupervisorText"
    )

    @field_validator("system_text", mode="before")
    @classmethod
    def _default_system_text(cls, value: Any) -> str:
        if value is None or (isinstance(value, str) and not value.strip()):
            return DEFAULT_SYSTEM_INSTRUCTION
        return value

    @field_validator("ai_supervisor_text", mode="before")
    @classmethod
    def _default_supervisor_text(cls, value: Any) -> str:
        if value is None or (isinstance(value, str) and not value.strip()):
            return DEFAULT_AI_SUPERVISOR_INSTRUCTION
        return value


class Credentials(_Record):
    """Credential record for the stateless provider."""

    api_key: str = Field(default="", alias="apiKey")

    @field_validator("api_key", mode="before")
    @classmethod
    def _normalize_api_key(cls, value: Any) -> str:
        if value is None:
            return ""
        if not isinstance(value, str):
            raise ValueError("apiKey must be a string.")
        return value.strip()


class Snapshot(_Record):
    """Immutable point-in-time read of the dashboard state."""

    links: tuple[Link, ...] = ()
    tasks: tuple[Task, ...] = ()
    note_text: str = Field(default="", alias="noteText")
    endpoints: tuple[Endpoint, ...] = ()
    operator_instructions: OperatorInstructions = Field(
        default_factory=OperatorInstructions, alias="operatorInstructions"
    )
    credentials: Credentials = Field(default_factory=Credentials)

    @field_validator("note_text", mode="before")
    @classmethod
    def _normalize_note(cls, value: Any) -> str:
        return "" if value is None else value

    @property
    def is_empty(self) -> bool:
        """True when there are no links, no tasks and no note text."""
        return not self.links and not self.tasks and not self.note_text.strip()


class ContextSnapshotProvider(Protocol):
    """Anything that can hand out a fresh snapshot, synchronously or not."""

    def read_snapshot(self) -> Snapshot | Awaitable[Snapshot]: ...


class StaticSnapshotProvider:
    """In-memory provider; ``replace`` swaps the state seen by the next read."""

    def __init__(self, snapshot: Snapshot | None = None) -> None:
        self._snapshot = snapshot or Snapshot()

    def read_snapshot(self) -> Snapshot:
        return self._snapshot

    def replace(self, snapshot: Snapshot) -> None:
        self._snapshot = snapshot


class JsonSnapshotProvider:
    """Re-read a JSON export of the dashboard on every call.

    A missing file is treated as an empty dashboard. Reads run in a worker
    thread.
    """

    def __init__(self, path: Path) -> None:
        self.path = path.expanduser()

    async def read_snapshot(self) -> Snapshot:
        return await asyncio.to_thread(self.load)

    def load(self) -> Snapshot:
        """Read and validate the export synchronously."""
        if not self.path.exists():
            LOGGER.info(
                "snapshot.missing",
                extra={"event": "snapshot.missing", "path": str(self.path)},
            )
            return Snapshot()
        try:
            raw = self.path.read_text(encoding="utf-8")
        except OSError as exc:
            raise SnapshotError(f"Unable to read snapshot {self.path}: {exc}") from exc
        try:
            return Snapshot.model_validate_json(raw)
        except ValidationError as exc:
            raise SnapshotError(f"Invalid snapshot {self.path}: {exc}") from exc
