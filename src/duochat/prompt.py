"""Deterministic system prompt rendering from a dashboard snapshot."""

from __future__ import annotations

import hashlib
import json
from typing import Any

from .snapshot import OperatorInstructions, Snapshot

EMPTY_STATE_SENTINEL = (
    "The dashboard state is empty: there are no saved links, no tasks and no notes."
)

# Shared with the Markdown renderer; keep verbatim.
RESPONSE_FORMAT_DIRECTIVES = """## Response format
- Reply in GitHub-flavoured Markdown.
- When you mention saved links, wrap them in a bulleted list with one `- [description](url)` item per link.
- When you mention tasks, wrap them in a task list: `- [ ] text` for open tasks and `- [x] text` for done tasks.
- Put code, configuration and shell commands in fenced code blocks with a language tag.
- Never print API keys or other credentials."""


def _render_json(items: list[dict[str, Any]]) -> str:
    return json.dumps(items, indent=2, ensure_ascii=False)


def _render_state(snapshot: Snapshot) -> list[str]:
    sections: list[str] = []
    if snapshot.links:
        sections.append(
            "### Saved links\n"
            + _render_json(
                [
                    {
                        "description": link.description,
                        "url": link.url,
                        "category": link.category,
                    }
                    for link in snapshot.links
                ]
            )
        )
    if snapshot.tasks:
        sections.append(
            "### Tasks\n"
            + _render_json(
                [{"text": task.text, "status": task.status} for task in snapshot.tasks]
            )
        )
    if snapshot.note_text.strip():
        sections.append("### Notes\n" + snapshot.note_text.strip())
    if snapshot.endpoints:
        sections.append(
            "### Registered API endpoints\n"
            + _render_json(
                [{"name": ep.name, "url": ep.url} for ep in snapshot.endpoints]
            )
        )
    return sections


def build_system_prompt(
    snapshot: Snapshot, operator_instructions: OperatorInstructions | None = None
) -> str:
    """Render the system preamble for both providers.

    The output is a pure function of its inputs so that the stateful adapter
    can compare fingerprints between turns. Credentials are never rendered.
    """
    instructions = operator_instructions or snapshot.operator_instructions
    parts = [
        instructions.system_text.strip(),
        instructions.ai_supervisor_text.strip(),
        "## Current dashboard state",
    ]
    if snapshot.is_empty:
        parts.append(EMPTY_STATE_SENTINEL)
        if snapshot.endpoints:
            parts.extend(_render_state(snapshot))
    else:
        parts.extend(_render_state(snapshot))
    parts.append(RESPONSE_FORMAT_DIRECTIVES)
    return "\n\n".join(part for part in parts if part)


def prompt_fingerprint(prompt: str) -> str:
    """Return a stable digest identifying a rendered prompt."""
    return hashlib.sha256(prompt.encode("utf-8")).hexdigest()
