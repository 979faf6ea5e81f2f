from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

PART_TYPES = ("text", "tool_use", "tool_result")


def utc_now() -> str:
    return datetime.now(UTC).isoformat(timespec="seconds")


@dataclass(frozen=True)
class SessionRecord:
    id: str
    title: str
    working_directory: str
    provider: str
    model: str
    created_at: str
    updated_at: str


@dataclass(frozen=True)
class PartRecord:
    id: str
    message_id: str
    type: str
    payload: dict[str, Any]
    order: int


@dataclass(frozen=True)
class MessageRecord:
    id: str
    session_id: str
    seq: int
    role: str
    created_at: str
    parts: list[PartRecord] = field(default_factory=list)


def part_to_block(part_type: str, payload: dict[str, Any]) -> dict[str, Any]:
    """Rebuild the provider-facing content block for a stored part."""
    if part_type == "text":
        return {"type": "text", "text": payload["text"]}
    if part_type == "tool_use":
        return {
            "type": "tool_use",
            "id": payload["id"],
            "name": payload["name"],
            "input": payload["input"],
        }
    if part_type == "tool_result":
        return {
            "type": "tool_result",
            "tool_use_id": payload["tool_use_id"],
            "content": payload["content"],
            "is_error": bool(payload.get("is_error", False)),
        }
    raise ValueError(f"Unknown message part type: {part_type!r}")
