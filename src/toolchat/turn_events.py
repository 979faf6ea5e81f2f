from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class TurnStart:
    message_id: str


@dataclass(frozen=True)
class TextDelta:
    text: str


@dataclass(frozen=True)
class ToolStart:
    id: str
    name: str
    input: dict[str, Any]


@dataclass(frozen=True)
class ToolFinished:
    id: str
    result: str
    is_error: bool = False


@dataclass(frozen=True)
class TurnDone:
    message_id: str


TurnEvent = TurnStart | TextDelta | ToolStart | ToolFinished | TurnDone
