from __future__ import annotations

import inspect
import json
from collections.abc import Hashable
from dataclasses import dataclass, field
from typing import Any

from loguru import logger


@dataclass(frozen=True)
class TextChunk:
    text: str


@dataclass(frozen=True)
class ToolCallRequest:
    id: str
    name: str
    input: dict[str, Any]


@dataclass(frozen=True)
class Completion:
    stop_reason: str = "end_turn"
    input_tokens: int = 0
    output_tokens: int = 0


StreamEvent = TextChunk | ToolCallRequest | Completion


@dataclass
class _PendingCall:
    call_id: str
    name: str
    initial_input: dict[str, Any] | None = None
    fragments: list[str] = field(default_factory=list)


class ToolCallAccumulator:
    """Collects streamed tool-call argument fragments until each call is closed.

    Backends address an in-flight call by a stream slot (a content block index
    or a tool-call index) and only name the call id in the first fragment, so
    entries are keyed by slot and carry their call id. Raw argument text is
    parsed once, when ``finish`` is called for the slot.
    """

    def __init__(self) -> None:
        self._pending: dict[Hashable, _PendingCall] = {}

    def __contains__(self, key: Hashable) -> bool:
        return key in self._pending

    def __len__(self) -> int:
        return len(self._pending)

    def start(
        self,
        key: Hashable,
        call_id: str,
        name: str,
        initial_input: dict[str, Any] | None = None,
    ) -> None:
        self._pending[key] = _PendingCall(call_id=call_id, name=name, initial_input=initial_input)

    def update(self, key: Hashable, *, call_id: str | None = None, name: str | None = None) -> None:
        call = self._pending[key]
        if call_id:
            call.call_id = call_id
        if name:
            call.name = name

    def add_fragment(self, key: Hashable, fragment: str) -> None:
        if fragment:
            self._pending[key].fragments.append(fragment)

    def finish(self, key: Hashable) -> ToolCallRequest:
        call = self._pending.pop(key)
        raw = "".join(call.fragments)
        if not raw and call.initial_input:
            tool_input = dict(call.initial_input)
        else:
            tool_input = parse_arguments(raw, call_id=call.call_id)
        return ToolCallRequest(id=call.call_id, name=call.name, input=tool_input)

    def finish_all(self) -> list[ToolCallRequest]:
        return [self.finish(key) for key in list(self._pending)]


def parse_arguments(raw: str, *, call_id: str) -> dict[str, Any]:
    if not raw.strip():
        return {}
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning(f"Failed to parse arguments for tool call {call_id}: {raw[:200]}")
        return {}
    if not isinstance(parsed, dict):
        logger.warning(f"Tool call {call_id} arguments are not a JSON object: {raw[:200]}")
        return {}
    return parsed


async def close_stream(stream: Any) -> None:
    close = getattr(stream, "close", None)
    if close is None:
        return
    result = close()
    if inspect.isawaitable(result):
        await result
