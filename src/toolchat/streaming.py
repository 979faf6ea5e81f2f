"""Wire frames for the push-style turn stream.

Each internal turn event maps to exactly one frame, in order, as soon as it
is produced. Frames render as server-sent events::

    event: message.delta
    data: {"type": "message.delta", "text": "Hello"}

"""

from __future__ import annotations

import json
from collections.abc import AsyncIterator
from contextlib import aclosing
from dataclasses import dataclass
from typing import Any

from loguru import logger

from toolchat.turn_events import TextDelta, ToolFinished, ToolStart, TurnDone, TurnEvent, TurnStart


@dataclass(frozen=True)
class WireFrame:
    event: str
    data: dict[str, Any]


def to_frame(event: TurnEvent) -> WireFrame:
    if isinstance(event, TurnStart):
        return WireFrame("message.start", {"type": "message.start", "messageId": event.message_id})
    if isinstance(event, TextDelta):
        return WireFrame("message.delta", {"type": "message.delta", "text": event.text})
    if isinstance(event, ToolStart):
        return WireFrame(
            "tool.start",
            {"type": "tool.start", "toolName": event.name, "toolId": event.id, "input": event.input},
        )
    if isinstance(event, ToolFinished):
        data: dict[str, Any] = {"type": "tool.result", "toolId": event.id, "result": event.result}
        if event.is_error:
            data["isError"] = True
        return WireFrame("tool.result", data)
    if isinstance(event, TurnDone):
        return WireFrame("message.done", {"type": "message.done", "messageId": event.message_id})
    raise TypeError(f"Unknown turn event: {event!r}")


def format_sse(frame: WireFrame) -> str:
    return f"event: {frame.event}\ndata: {json.dumps(frame.data, ensure_ascii=False)}\n\n"


def error_frame(message_id: str, error: str) -> WireFrame:
    return WireFrame("message.done", {"type": "message.done", "messageId": message_id, "error": error})


async def stream_turn(orchestrator: Any, session_id: str, user_text: str) -> AsyncIterator[WireFrame]:
    """Yield one frame per turn event; a failed turn still ends with ``message.done``.

    The terminal frame after a failure carries the last assistant message id
    seen (empty if none) and a plain-text ``error``.
    """
    last_message_id = ""
    try:
        async with aclosing(orchestrator.process_turn(session_id, user_text)) as events:
            async for event in events:
                if isinstance(event, TurnStart):
                    last_message_id = event.message_id
                yield to_frame(event)
    except Exception as ex:
        logger.opt(exception=ex).error(f"Turn failed for session {session_id}: {ex}")
        yield error_frame(last_message_id, str(ex) or type(ex).__name__)
