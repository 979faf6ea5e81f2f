from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Callable
from contextlib import aclosing, asynccontextmanager
from dataclasses import dataclass, field
from typing import Any

from loguru import logger

from toolchat.memory.models import SessionRecord, part_to_block
from toolchat.memory.session_manager import SessionManager
from toolchat.provider import LLMProvider
from toolchat.providers.common import Completion, TextChunk, ToolCallRequest
from toolchat.tool import ToolContext
from toolchat.tool_registry import ToolRegistry
from toolchat.turn_events import TextDelta, ToolFinished, ToolStart, TurnDone, TurnEvent, TurnStart


@dataclass
class _Lease:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    holders: int = 0


class SessionLocks:
    """One asyncio lock per session id, dropped once nobody holds or waits on it."""

    def __init__(self) -> None:
        self._leases: dict[str, _Lease] = {}

    def is_locked(self, session_id: str) -> bool:
        lease = self._leases.get(session_id)
        return lease is not None and lease.lock.locked()

    @asynccontextmanager
    async def hold(self, session_id: str) -> AsyncIterator[None]:
        lease = self._leases.setdefault(session_id, _Lease())
        lease.holders += 1
        try:
            async with lease.lock:
                yield
        finally:
            lease.holders -= 1
            if lease.holders == 0:
                self._leases.pop(session_id, None)


class _AssistantMessage:
    """A persisted assistant message whose parts are appended at consecutive orders."""

    def __init__(self, sessions: SessionManager, session_id: str):
        self._sessions = sessions
        self.message_id = sessions.create_message(session_id, "assistant")
        self.blocks: list[dict] = []
        self._next_order = 0
        self._text: list[str] = []

    def add_text(self, text: str) -> None:
        self._text.append(text)

    def flush_text(self) -> None:
        text = "".join(self._text)
        self._text.clear()
        if text:
            self.append("text", {"text": text})

    def append(self, part_type: str, payload: dict[str, Any]) -> None:
        self._sessions.append_part(self.message_id, part_type, payload, self._next_order)
        self._next_order += 1
        self.blocks.append(part_to_block(part_type, payload))


class Orchestrator:
    def __init__(
        self,
        *,
        sessions: SessionManager,
        tools: ToolRegistry,
        provider_for: Callable[[SessionRecord], LLMProvider],
        max_tool_result_chars: int = 40_000,
        max_tool_rounds: int = 50,
        locks: SessionLocks | None = None,
    ) -> None:
        self._sessions = sessions
        self._tools = tools
        self._provider_for = provider_for
        self._max_tool_result_chars = max_tool_result_chars
        self._max_tool_rounds = max_tool_rounds
        self._locks = locks

    async def process_turn(self, session_id: str, user_text: str) -> AsyncIterator[TurnEvent]:
        """Run one user turn, yielding protocol events as they happen.

        Tool failures come back as error-flagged results and never end the
        turn. Provider and persistence errors propagate to the caller.
        """
        with logger.contextualize(session_id=session_id):
            if self._locks is None:
                async with aclosing(self._run_turn(session_id, user_text)) as events:
                    async for event in events:
                        yield event
                return

            if self._locks.is_locked(session_id):
                logger.info(f"Session {session_id} has a turn in progress; waiting")
            async with self._locks.hold(session_id):
                async with aclosing(self._run_turn(session_id, user_text)) as events:
                    async for event in events:
                        yield event

    async def _run_turn(self, session_id: str, user_text: str) -> AsyncIterator[TurnEvent]:
        session = self._sessions.require_session(session_id)
        provider = self._provider_for(session)
        context = ToolContext(working_directory=session.working_directory)
        tool_definitions = self._tools.definitions()
        logger.info(f"Turn started: session={session_id}, provider={provider.name}, model={provider.model}")

        history = self._sessions.load_history(session_id)
        user_message_id = self._sessions.create_message(session_id, "user")
        self._sessions.append_part(user_message_id, "text", {"text": user_text}, 0)
        history.append({"role": "user", "content": [{"type": "text", "text": user_text}]})

        assistant = _AssistantMessage(self._sessions, session_id)
        yield TurnStart(assistant.message_id)

        tool_rounds = 0
        while True:
            request: ToolCallRequest | None = None
            async with aclosing(provider.stream(history, tool_definitions)) as stream:
                async for event in stream:
                    if isinstance(event, TextChunk):
                        if request is not None:
                            logger.debug(f"Dropping text streamed after tool call {request.id}")
                        elif event.text:
                            assistant.add_text(event.text)
                            yield TextDelta(event.text)
                    elif isinstance(event, ToolCallRequest):
                        # One tool per model call; the model is re-entered with the result.
                        if request is None:
                            request = event
                        else:
                            logger.debug(
                                f"Dropping tool call {event.id} ({event.name}); only {request.id} "
                                f"({request.name}) runs before the model is re-entered"
                            )
                    elif isinstance(event, Completion):
                        logger.debug(
                            f"Model completed: stop_reason={event.stop_reason}, "
                            f"input_tokens={event.input_tokens}, output_tokens={event.output_tokens}"
                        )
                        break

            if request is not None and tool_rounds >= self._max_tool_rounds:
                logger.warning(
                    f"Tool round limit ({self._max_tool_rounds}) reached in session {session_id}; "
                    f"ignoring request for {request.name}"
                )
                request = None

            if request is None:
                assistant.flush_text()
                break

            assistant.flush_text()
            assistant.append("tool_use", {"id": request.id, "name": request.name, "input": request.input})
            yield ToolStart(request.id, request.name, request.input)

            result = await self._tools.run(request.name, request.input, context)
            content = self._truncate_tool_result(result.content, request.name)
            result_payload = {"tool_use_id": request.id, "content": content, "is_error": result.is_error}
            result_message_id = self._sessions.create_message(session_id, "user")
            self._sessions.append_part(result_message_id, "tool_result", result_payload, 0)
            yield ToolFinished(request.id, content, result.is_error)

            history.append({"role": "assistant", "content": list(assistant.blocks)})
            history.append({"role": "user", "content": [part_to_block("tool_result", result_payload)]})
            tool_rounds += 1

            assistant = _AssistantMessage(self._sessions, session_id)
            yield TurnStart(assistant.message_id)

        self._sessions.touch_session(session_id)
        logger.info(f"Turn finished: session={session_id}, tool_rounds={tool_rounds}")
        yield TurnDone(assistant.message_id)

    def _truncate_tool_result(self, result: str, tool_name: str) -> str:
        if self._max_tool_result_chars <= 0 or len(result) <= self._max_tool_result_chars:
            return result

        original_length = len(result)
        truncated = result[: self._max_tool_result_chars]
        message = (
            f"\n\n[OUTPUT TRUNCATED: Showing {self._max_tool_result_chars:,} "
            f"of {original_length:,} characters from {tool_name}]"
        )
        logger.warning(
            f"{tool_name} output truncated from {original_length:,} "
            f"to {self._max_tool_result_chars:,} chars"
        )
        return truncated + message
