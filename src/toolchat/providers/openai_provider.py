import json
from collections.abc import AsyncIterator

import openai
from loguru import logger

from toolchat.errors import ProviderError
from toolchat.providers.common import (
    Completion,
    StreamEvent,
    TextChunk,
    ToolCallAccumulator,
    close_stream,
)

# Static fallback list; any model id the account can use is accepted.
OPENAI_MODELS = ("gpt-4o-mini", "gpt-4o", "gpt-4-turbo")

# Map OpenAI finish reasons to Anthropic-style stop reasons.
_STOP_REASON_MAP = {
    "stop": "end_turn",
    "tool_calls": "tool_use",
    "length": "max_tokens",
}


def _to_openai_messages(history: list[dict]) -> list[dict]:
    """Convert internal (Anthropic-style) history to OpenAI chat format."""
    out: list[dict] = []

    for msg in history:
        role = msg["role"]
        content = msg.get("content", "")

        if isinstance(content, str):
            out.append({"role": role, "content": content})
            continue

        if role == "assistant":
            text_parts: list[str] = []
            tool_calls: list[dict] = []
            for block in content:
                if block.get("type") == "text":
                    text_parts.append(block["text"])
                elif block.get("type") == "tool_use":
                    tool_calls.append({
                        "id": block["id"],
                        "type": "function",
                        "function": {
                            "name": block["name"],
                            "arguments": json.dumps(block["input"]),
                        },
                    })

            oai_msg: dict = {"role": "assistant", "content": "".join(text_parts) if text_parts else None}
            if tool_calls:
                oai_msg["tool_calls"] = tool_calls
            out.append(oai_msg)
            continue

        # User content: tool results become separate "tool" messages.
        text_parts_user: list[str] = []
        for block in content:
            if block.get("type") == "text":
                text_parts_user.append(block["text"])
            elif block.get("type") == "tool_result":
                out.append({
                    "role": "tool",
                    "tool_call_id": block["tool_use_id"],
                    "content": str(block.get("content", "")),
                })
        if text_parts_user:
            out.append({"role": "user", "content": "".join(text_parts_user)})

    return out


def _to_openai_tools(tools: list[dict]) -> list[dict]:
    """Convert internal tool definitions to OpenAI function-calling format."""
    return [
        {
            "type": "function",
            "function": {
                "name": t["name"],
                "description": t.get("description", ""),
                "parameters": t.get("input_schema", {}),
            },
        }
        for t in tools
    ]


class OpenAIProvider:
    name = "openai"

    def __init__(self, model: str, api_key: str):
        self.model = model
        self._client = openai.AsyncOpenAI(api_key=api_key)

    async def stream(self, history: list[dict], tools: list[dict]) -> AsyncIterator[StreamEvent]:
        """Stream one chat completion as normalized events.

        Tool calls arrive as deltas addressed by index; the first delta for an
        index names the call id and function, later ones carry argument text.
        Calls are emitted once a finish reason arrives.
        """
        oai_messages = _to_openai_messages(history)
        oai_tools = _to_openai_tools(tools)
        kwargs: dict = dict(
            model=self.model,
            messages=oai_messages,
            stream=True,
            stream_options={"include_usage": True},
        )
        if oai_tools:
            kwargs["tools"] = oai_tools

        logger.debug(
            f"API request: provider=openai, model={self.model}, messages={len(oai_messages)}, tools={len(oai_tools)}"
        )

        calls = ToolCallAccumulator()
        finish_reason: str | None = None
        input_tokens = 0
        output_tokens = 0

        try:
            stream = await self._client.chat.completions.create(**kwargs)
        except openai.OpenAIError as ex:
            raise ProviderError(f"OpenAI request failed: {ex}") from ex

        try:
            async for chunk in stream:
                usage = getattr(chunk, "usage", None)
                if usage is not None:
                    input_tokens = getattr(usage, "prompt_tokens", 0) or 0
                    output_tokens = getattr(usage, "completion_tokens", 0) or 0

                choice = chunk.choices[0] if chunk.choices else None
                if choice is None:
                    continue

                delta = choice.delta
                if delta is not None:
                    if delta.content:
                        yield TextChunk(delta.content)

                    for tc_delta in delta.tool_calls or []:
                        idx = tc_delta.index
                        function = tc_delta.function
                        name = function.name if function and function.name else ""
                        if idx not in calls:
                            logger.debug(f"Tool use: {name}")
                            calls.start(idx, tc_delta.id or "", name)
                        else:
                            calls.update(idx, call_id=tc_delta.id, name=name)
                        if function and function.arguments:
                            calls.add_fragment(idx, function.arguments)

                if choice.finish_reason:
                    finish_reason = choice.finish_reason
                    for request in calls.finish_all():
                        yield request
        except openai.OpenAIError as ex:
            raise ProviderError(f"OpenAI stream failed: {ex}") from ex
        finally:
            await close_stream(stream)

        if len(calls):
            logger.warning(f"Stream ended with {len(calls)} unterminated tool call(s); flushing")
            for request in calls.finish_all():
                yield request

        stop_reason = _STOP_REASON_MAP.get(finish_reason or "stop", "end_turn")
        logger.debug(
            f"API response: stop_reason={stop_reason}, input_tokens={input_tokens}, output_tokens={output_tokens}"
        )
        yield Completion(stop_reason=stop_reason, input_tokens=input_tokens, output_tokens=output_tokens)
