from collections.abc import AsyncIterator

import anthropic
from loguru import logger

from toolchat.errors import ProviderError
from toolchat.providers.common import (
    Completion,
    StreamEvent,
    TextChunk,
    ToolCallAccumulator,
    close_stream,
)

ANTHROPIC_MODELS = (
    "claude-3-haiku-20240307",
    "claude-3-5-haiku-latest",
    "claude-opus-4-0",
    "claude-sonnet-4-0",
    "claude-opus-4-1",
    "claude-haiku-4-5",
    "claude-opus-4-5",
    "claude-sonnet-4-5",
)

# Max output tokens per model.
MODEL_MAX_TOKENS = {
    "claude-3-haiku-20240307": 4096,
    "claude-3-5-haiku-latest": 8192,
    "claude-opus-4-0": 32768,
    "claude-sonnet-4-0": 64000,
    "claude-opus-4-1": 32768,
    "claude-haiku-4-5": 64000,
    "claude-opus-4-5": 64000,
    "claude-sonnet-4-5": 64000,
}

_DEFAULT_MAX_TOKENS = 8192


def _to_anthropic_messages(history: list[dict]) -> list[dict]:
    """Internal blocks already use the Messages API shape; drop false error flags."""
    out: list[dict] = []
    for msg in history:
        blocks: list[dict] = []
        for block in msg["content"]:
            if block.get("type") == "tool_result" and not block.get("is_error"):
                block = {k: v for k, v in block.items() if k != "is_error"}
            blocks.append(block)
        out.append({"role": msg["role"], "content": blocks})
    return out


class AnthropicProvider:
    name = "anthropic"

    def __init__(self, model: str, api_key: str):
        if model not in ANTHROPIC_MODELS:
            raise ValueError(f"Invalid Anthropic model: {model}. Allowed models: {', '.join(ANTHROPIC_MODELS)}")
        self.model = model
        self._max_tokens = MODEL_MAX_TOKENS.get(model, _DEFAULT_MAX_TOKENS)
        self._client = anthropic.AsyncAnthropic(api_key=api_key)

    async def stream(self, history: list[dict], tools: list[dict]) -> AsyncIterator[StreamEvent]:
        """Stream one model response as normalized events.

        Tool-use blocks arrive as ``content_block_start`` (id and name), any
        number of ``input_json_delta`` fragments, then ``content_block_stop``;
        the call is emitted only at the stop.
        """
        kwargs: dict = dict(
            model=self.model,
            max_tokens=self._max_tokens,
            messages=_to_anthropic_messages(history),
            stream=True,
        )
        if tools:
            kwargs["tools"] = tools

        logger.debug(f"API request: provider=anthropic, model={self.model}, messages={len(history)}, tools={len(tools)}")

        calls = ToolCallAccumulator()
        stop_reason = "end_turn"
        input_tokens = 0
        output_tokens = 0

        try:
            stream = await self._client.messages.create(**kwargs)
        except anthropic.APIError as ex:
            raise ProviderError(f"Anthropic request failed: {ex}") from ex

        try:
            async for event in stream:
                if event.type == "message_start":
                    usage = getattr(event.message, "usage", None)
                    input_tokens = getattr(usage, "input_tokens", 0) or 0
                elif event.type == "content_block_start":
                    block = event.content_block
                    if block.type == "tool_use":
                        logger.debug(f"Tool use: {block.name}")
                        calls.start(event.index, block.id, block.name, initial_input=block.input or None)
                elif event.type == "content_block_delta":
                    delta = event.delta
                    if delta.type == "text_delta":
                        yield TextChunk(delta.text)
                    elif delta.type == "input_json_delta" and event.index in calls:
                        calls.add_fragment(event.index, delta.partial_json)
                elif event.type == "content_block_stop":
                    if event.index in calls:
                        yield calls.finish(event.index)
                elif event.type == "message_delta":
                    stop_reason = event.delta.stop_reason or stop_reason
                    usage = getattr(event, "usage", None)
                    output_tokens = getattr(usage, "output_tokens", 0) or output_tokens
        except anthropic.APIError as ex:
            raise ProviderError(f"Anthropic stream failed: {ex}") from ex
        finally:
            await close_stream(stream)

        if len(calls):
            logger.warning(f"Stream ended with {len(calls)} unterminated tool call(s); flushing")
            for request in calls.finish_all():
                yield request

        logger.debug(
            f"API response: stop_reason={stop_reason}, input_tokens={input_tokens}, output_tokens={output_tokens}"
        )
        yield Completion(stop_reason=stop_reason, input_tokens=input_tokens, output_tokens=output_tokens)
