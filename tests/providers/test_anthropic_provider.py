import asyncio
import unittest
from types import SimpleNamespace

import anthropic
import httpx

from toolchat.errors import ProviderError
from toolchat.providers.anthropic_provider import AnthropicProvider, _to_anthropic_messages
from toolchat.providers.common import Completion, TextChunk, ToolCallRequest


def _connection_error() -> anthropic.APIConnectionError:
    return anthropic.APIConnectionError(request=httpx.Request("POST", "https://api.anthropic.com/v1/messages"))


class _FakeStream:
    def __init__(self, events: list[object], fail_after: int | None = None):
        self._events = events
        self._fail_after = fail_after
        self.closed = False

    def __aiter__(self):
        self._iter = iter(enumerate(self._events))
        return self

    async def __anext__(self):
        try:
            index, event = next(self._iter)
        except StopIteration:
            raise StopAsyncIteration
        if self._fail_after is not None and index >= self._fail_after:
            raise _connection_error()
        return event

    async def close(self):
        self.closed = True


class _FakeMessages:
    def __init__(self, stream: _FakeStream | None = None, error: Exception | None = None):
        self._stream = stream
        self._error = error
        self.calls: list[dict] = []

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        if self._error is not None:
            raise self._error
        return self._stream


class _FakeClient:
    def __init__(self, stream=None, error=None):
        self.messages = _FakeMessages(stream, error)


def _text(index: int, text: str) -> SimpleNamespace:
    return SimpleNamespace(type="content_block_delta", index=index, delta=SimpleNamespace(type="text_delta", text=text))


def _json(index: int, partial: str) -> SimpleNamespace:
    return SimpleNamespace(
        type="content_block_delta",
        index=index,
        delta=SimpleNamespace(type="input_json_delta", partial_json=partial),
    )


def _tool_start(index: int, call_id: str, name: str) -> SimpleNamespace:
    return SimpleNamespace(
        type="content_block_start",
        index=index,
        content_block=SimpleNamespace(type="tool_use", id=call_id, name=name, input={}),
    )


def _text_start(index: int) -> SimpleNamespace:
    return SimpleNamespace(type="content_block_start", index=index, content_block=SimpleNamespace(type="text", text=""))


def _stop(index: int) -> SimpleNamespace:
    return SimpleNamespace(type="content_block_stop", index=index)


def _message_start(input_tokens: int) -> SimpleNamespace:
    return SimpleNamespace(type="message_start", message=SimpleNamespace(usage=SimpleNamespace(input_tokens=input_tokens)))


def _message_delta(stop_reason: str, output_tokens: int) -> SimpleNamespace:
    return SimpleNamespace(
        type="message_delta",
        delta=SimpleNamespace(stop_reason=stop_reason),
        usage=SimpleNamespace(output_tokens=output_tokens),
    )


async def _collect(provider: AnthropicProvider, history=None, tools=None) -> list:
    history = history or [{"role": "user", "content": [{"type": "text", "text": "hi"}]}]
    return [event async for event in provider.stream(history, tools or [])]


class AnthropicProviderTests(unittest.TestCase):
    def _make_provider(self, stream=None, error=None) -> AnthropicProvider:
        provider = AnthropicProvider.__new__(AnthropicProvider)
        provider.model = "claude-sonnet-4-5"
        provider._max_tokens = 64000
        provider._client = _FakeClient(stream, error)
        return provider

    def test_rejects_unknown_model(self) -> None:
        with self.assertRaises(ValueError):
            AnthropicProvider("gpt-4o", "key")

    def test_text_stream(self) -> None:
        stream = _FakeStream([
            _message_start(12),
            _text_start(0),
            _text(0, "Hello"),
            _text(0, " world"),
            _stop(0),
            _message_delta("end_turn", 4),
        ])
        provider = self._make_provider(stream)

        events = asyncio.run(_collect(provider))

        self.assertEqual(
            [TextChunk("Hello"), TextChunk(" world"), Completion("end_turn", 12, 4)],
            events,
        )
        self.assertTrue(stream.closed)
        self.assertNotIn("tools", provider._client.messages.calls[0])

    def test_tool_use_fragments_are_joined(self) -> None:
        stream = _FakeStream([
            _text_start(0),
            _text(0, "Let me look."),
            _stop(0),
            _tool_start(1, "toolu_1", "read_file"),
            _json(1, '{"pa'),
            _json(1, 'th": "a.txt"}'),
            _stop(1),
            _message_delta("tool_use", 9),
        ])
        provider = self._make_provider(stream)
        tools = [{"name": "read_file", "description": "d", "input_schema": {"type": "object"}}]

        events = asyncio.run(_collect(provider, tools=tools))

        self.assertEqual(
            [
                TextChunk("Let me look."),
                ToolCallRequest("toolu_1", "read_file", {"path": "a.txt"}),
                Completion("tool_use", 0, 9),
            ],
            events,
        )
        self.assertEqual(tools, provider._client.messages.calls[0]["tools"])

    def test_tool_use_without_arguments_gets_empty_input(self) -> None:
        stream = _FakeStream([_tool_start(0, "toolu_2", "glob"), _stop(0), _message_delta("tool_use", 1)])
        events = asyncio.run(_collect(self._make_provider(stream)))
        self.assertEqual(ToolCallRequest("toolu_2", "glob", {}), events[0])

    def test_malformed_arguments_become_empty_input(self) -> None:
        stream = _FakeStream([_tool_start(0, "toolu_3", "grep"), _json(0, '{"pattern": '), _stop(0)])
        events = asyncio.run(_collect(self._make_provider(stream)))
        self.assertEqual(ToolCallRequest("toolu_3", "grep", {}), events[0])

    def test_unterminated_call_is_flushed_before_completion(self) -> None:
        stream = _FakeStream([_tool_start(0, "toolu_4", "glob"), _json(0, '{"pattern": "*"}')])
        events = asyncio.run(_collect(self._make_provider(stream)))
        self.assertEqual([ToolCallRequest("toolu_4", "glob", {"pattern": "*"}), Completion()], events)

    def test_request_error_is_wrapped(self) -> None:
        provider = self._make_provider(error=_connection_error())
        with self.assertRaises(ProviderError):
            asyncio.run(_collect(provider))

    def test_mid_stream_error_is_wrapped_and_stream_closed(self) -> None:
        stream = _FakeStream([_text(0, "partial"), _text(0, "never")], fail_after=1)
        provider = self._make_provider(stream)
        seen: list = []

        async def consume() -> None:
            async for event in provider.stream([], []):
                seen.append(event)

        with self.assertRaises(ProviderError):
            asyncio.run(consume())
        self.assertEqual([TextChunk("partial")], seen)
        self.assertTrue(stream.closed)


class ToAnthropicMessagesTests(unittest.TestCase):
    def test_false_error_flag_is_dropped(self) -> None:
        history = [
            {
                "role": "user",
                "content": [
                    {"type": "tool_result", "tool_use_id": "a", "content": "ok", "is_error": False},
                    {"type": "tool_result", "tool_use_id": "b", "content": "bad", "is_error": True},
                ],
            }
        ]
        blocks = _to_anthropic_messages(history)[0]["content"]
        self.assertNotIn("is_error", blocks[0])
        self.assertTrue(blocks[1]["is_error"])
