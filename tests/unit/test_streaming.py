"""Unit tests for stream decoders, tool call accumulation and message assembly."""

import json

import pytest

from switchboard_server.conversation import ToolCallRequest, Usage
from switchboard_server.errors import TransportError
from switchboard_server.streaming import (
    AnthropicStreamDecoder,
    ContentDelta,
    Done,
    GoogleStreamDecoder,
    MessageAssembler,
    OllamaStreamDecoder,
    OpenAIStreamDecoder,
    ToolCallAccumulator,
    ToolCallDelta,
    ToolCallReady,
)


async def aiter(items):
    for item in items:
        yield item


def sse(frames):
    """Render frames as SSE lines, the way httpx aiter_lines() yields them."""
    lines = []
    for frame in frames:
        lines.append(f"data: {frame if isinstance(frame, str) else json.dumps(frame)}")
        lines.append("")
    return lines


async def collect(decoder, lines):
    return [event async for event in decoder.decode_lines(aiter(lines))]


def assemble(events, model=None):
    assembler = MessageAssembler(model=model)
    for event in events:
        assembler.feed(event)
    return assembler


def openai_chunk(delta=None, finish_reason=None, usage=None):
    frame = {"choices": [{"index": 0, "delta": delta or {}, "finish_reason": finish_reason}]}
    if usage is not None:
        frame["choices"] = []
        frame["usage"] = usage
    return frame


class TestToolCallAccumulator:
    """Tests for fragment accumulation."""

    def test_interleaved_fragments(self):
        acc = ToolCallAccumulator()
        acc.add(0, call_id="a", name="add", arguments='{"a": ')
        acc.add(1, call_id="b", name="sub", arguments='{"x": 9')
        acc.add(0, arguments="2, ")
        acc.add(1, arguments=', "y": 1}')
        acc.add(0, arguments='"b": 2}')

        completed = acc.complete_all()

        assert completed == [
            (0, ToolCallRequest("a", "add", {"a": 2, "b": 2})),
            (1, ToolCallRequest("b", "sub", {"x": 9, "y": 1})),
        ]
        assert acc.pending == []

    def test_name_arriving_late(self):
        acc = ToolCallAccumulator()
        acc.add(0, arguments='{"q": "x"}')
        acc.add(0, call_id="c", name="search")

        assert acc.complete(0) == ToolCallRequest("c", "search", {"q": "x"})

    def test_nameless_call_is_dropped(self):
        acc = ToolCallAccumulator()
        acc.add(0, arguments="{}")
        assert acc.complete(0) is None
        assert acc.complete(5) is None

    def test_discard_all(self):
        acc = ToolCallAccumulator()
        acc.add(2, call_id="b", name="sub")
        acc.add(0, call_id="a", name="add", arguments='{"a": ')

        assert acc.discard_all() == [0, 2]
        assert acc.pending == []
        assert acc.complete(0) is None

    def test_invalid_arguments_become_empty(self):
        acc = ToolCallAccumulator()
        acc.add(0, name="add", arguments='{"a": 2')
        call = acc.complete(0)
        assert call.arguments == {}
        assert call.id.startswith("call_")


class TestOpenAIStreamDecoder:
    """Tests for OpenAI-compatible chunk decoding."""

    @pytest.mark.asyncio
    async def test_text_stream(self):
        lines = sse(
            [
                openai_chunk({"role": "assistant", "content": ""}),
                openai_chunk({"content": "Hello"}),
                openai_chunk({"content": " world"}),
                openai_chunk(finish_reason="stop"),
                openai_chunk(usage={"prompt_tokens": 7, "completion_tokens": 2}),
                "[DONE]",
            ]
        )

        events = await collect(OpenAIStreamDecoder(), lines)

        assert events == [
            ContentDelta("Hello"),
            ContentDelta(" world"),
            Done(finish_reason="stop", usage=Usage(7, 2)),
        ]

    @pytest.mark.asyncio
    async def test_interleaved_tool_calls(self):
        def call_fragment(index, arguments, call_id=None, name=None):
            function = {"arguments": arguments}
            if name:
                function["name"] = name
            fragment = {"index": index, "function": function}
            if call_id:
                fragment["id"] = call_id
            return openai_chunk({"tool_calls": [fragment]})

        lines = sse(
            [
                call_fragment(0, "", call_id="call_a", name="add"),
                call_fragment(1, '{"city"', call_id="call_b"),
                call_fragment(0, '{"a": 2, '),
                call_fragment(1, ': "Oslo"}', name="weather"),
                call_fragment(0, '"b": 2}'),
                openai_chunk(finish_reason="tool_calls"),
                "[DONE]",
            ]
        )

        events = await collect(OpenAIStreamDecoder(), lines)
        ready = [e for e in events if isinstance(e, ToolCallReady)]

        assert [e.call for e in ready] == [
            ToolCallRequest("call_a", "add", {"a": 2, "b": 2}),
            ToolCallRequest("call_b", "weather", {"city": "Oslo"}),
        ]
        assert isinstance(events[-1], Done)
        assert events[-1].finish_reason == "tool_calls"
        assert sum(isinstance(e, ToolCallDelta) for e in events) == 5

    @pytest.mark.asyncio
    async def test_malformed_frame_is_skipped(self):
        lines = [
            ": keep-alive",
            "event: message",
            "data: {broken",
            "data: " + json.dumps(openai_chunk({"content": "ok"})),
            "data: " + json.dumps({"choices": "not-a-list-of-dicts"}),
            "data: [DONE]",
        ]

        events = await collect(OpenAIStreamDecoder(), lines)

        assert events == [ContentDelta("ok"), Done()]

    @pytest.mark.asyncio
    async def test_stream_without_terminal_frame_is_incomplete(self):
        lines = sse([openai_chunk({"content": "partial"})])

        events = await collect(OpenAIStreamDecoder(), lines)

        assert events == [ContentDelta("partial"), Done(complete=False)]
        assert not assemble(events).complete

    @pytest.mark.asyncio
    async def test_cut_off_tool_call_is_dropped(self):
        fragment = {"index": 0, "id": "call_a", "function": {"name": "add", "arguments": '{"a": 2'}}
        lines = sse([openai_chunk({"tool_calls": [fragment]})])

        events = await collect(OpenAIStreamDecoder(), lines)

        assert not any(isinstance(e, ToolCallReady) for e in events)
        assert events[-1] == Done(complete=False)

    @pytest.mark.asyncio
    async def test_sentinel_completes_open_tool_calls(self):
        fragment = {"index": 0, "id": "call_a", "function": {"name": "add", "arguments": "{}"}}
        lines = sse([openai_chunk({"tool_calls": [fragment]}), "[DONE]"])

        events = await collect(OpenAIStreamDecoder(), lines)

        assert events[-2] == ToolCallReady(0, ToolCallRequest("call_a", "add", {}))
        assert events[-1] == Done()

    @pytest.mark.asyncio
    async def test_error_frame_raises(self):
        lines = sse([{"error": {"message": "overloaded"}}])
        with pytest.raises(TransportError, match="overloaded"):
            await collect(OpenAIStreamDecoder(), lines)

    @pytest.mark.asyncio
    async def test_decoder_is_single_use(self):
        decoder = OpenAIStreamDecoder()
        await collect(decoder, sse(["[DONE]"]))
        with pytest.raises(RuntimeError):
            await collect(decoder, sse(["[DONE]"]))


class TestAnthropicStreamDecoder:
    """Tests for Anthropic event decoding."""

    @pytest.mark.asyncio
    async def test_text_and_tool_use(self):
        frames = [
            {"type": "message_start", "message": {"usage": {"input_tokens": 12, "output_tokens": 1}}},
            {"type": "content_block_start", "index": 0, "content_block": {"type": "text", "text": ""}},
            {"type": "ping"},
            {"type": "content_block_delta", "index": 0, "delta": {"type": "text_delta", "text": "Let me add"}},
            {"type": "content_block_stop", "index": 0},
            {
                "type": "content_block_start",
                "index": 1,
                "content_block": {"type": "tool_use", "id": "toolu_1", "name": "add", "input": {}},
            },
            {"type": "content_block_delta", "index": 1, "delta": {"type": "input_json_delta", "partial_json": '{"a": 2,'}},
            {"type": "content_block_delta", "index": 1, "delta": {"type": "input_json_delta", "partial_json": ' "b": 2}'}},
            {"type": "content_block_stop", "index": 1},
            {"type": "message_delta", "delta": {"stop_reason": "tool_use"}, "usage": {"output_tokens": 20}},
            {"type": "message_stop"},
        ]
        lines = []
        for frame in frames:
            lines.append(f"event: {frame['type']}")
            lines.append(f"data: {json.dumps(frame)}")
            lines.append("")

        events = await collect(AnthropicStreamDecoder(), lines)
        message = assemble(events, model="claude").build()

        assert message.content == "Let me add"
        assert message.tool_calls == (ToolCallRequest("toolu_1", "add", {"a": 2, "b": 2}),)
        assert message.finish_reason == "tool_use"
        assert message.usage == Usage(12, 20)

    @pytest.mark.asyncio
    async def test_error_event_raises(self):
        lines = sse([{"type": "error", "error": {"type": "overloaded_error", "message": "Overloaded"}}])
        with pytest.raises(TransportError, match="Overloaded"):
            await collect(AnthropicStreamDecoder(), lines)

    @pytest.mark.asyncio
    async def test_stream_cut_off_mid_tool_call(self):
        lines = sse(
            [
                {"type": "message_start", "message": {"usage": {"input_tokens": 5}}},
                {
                    "type": "content_block_start",
                    "index": 0,
                    "content_block": {"type": "tool_use", "id": "toolu_1", "name": "add", "input": {}},
                },
                {"type": "content_block_delta", "index": 0, "delta": {"type": "input_json_delta", "partial_json": '{"a": 2, "b"'}},
            ]
        )

        events = await collect(AnthropicStreamDecoder(), lines)
        assembler = assemble(events)

        assert not any(isinstance(e, ToolCallReady) for e in events)
        assert events[-1].complete is False
        assert not assembler.complete
        assert assembler.build().tool_calls == ()

    @pytest.mark.asyncio
    async def test_tool_block_without_stop_is_dropped(self):
        lines = sse(
            [
                {
                    "type": "content_block_start",
                    "index": 0,
                    "content_block": {"type": "tool_use", "id": "toolu_1", "name": "add", "input": {}},
                },
                {"type": "content_block_delta", "index": 0, "delta": {"type": "input_json_delta", "partial_json": '{"a": 2'}},
                {"type": "message_stop"},
            ]
        )

        events = await collect(AnthropicStreamDecoder(), lines)

        assert not any(isinstance(e, ToolCallReady) for e in events)
        assert events[-1] == Done()


class TestGoogleStreamDecoder:
    """Tests for Gemini SSE decoding."""

    @pytest.mark.asyncio
    async def test_text_and_function_call(self):
        lines = sse(
            [
                {"candidates": [{"content": {"role": "model", "parts": [{"text": "Sure"}]}}]},
                {
                    "candidates": [
                        {
                            "content": {
                                "role": "model",
                                "parts": [{"functionCall": {"name": "add", "args": {"a": 2, "b": 2}}}],
                            },
                            "finishReason": "STOP",
                        }
                    ],
                    "usageMetadata": {"promptTokenCount": 4, "candidatesTokenCount": 3},
                },
            ]
        )

        events = await collect(GoogleStreamDecoder(), lines)
        message = assemble(events).build()

        assert message.content == "Sure"
        assert len(message.tool_calls) == 1
        call = message.tool_calls[0]
        assert (call.name, call.arguments) == ("add", {"a": 2, "b": 2})
        assert call.id.startswith("call_")
        assert message.finish_reason == "STOP"
        assert message.usage == Usage(4, 3)

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "error", [{"code": 503, "message": "model overloaded"}, "model overloaded"]
    )
    async def test_error_frame_raises(self, error):
        lines = sse([{"error": error}])
        with pytest.raises(TransportError, match="model overloaded"):
            await collect(GoogleStreamDecoder(), lines)


class TestOllamaStreamDecoder:
    """Tests for Ollama frame decoding."""

    @pytest.mark.asyncio
    async def test_frames(self):
        frames = [
            {"message": {"role": "assistant", "content": "Hel"}, "done": False},
            {"message": {"role": "assistant", "content": "lo"}, "done": False},
            {
                "message": {
                    "role": "assistant",
                    "content": "",
                    "tool_calls": [{"function": {"name": "add", "arguments": {"a": 1, "b": 2}}}],
                },
                "done": False,
            },
            {
                "message": {"role": "assistant", "content": ""},
                "done": True,
                "done_reason": "stop",
                "prompt_eval_count": 20,
                "eval_count": 5,
            },
            {"message": {"role": "assistant", "content": "ignored"}, "done": False},
        ]

        decoder = OllamaStreamDecoder()
        events = [event async for event in decoder.decode_frames(aiter(frames))]
        message = assemble(events).build()

        assert message.content == "Hello"
        assert message.tool_calls[0].arguments == {"a": 1, "b": 2}
        assert message.usage == Usage(20, 5)
        assert message.finish_reason == "stop"

    @pytest.mark.asyncio
    async def test_ndjson_lines(self):
        lines = [
            json.dumps({"message": {"content": "Hi"}, "done": False}),
            json.dumps({"message": {"content": ""}, "done": True}),
        ]
        events = await collect(OllamaStreamDecoder(), lines)
        assert events == [ContentDelta("Hi"), Done(finish_reason="stop")]


class TestMessageAssembler:
    """Tests for folding events into a message."""

    def test_orders_calls_by_index(self):
        assembler = MessageAssembler(model="m")
        assembler.feed(ToolCallReady(1, ToolCallRequest("b", "second")))
        assert assembler.feed(ContentDelta("text")) == "text"
        assembler.feed(ToolCallReady(0, ToolCallRequest("a", "first")))
        assert not assembler.done
        assembler.feed(Done("tool_calls"))

        message = assembler.build()

        assert assembler.done
        assert assembler.complete
        assert [c.name for c in message.tool_calls] == ["first", "second"]
        assert message.model == "m"
