"""Unit tests for the Anthropic Messages API adapter."""

import json

import httpx
import pytest

from switchboard_server.conversation import Conversation, Message, ToolCallRequest, Usage
from switchboard_server.errors import AuthError, TransportError
from switchboard_server.providers import AnthropicAdapter
from switchboard_server.tools import CapabilityDescriptor, ParameterSpec

ADD = CapabilityDescriptor(
    name="add",
    description="Add two integers",
    parameters={
        "a": ParameterSpec("integer", required=True),
        "b": ParameterSpec("integer", required=True),
    },
)


def make_adapter(handler, api_key="sk-ant-test"):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return AnthropicAdapter(api_key=api_key, client=client, max_tokens=1024)


def tool_conversation():
    return Conversation(
        [
            Message.system("Be brief"),
            Message.user("What is 2+2 and 3+3?"),
            Message.assistant(
                "Let me add",
                tool_calls=[
                    ToolCallRequest("toolu_1", "add", {"a": 2, "b": 2}),
                    ToolCallRequest("toolu_2", "add", {"a": 3, "b": 3}),
                ],
            ),
            Message.tool("4", "toolu_1", "add"),
            Message.tool("6", "toolu_2", "add"),
            Message.assistant("4 and 6"),
        ]
    )


def test_system_messages_are_hoisted():
    adapter = AnthropicAdapter()
    wire = adapter.to_wire_messages(tool_conversation(), system_prompt="You are a calculator")

    assert wire["system"] == "You are a calculator\n\nBe brief"
    assert [m["role"] for m in wire["messages"]] == ["user", "assistant", "user", "assistant"]


def test_tool_results_share_one_user_turn():
    adapter = AnthropicAdapter()
    wire = adapter.to_wire_messages(tool_conversation())

    assistant = wire["messages"][1]
    assert assistant["content"][0] == {"type": "text", "text": "Let me add"}
    assert assistant["content"][1] == {
        "type": "tool_use",
        "id": "toolu_1",
        "name": "add",
        "input": {"a": 2, "b": 2},
    }
    assert wire["messages"][2]["content"] == [
        {"type": "tool_result", "tool_use_id": "toolu_1", "content": "4"},
        {"type": "tool_result", "tool_use_id": "toolu_2", "content": "6"},
    ]


def test_wire_round_trip():
    adapter = AnthropicAdapter()
    conversation = tool_conversation()
    assert adapter.from_wire_messages(adapter.to_wire_messages(conversation)) == conversation


@pytest.mark.asyncio
async def test_send_message_with_tools():
    captured = {}

    def handler(request):
        captured["url"] = str(request.url)
        captured["headers"] = request.headers
        captured["body"] = json.loads(request.content)
        return httpx.Response(
            200,
            json={
                "id": "msg_1",
                "model": "claude-3-opus-20240229",
                "role": "assistant",
                "content": [
                    {"type": "text", "text": "I'll add those."},
                    {"type": "tool_use", "id": "toolu_9", "name": "add", "input": {"a": 2, "b": 2}},
                ],
                "stop_reason": "tool_use",
                "usage": {"input_tokens": 30, "output_tokens": 12},
            },
        )

    adapter = make_adapter(handler)
    reply = await adapter.send_message_with_tools(
        Conversation([Message.user("2+2?")]), [ADD], system_prompt="Use tools"
    )

    assert captured["url"] == "https://api.anthropic.com/v1/messages"
    assert captured["headers"]["x-api-key"] == "sk-ant-test"
    assert captured["headers"]["anthropic-version"] == "2023-06-01"
    body = captured["body"]
    assert body["max_tokens"] == 1024
    assert body["system"] == "Use tools"
    assert body["tools"][0]["input_schema"]["required"] == ["a", "b"]
    assert reply.content == "I'll add those."
    assert reply.tool_calls == (ToolCallRequest("toolu_9", "add", {"a": 2, "b": 2}),)
    assert reply.usage == Usage(30, 12)
    assert reply.finish_reason == "tool_use"


@pytest.mark.asyncio
async def test_streaming_matches_non_streaming():
    def handler(request):
        body = json.loads(request.content)
        if not body["stream"]:
            return httpx.Response(
                200,
                json={
                    "content": [{"type": "text", "text": "Hello there"}],
                    "stop_reason": "end_turn",
                    "usage": {"input_tokens": 5, "output_tokens": 2},
                },
            )
        frames = [
            {"type": "message_start", "message": {"usage": {"input_tokens": 5, "output_tokens": 1}}},
            {"type": "content_block_start", "index": 0, "content_block": {"type": "text", "text": ""}},
            {"type": "content_block_delta", "index": 0, "delta": {"type": "text_delta", "text": "Hello"}},
            {"type": "content_block_delta", "index": 0, "delta": {"type": "text_delta", "text": " there"}},
            {"type": "content_block_stop", "index": 0},
            {"type": "message_delta", "delta": {"stop_reason": "end_turn"}, "usage": {"output_tokens": 2}},
            {"type": "message_stop"},
        ]
        text = "".join(
            f"event: {frame['type']}\ndata: {json.dumps(frame)}\n\n" for frame in frames
        )
        return httpx.Response(200, text=text)

    adapter = make_adapter(handler)
    conversation = Conversation([Message.user("Hi")])
    deltas = []

    streamed = await adapter.send_message_streaming(conversation, on_delta=deltas.append)
    plain = await adapter.send_message(conversation)

    assert deltas == ["Hello", " there"]
    assert streamed.content == plain.content == "Hello there"
    assert streamed.usage == plain.usage
    assert streamed.finish_reason == plain.finish_reason


@pytest.mark.asyncio
async def test_overloaded_is_transport_error():
    def handler(request):
        return httpx.Response(529, json={"type": "error", "error": {"message": "Overloaded"}})

    adapter = make_adapter(handler)

    with pytest.raises(TransportError, match="Overloaded"):
        await adapter.send_message(Conversation([Message.user("Hi")]))


@pytest.mark.asyncio
async def test_rejected_key_is_auth_error():
    def handler(request):
        return httpx.Response(401, json={"error": {"message": "invalid x-api-key"}})

    adapter = make_adapter(handler)

    with pytest.raises(AuthError):
        await adapter.send_message(Conversation([Message.user("Hi")]))


@pytest.mark.asyncio
async def test_fetch_models():
    def handler(request):
        return httpx.Response(
            200,
            json={
                "data": [
                    {"id": "claude-3-haiku-20240307", "display_name": "Claude 3 Haiku"},
                    {"id": "claude-2.1", "display_name": "Claude 2.1"},
                ]
            },
        )

    adapter = make_adapter(handler)
    models = await adapter.fetch_available_models()

    assert [m.id for m in models] == ["claude-3-haiku-20240307", "claude-2.1"]
    assert models[1].context_length == 100000
    assert not models[1].supports_vision
    # The previous selection disappeared from the list, so it is kept as is
    assert adapter.profile.current_model.id == "claude-3-opus-20240229"
