"""Unit tests for the Google Gemini adapter."""

import json

import httpx
import pytest

from switchboard_server.conversation import Conversation, Message, ToolCallRequest, Usage
from switchboard_server.errors import ProtocolError
from switchboard_server.providers import GoogleAdapter
from switchboard_server.tools import CapabilityDescriptor, ParameterSpec


def make_adapter(handler, api_key="AIza-test"):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return GoogleAdapter(api_key=api_key, client=client)


def test_wire_format():
    adapter = GoogleAdapter()
    conversation = Conversation(
        [
            Message.system("Be brief"),
            Message.user("2+2?"),
            Message.assistant(tool_calls=[ToolCallRequest("call_1", "add", {"a": 2, "b": 2})]),
            Message.tool("4", "call_1", "add"),
            Message.assistant("4"),
        ]
    )

    wire = adapter.to_wire_messages(conversation)

    assert wire["systemInstruction"] == {"parts": [{"text": "Be brief"}]}
    assert [c["role"] for c in wire["contents"]] == ["user", "model", "user", "model"]
    assert wire["contents"][1]["parts"] == [
        {"functionCall": {"id": "call_1", "name": "add", "args": {"a": 2, "b": 2}}}
    ]
    assert wire["contents"][2]["parts"] == [
        {"functionResponse": {"id": "call_1", "name": "add", "response": {"content": "4"}}}
    ]
    assert adapter.from_wire_messages(wire) == conversation


def test_responses_without_ids_are_matched_by_name():
    adapter = GoogleAdapter()
    wire = {
        "contents": [
            {"role": "user", "parts": [{"text": "Weather and time?"}]},
            {
                "role": "model",
                "parts": [
                    {"functionCall": {"id": "c1", "name": "weather", "args": {}}},
                    {"functionCall": {"id": "c2", "name": "clock", "args": {}}},
                ],
            },
            {
                "role": "user",
                "parts": [
                    {"functionResponse": {"name": "clock", "response": {"content": "noon"}}},
                    {"functionResponse": {"name": "weather", "response": {"content": "sunny"}}},
                ],
            },
        ]
    }

    conversation = adapter.from_wire_messages(wire)

    assert [(m.tool_call_id, m.content) for m in conversation[2:]] == [
        ("c2", "noon"),
        ("c1", "sunny"),
    ]


@pytest.mark.asyncio
async def test_send_message_with_tools():
    captured = {}

    def handler(request):
        captured["url"] = str(request.url)
        captured["key"] = request.headers.get("x-goog-api-key")
        captured["body"] = json.loads(request.content)
        return httpx.Response(
            200,
            json={
                "candidates": [
                    {
                        "content": {
                            "role": "model",
                            "parts": [{"functionCall": {"name": "lookup", "args": {"q": "x"}}}],
                        },
                        "finishReason": "STOP",
                    }
                ],
                "usageMetadata": {"promptTokenCount": 8, "candidatesTokenCount": 4},
            },
        )

    descriptors = [
        CapabilityDescriptor(
            name="lookup",
            description="Look something up",
            parameters={"q": ParameterSpec("string", required=True, default="x")},
        ),
        CapabilityDescriptor(name="now", description="Current time"),
    ]
    adapter = make_adapter(handler)
    reply = await adapter.send_message_with_tools(
        Conversation([Message.user("find x")]), descriptors
    )

    assert captured["url"].endswith("/models/gemini-1.5-pro:generateContent")
    assert captured["key"] == "AIza-test"
    declarations = captured["body"]["tools"][0]["functionDeclarations"]
    assert declarations[0]["parameters"]["properties"]["q"] == {"type": "string"}
    assert "parameters" not in declarations[1]
    assert reply.tool_calls[0].name == "lookup"
    assert reply.tool_calls[0].arguments == {"q": "x"}
    assert reply.usage == Usage(8, 4)


@pytest.mark.asyncio
async def test_blocked_prompt_is_protocol_error():
    def handler(request):
        return httpx.Response(200, json={"promptFeedback": {"blockReason": "SAFETY"}})

    adapter = make_adapter(handler)

    with pytest.raises(ProtocolError, match="SAFETY"):
        await adapter.send_message(Conversation([Message.user("Hi")]))


@pytest.mark.asyncio
async def test_streaming_matches_non_streaming():
    parts = ["Hello", " from", " Gemini"]

    def handler(request):
        if request.url.path.endswith(":generateContent"):
            return httpx.Response(
                200,
                json={
                    "candidates": [
                        {"content": {"parts": [{"text": "".join(parts)}]}, "finishReason": "STOP"}
                    ],
                },
            )
        assert request.url.params["alt"] == "sse"
        frames = [{"candidates": [{"content": {"parts": [{"text": p}]}}]} for p in parts]
        frames[-1]["candidates"][0]["finishReason"] = "STOP"
        text = "".join(f"data: {json.dumps(frame)}\r\n\r\n" for frame in frames)
        return httpx.Response(200, text=text)

    adapter = make_adapter(handler)
    conversation = Conversation([Message.user("Hi")])
    deltas = []

    streamed = await adapter.send_message_streaming(conversation, on_delta=deltas.append)
    plain = await adapter.send_message(conversation)

    assert deltas == parts
    assert streamed.content == plain.content
    assert streamed.finish_reason == plain.finish_reason == "STOP"


@pytest.mark.asyncio
async def test_fetch_models_filters_generate_content():
    def handler(request):
        return httpx.Response(
            200,
            json={
                "models": [
                    {
                        "name": "models/gemini-1.5-flash",
                        "supportedGenerationMethods": ["generateContent"],
                    },
                    {
                        "name": "models/gemini-2.0-flash",
                        "displayName": "Gemini 2.0 Flash",
                        "inputTokenLimit": 1048576,
                        "supportedGenerationMethods": ["generateContent", "countTokens"],
                    },
                    {
                        "name": "models/text-embedding-004",
                        "supportedGenerationMethods": ["embedContent"],
                    },
                ]
            },
        )

    adapter = make_adapter(handler)
    models = await adapter.fetch_available_models()

    assert [m.id for m in models] == ["gemini-1.5-flash", "gemini-2.0-flash"]
    assert models[1].context_length == 1048576
    assert adapter.profile.current_model.id == "gemini-1.5-pro"
