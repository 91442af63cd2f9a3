"""Streaming support: vendor stream decoders and message reassembly."""

from switchboard_server.streaming.accumulator import ToolCallAccumulator
from switchboard_server.streaming.assembler import MessageAssembler
from switchboard_server.streaming.decoders import (
    AnthropicStreamDecoder,
    GoogleStreamDecoder,
    OllamaStreamDecoder,
    OpenAIStreamDecoder,
    StreamDecoder,
)
from switchboard_server.streaming.events import (
    ContentDelta,
    Done,
    StreamEvent,
    ToolCallDelta,
    ToolCallReady,
)

__all__ = [
    "AnthropicStreamDecoder",
    "ContentDelta",
    "Done",
    "GoogleStreamDecoder",
    "MessageAssembler",
    "OllamaStreamDecoder",
    "OpenAIStreamDecoder",
    "StreamDecoder",
    "StreamEvent",
    "ToolCallAccumulator",
    "ToolCallDelta",
    "ToolCallReady",
]
