"""Normalized stream events emitted by the vendor stream decoders."""

from dataclasses import dataclass
from typing import Union

from switchboard_server.conversation import ToolCallRequest, Usage


@dataclass(frozen=True)
class ContentDelta:
    """A fragment of assistant text."""

    text: str


@dataclass(frozen=True)
class ToolCallDelta:
    """A fragment of a tool call, keyed by its index within the turn.

    Any field may be None when the fragment does not carry it; the name may
    arrive after the first argument fragment.
    """

    index: int
    call_id: str | None = None
    name: str | None = None
    arguments: str = ""


@dataclass(frozen=True)
class ToolCallReady:
    """A complete tool call, emitted once its terminal frame arrived."""

    index: int
    call: ToolCallRequest


@dataclass(frozen=True)
class Done:
    """End of the stream. Always the last event.

    complete is False when the input ended before the vendor's terminal frame,
    i.e. the response was cut off.
    """

    finish_reason: str | None = None
    usage: Usage | None = None
    complete: bool = True


StreamEvent = Union[ContentDelta, ToolCallDelta, ToolCallReady, Done]
