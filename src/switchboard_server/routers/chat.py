"""Chat API endpoints.

This module provides endpoints that run one conversation turn, including
tool execution, with non-streaming and streaming (SSE) responses.
"""

import asyncio
import contextlib
import logging

from fastapi import APIRouter, Depends, HTTPException
from sse_starlette.sse import EventSourceResponse

from switchboard_server.conversation import Conversation, Message
from switchboard_server.dependencies import get_gateway, get_provider_service
from switchboard_server.errors import GatewayError
from switchboard_server.models.chat import (
    ChatRequest,
    ChatResponse,
    ContentDeltaEvent,
    DoneEvent,
    ErrorEvent,
    MessageEvent,
    MessageSchema,
)
from switchboard_server.providers import ProviderAdapter
from switchboard_server.routers.errors import http_error
from switchboard_server.services import Gateway, ProviderService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/chat", tags=["chat"])


def _bad_request(code: str, message: str) -> HTTPException:
    return HTTPException(
        status_code=400,
        detail={"error": {"code": code, "message": message, "details": {}}},
    )


def _prepare(
    request_body: ChatRequest, service: ProviderService, gateway: Gateway
) -> tuple[Conversation, ProviderAdapter, list[str] | None]:
    """Resolve the conversation, provider and capability names of a request.

    Raises:
        HTTPException: 400 for an invalid or empty conversation, the
        envelope of a GatewayError for unknown providers
    """
    try:
        conversation = request_body.to_conversation()
    except ValueError as e:
        raise _bad_request("invalid_conversation", str(e))
    if len(conversation) == 0:
        raise _bad_request("empty_conversation", "Conversation has no messages")

    if request_body.provider:
        try:
            provider = service.get(request_body.provider)
        except GatewayError as e:
            raise http_error(e)
    elif service.active is not None:
        provider = service.active
    else:
        raise _bad_request("no_active_provider", "No provider selected")

    if request_body.use_all_tools:
        capabilities = [d.name for d in gateway.available_capabilities()]
    else:
        capabilities = request_body.tools

    return conversation, provider, capabilities


@router.post("", response_model=ChatResponse)
async def chat(
    request_body: ChatRequest,
    service: ProviderService = Depends(get_provider_service),
    gateway: Gateway = Depends(get_gateway),
) -> ChatResponse:
    """Run one conversation turn and return the extended conversation.

    Raises:
        HTTPException: 400 for invalid input, vendor and tool errors mapped
        through the error envelope
    """
    conversation, provider, capabilities = _prepare(request_body, service, gateway)
    logger.info(
        f"Chat with {provider.provider_name}: {len(conversation)} messages, "
        f"{len(capabilities or [])} tools"
    )

    try:
        result = await gateway.converse(
            conversation,
            provider,
            capabilities,
            system_prompt=request_body.system_prompt,
        )
    except GatewayError as e:
        raise http_error(e)

    current = provider.profile.current_model
    return ChatResponse(
        provider=provider.provider_name,
        model=current.id if current else None,
        messages=[MessageSchema.from_message(m) for m in result],
        new_messages=[MessageSchema.from_message(m) for m in result[len(conversation) :]],
    )


@router.post("/stream")
async def chat_streaming(
    request_body: ChatRequest,
    service: ProviderService = Depends(get_provider_service),
    gateway: Gateway = Depends(get_gateway),
) -> EventSourceResponse:
    """Stream a conversation turn via Server-Sent Events (SSE).

    SSE Events:
        - content_delta: Each text chunk from the model
        - message: Each message appended to the conversation
        - error: If the turn fails
        - done: The turn is complete

    A client disconnect cancels the turn.
    """
    conversation, provider, capabilities = _prepare(request_body, service, gateway)

    async def event_generator():
        """Run the turn in a task and relay its callbacks as SSE events."""
        queue: asyncio.Queue = asyncio.Queue()

        async def on_delta(text: str) -> None:
            await queue.put(
                {
                    "event": "content_delta",
                    "data": ContentDeltaEvent(content=text).model_dump_json(),
                }
            )

        async def on_message(message: Message) -> None:
            event = MessageEvent(message=MessageSchema.from_message(message))
            await queue.put({"event": "message", "data": event.model_dump_json()})

        async def run_turn() -> None:
            try:
                result = await gateway.converse(
                    conversation,
                    provider,
                    capabilities,
                    system_prompt=request_body.system_prompt,
                    on_delta=on_delta,
                    on_message=on_message,
                )
                done = DoneEvent(provider=provider.provider_name, message_count=len(result))
                await queue.put({"event": "done", "data": done.model_dump_json()})
            except GatewayError as e:
                logger.error(f"Streaming chat with {provider.provider_name} failed: {e}")
                error = ErrorEvent(**e.to_dict())
                await queue.put({"event": "error", "data": error.model_dump_json()})
            except Exception as e:
                logger.error(f"Unexpected error during streaming chat: {e}")
                error = ErrorEvent(code="internal_error", message=str(e))
                await queue.put({"event": "error", "data": error.model_dump_json()})
            finally:
                await queue.put(None)

        task = asyncio.create_task(run_turn())
        try:
            while True:
                item = await queue.get()
                if item is None:
                    break
                yield item
        finally:
            if not task.done():
                logger.warning(f"Client disconnected, cancelling turn with {provider.provider_name}")
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task

    return EventSourceResponse(event_generator())
