"""Provider adapter interface and the shared HTTP implementation.

Every LLM backend is consumed through the ProviderAdapter protocol. The
HTTP-based adapters share HttpProviderAdapter, which owns the httpx client,
maps vendor status codes onto the error taxonomy and drives streaming through
the vendor's StreamDecoder.
"""

import inspect
import json
import logging
from typing import (
    Any,
    AsyncIterator,
    Awaitable,
    Callable,
    Protocol,
    Sequence,
    runtime_checkable,
)

import httpx

from switchboard_server.conversation import Conversation, Message
from switchboard_server.errors import (
    AuthError,
    GatewayError,
    ProtocolError,
    TransportError,
    UnsupportedCapabilityError,
)
from switchboard_server.providers.common import error_message
from switchboard_server.providers.types import Model, ProviderProfile
from switchboard_server.streaming import MessageAssembler, StreamDecoder, StreamEvent
from switchboard_server.tools.types import CapabilityDescriptor

logger = logging.getLogger(__name__)

DeltaCallback = Callable[[str], Awaitable[None] | None]

# Vendor statuses worth retrying
RETRYABLE_STATUS_CODES = frozenset({408, 429})


@runtime_checkable
class ProviderAdapter(Protocol):
    """Interface every LLM backend adapter implements."""

    profile: ProviderProfile

    @property
    def provider_name(self) -> str: ...

    @property
    def has_api_key(self) -> bool: ...

    async def initialize(self) -> None: ...

    async def send_message(
        self, conversation: Conversation, system_prompt: str | None = None
    ) -> Message: ...

    async def send_message_streaming(
        self,
        conversation: Conversation,
        system_prompt: str | None = None,
        on_delta: DeltaCallback | None = None,
    ) -> Message: ...

    async def send_message_with_tools(
        self,
        conversation: Conversation,
        capabilities: Sequence[CapabilityDescriptor],
        system_prompt: str | None = None,
    ) -> Message: ...

    async def fetch_available_models(self) -> list[Model]: ...

    def set_model(self, model_id: str) -> bool: ...

    def set_api_key(self, api_key: str | None) -> None: ...

    async def close(self) -> None: ...


async def emit_delta(on_delta: DeltaCallback | None, text: str) -> None:
    """Invoke a sync or async delta callback."""
    if on_delta is None or not text:
        return
    outcome = on_delta(text)
    if inspect.isawaitable(outcome):
        await outcome


class BaseProviderAdapter:
    """State shared by every adapter: profile, credential and model selection."""

    def __init__(self, profile: ProviderProfile, api_key: str | None = None) -> None:
        self.profile = profile
        self._api_key = api_key or None

    @property
    def provider_name(self) -> str:
        return self.profile.name

    @property
    def has_api_key(self) -> bool:
        return bool(self._api_key)

    @property
    def model_id(self) -> str:
        if self.profile.current_model is None:
            raise UnsupportedCapabilityError(
                "No model selected", provider=self.provider_name
            )
        return self.profile.current_model.id

    async def initialize(self) -> None:
        """Load credential state and refresh the model list when possible."""
        if self.has_api_key or not self.profile.requires_api_key:
            await self.fetch_available_models()
        logger.info(
            f"Provider {self.provider_name} initialized "
            f"(api key: {'yes' if self.has_api_key else 'no'}, "
            f"model: {self.profile.current_model.id if self.profile.current_model else None})"
        )

    def set_model(self, model_id: str) -> bool:
        """Select a model from the available list.

        Returns:
            bool: True if the model was found and selected
        """
        model = self.profile.find_model(model_id)
        if model is None:
            logger.warning(f"Model {model_id} not available for {self.provider_name}")
            return False
        self.profile.current_model = model
        logger.info(f"Provider {self.provider_name} switched to model {model_id}")
        return True

    def set_api_key(self, api_key: str | None) -> None:
        self._api_key = api_key or None
        logger.info(f"API key {'set' if api_key else 'cleared'} for {self.provider_name}")

    def _require_api_key(self) -> None:
        if self.profile.requires_api_key and not self.has_api_key:
            raise AuthError(
                f"No API key configured for {self.provider_name}",
                provider=self.provider_name,
            )

    def _require_streaming(self) -> None:
        if not self.profile.supports_streaming:
            raise UnsupportedCapabilityError(
                f"{self.provider_name} does not support streaming",
                provider=self.provider_name,
            )

    def _require_tool_support(self) -> None:
        if not self.profile.supports_tool_calls:
            raise UnsupportedCapabilityError(
                f"Model {self.model_id} does not support tool calls",
                provider=self.provider_name,
                capability=self.model_id,
            )

    def _build_streamed(self, assembler: MessageAssembler) -> Message:
        """Return the streamed message, raising if the stream was cut off.

        Raises:
            TransportError: If the stream ended before its terminal frame
        """
        if not assembler.complete:
            raise TransportError(
                "Stream ended before the response was complete",
                provider=self.provider_name,
            )
        return assembler.build()

    async def fetch_available_models(self) -> list[Model]:
        return list(self.profile.available_models)

    async def close(self) -> None:
        pass


class HttpProviderAdapter(BaseProviderAdapter):
    """Shared engine for adapters talking to a vendor REST API over httpx.

    Subclasses provide the vendor dialect: headers, URLs, payload building,
    response parsing and the model list parser.
    """

    decoder_class: type[StreamDecoder] = StreamDecoder

    def __init__(
        self,
        profile: ProviderProfile,
        *,
        base_url: str,
        api_key: str | None = None,
        timeout: float = 60.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the adapter.

        Args:
            profile: The provider profile (default model list included)
            base_url: Vendor API base URL
            api_key: Optional credential
            timeout: Request timeout in seconds
            client: Optional shared httpx client (tests inject a MockTransport)
        """
        super().__init__(profile, api_key)
        self.base_url = base_url.rstrip("/")
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)

    # --- vendor dialect hooks ---

    def _headers(self) -> dict[str, str]:
        raise NotImplementedError

    def _completion_url(self, stream: bool) -> str:
        raise NotImplementedError

    def _models_url(self) -> str:
        raise NotImplementedError

    def _build_payload(
        self,
        conversation: Conversation,
        system_prompt: str | None,
        capabilities: Sequence[CapabilityDescriptor] | None,
        stream: bool,
    ) -> dict[str, Any]:
        raise NotImplementedError

    def _parse_response(self, data: dict[str, Any]) -> Message:
        raise NotImplementedError

    def _parse_models(self, data: Any) -> list[Model]:
        raise NotImplementedError

    # --- operations ---

    async def send_message(
        self, conversation: Conversation, system_prompt: str | None = None
    ) -> Message:
        self._require_api_key()
        payload = self._build_payload(conversation, system_prompt, None, stream=False)
        data = await self._post_json(self._completion_url(stream=False), payload)
        return self._parse_message(data)

    async def send_message_with_tools(
        self,
        conversation: Conversation,
        capabilities: Sequence[CapabilityDescriptor],
        system_prompt: str | None = None,
    ) -> Message:
        self._require_api_key()
        self._require_tool_support()
        payload = self._build_payload(
            conversation, system_prompt, list(capabilities), stream=False
        )
        data = await self._post_json(self._completion_url(stream=False), payload)
        return self._parse_message(data)

    async def send_message_streaming(
        self,
        conversation: Conversation,
        system_prompt: str | None = None,
        on_delta: DeltaCallback | None = None,
    ) -> Message:
        self._require_api_key()
        self._require_streaming()
        payload = self._build_payload(conversation, system_prompt, None, stream=True)
        assembler = MessageAssembler(model=self.model_id)

        async for event in self._stream_events(self._completion_url(stream=True), payload):
            text = assembler.feed(event)
            if text:
                await emit_delta(on_delta, text)

        return self._build_streamed(assembler)

    async def fetch_available_models(self) -> list[Model]:
        """Refresh the model list from the vendor.

        Best effort: without a credential, or on any failure, the cached list
        is returned unchanged.
        """
        if self.profile.requires_api_key and not self.has_api_key:
            return list(self.profile.available_models)

        try:
            data = await self._get_json(self._models_url())
            models = self._parse_models(data)
        except (GatewayError, KeyError, TypeError, ValueError) as e:
            logger.warning(f"Failed to fetch models for {self.provider_name}: {e}")
            return list(self.profile.available_models)

        if not models:
            logger.warning(f"{self.provider_name} returned no usable models, keeping cache")
            return list(self.profile.available_models)

        self.profile.replace_models(models)
        logger.info(f"Fetched {len(models)} models for {self.provider_name}")
        return list(models)

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()
        logger.debug(f"Provider {self.provider_name} closed")

    # --- HTTP plumbing ---

    def _parse_message(self, data: dict[str, Any]) -> Message:
        try:
            return self._parse_response(data)
        except GatewayError:
            raise
        except (KeyError, IndexError, TypeError, ValueError, AttributeError) as e:
            raise ProtocolError(
                f"Unexpected response shape: {e}", provider=self.provider_name
            ) from e

    def _raise_for_status(self, response: httpx.Response) -> None:
        status = response.status_code
        if status < 400:
            return
        message = error_message(response)
        if status in (401, 403):
            raise AuthError(message, provider=self.provider_name, status_code=status)
        if status in RETRYABLE_STATUS_CODES or status >= 500:
            raise TransportError(message, provider=self.provider_name, status_code=status)
        raise ProtocolError(message, provider=self.provider_name, status_code=status)

    def _decode_body(self, response: httpx.Response) -> Any:
        try:
            return response.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise ProtocolError(
                f"Invalid JSON in response: {e}",
                provider=self.provider_name,
                status_code=response.status_code,
            ) from e

    async def _post_json(self, url: str, payload: dict[str, Any]) -> Any:
        logger.debug(f"POST {url} ({self.provider_name}, model={payload.get('model')})")
        try:
            response = await self._client.post(url, json=payload, headers=self._headers())
        except httpx.HTTPError as e:
            raise TransportError(
                f"Request failed: {e}", provider=self.provider_name
            ) from e
        self._raise_for_status(response)
        return self._decode_body(response)

    async def _get_json(self, url: str) -> Any:
        try:
            response = await self._client.get(url, headers=self._headers())
        except httpx.HTTPError as e:
            raise TransportError(
                f"Request failed: {e}", provider=self.provider_name
            ) from e
        self._raise_for_status(response)
        return self._decode_body(response)

    async def _stream_events(
        self, url: str, payload: dict[str, Any]
    ) -> AsyncIterator[StreamEvent]:
        """POST a streaming request and yield decoded events.

        Leaving the generator (normally, on error or on cancellation) closes
        the response and stops the network read.
        """
        decoder = self.decoder_class()
        try:
            async with self._client.stream(
                "POST", url, json=payload, headers=self._headers()
            ) as response:
                if response.status_code >= 400:
                    await response.aread()
                    self._raise_for_status(response)
                async for event in decoder.decode_lines(response.aiter_lines()):
                    yield event
        except httpx.HTTPError as e:
            raise TransportError(
                f"Stream failed: {e}", provider=self.provider_name
            ) from e
