"""Type definitions for LLM provider integration.

This module contains the dataclasses describing vendor models and the
per-vendor profile every adapter carries.
"""

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class Model:
    """Information about a vendor model.

    Attributes:
        id: Identifier sent to the vendor (e.g., "gpt-4o")
        name: Human-readable display name
        context_length: Maximum context window size in tokens
        supports_tool_calls: Whether the model accepts tool definitions
        supports_vision: Whether the model accepts image input
    """

    id: str
    name: str = ""
    context_length: int = 4096
    supports_tool_calls: bool = False
    supports_vision: bool = False

    def __post_init__(self) -> None:
        if not self.name:
            object.__setattr__(self, "name", self.id)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "context_length": self.context_length,
            "supports_tool_calls": self.supports_tool_calls,
            "supports_vision": self.supports_vision,
        }


@dataclass
class ProviderProfile:
    """Static capability flags plus the model state of one provider.

    The profile is constructed once per backend. Only the owning adapter
    mutates it, through set_model() / set_api_key() / model refresh.

    Attributes:
        name: Provider name (e.g., "openai")
        requires_api_key: Whether requests need a credential
        supports_streaming: Whether the vendor exposes a streaming endpoint
        available_models: Known models, refreshed best-effort
        current_model: The model requests are sent to
    """

    name: str
    requires_api_key: bool = True
    supports_streaming: bool = True
    available_models: list[Model] = field(default_factory=list)
    current_model: Model | None = None

    def __post_init__(self) -> None:
        if self.current_model is None and self.available_models:
            self.current_model = self.available_models[0]

    @property
    def supports_tool_calls(self) -> bool:
        return bool(self.current_model and self.current_model.supports_tool_calls)

    @property
    def supports_vision(self) -> bool:
        return bool(self.current_model and self.current_model.supports_vision)

    @property
    def context_window(self) -> int:
        return self.current_model.context_length if self.current_model else 0

    def find_model(self, model_id: str) -> Model | None:
        for model in self.available_models:
            if model.id == model_id:
                return model
        return None

    def replace_models(self, models: list[Model]) -> None:
        """Swap in a refreshed model list, keeping the current selection."""
        self.available_models = list(models)
        if self.current_model is None:
            self.current_model = models[0] if models else None
            return
        refreshed = self.find_model(self.current_model.id)
        if refreshed is not None:
            self.current_model = refreshed
