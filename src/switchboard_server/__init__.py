"""switchboard-server: Multi-provider LLM gateway with tool calling.

This package provides a REST API and SSE streaming interface that routes
conversations to OpenAI, Anthropic, Google, OpenRouter, Meta and Ollama
models, and executes the tools those models request.
"""

__version__ = "0.1.0"

from switchboard_server.app import create_app  # noqa: E402

__all__ = ["create_app", "__version__"]
