"""Configuration module for switchboard-server using pydantic-settings."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class SwitchboardSettings(BaseSettings):
    """Main configuration settings for switchboard-server.

    All settings can be overridden via environment variables with the
    SWITCHBOARD_ prefix. For example, SWITCHBOARD_OPENAI_API_KEY will override
    the openai_api_key setting. List settings take JSON values, e.g.
    SWITCHBOARD_CAPABILITY_PROVIDERS='["my_tools:provider"]'.
    """

    # Server
    host: str = "127.0.0.1"
    port: int = 8000

    # Providers
    default_provider: str | None = None
    request_timeout: float = 60.0

    openai_api_key: str | None = None
    openai_base_url: str = "https://api.openai.com/v1"

    anthropic_api_key: str | None = None
    anthropic_base_url: str = "https://api.anthropic.com/v1"
    anthropic_max_tokens: int = 4096

    google_api_key: str | None = None
    google_base_url: str = "https://generativelanguage.googleapis.com/v1beta"

    openrouter_api_key: str | None = None
    openrouter_base_url: str = "https://openrouter.ai/api/v1"
    openrouter_referer: str | None = None
    openrouter_title: str = "switchboard-server"

    meta_api_key: str | None = None
    meta_base_url: str = "https://llama.meta.ai/v1"

    ollama_enabled: bool = True
    ollama_host: str = "http://localhost:11434"
    ollama_default_model: str | None = None

    # Model refresh (seconds, 0 disables the periodic refresh)
    model_refresh_interval: float = 24 * 60 * 60

    # Tool loop
    max_tool_iterations: int = 10
    transport_retries: int = 1
    transport_retry_backoff: float = 0.5

    # In-process capability providers ("package.module:attribute")
    capability_providers: list[str] = Field(default_factory=list)

    # Tool server helper process
    tool_server_enabled: bool = True
    tool_server_autostart: bool = False
    tool_server_host: str = "127.0.0.1"
    tool_server_port: int = 3000
    tool_server_probe_interval: float = 0.5
    tool_server_max_probe_attempts: int = 10
    tool_server_shutdown_grace: float = 3.0
    tool_server_providers: list[str] = Field(default_factory=list)

    # CORS
    cors_origins: list[str] = Field(default_factory=lambda: ["*"])

    # Logging
    log_level: str = "INFO"

    model_config = SettingsConfigDict(env_prefix="SWITCHBOARD_")

    @property
    def tool_server_url(self) -> str:
        """Get the base URL of the tool server helper."""
        return f"http://{self.tool_server_host}:{self.tool_server_port}"
