"""Configuration schema for the conversation server.

Defines Pydantic models for loading and validating server configuration
from YAML files and environment variables.
"""

import json
import os
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator

from src.palooza.errors import ConfigurationError


class WebSocketConfig(BaseModel):
    """Client websocket transport configuration."""

    host: str = Field(default="0.0.0.0", description="Bind host address")  # noqa: S104
    port: int = Field(default=5001, ge=1024, le=65535, description="Bind port")
    path: str = Field(default="/client/socket", description="Websocket endpoint path")
    max_connections: int = Field(default=100, ge=1, description="Maximum concurrent connections")
    max_message_bytes: int = Field(
        default=5 * 1024 * 1024, ge=1024, description="Maximum inbound message size"
    )


class TransportConfig(BaseModel):
    """Transport layer configuration."""

    websocket: WebSocketConfig = Field(default_factory=WebSocketConfig)


class HttpConfig(BaseModel):
    """Side HTTP app (health, catalog, summary) configuration."""

    enabled: bool = Field(default=True, description="Serve the HTTP API")
    host: str = Field(default="127.0.0.1", description="Bind host address")
    port: int | None = Field(
        default=None,
        ge=1024,
        le=65535,
        description="Bind port (defaults to websocket port + 1)",
    )


class BackendConfig(BaseModel):
    """Gemini Live dialog backend configuration."""

    api_key: str | None = Field(default=None, description="Google AI API key")
    advanced_mode: bool = Field(
        default=True, description="Use the native-audio dialog model and extended voices"
    )
    model: str = Field(default="gemini-2.0-flash-live-001", description="Live model (basic)")
    advanced_model: str = Field(
        default="gemini-2.5-flash-preview-native-audio-dialog",
        description="Live model (advanced mode)",
    )
    summary_model: str = Field(
        default="gemini-2.5-flash-preview-05-20", description="Text model for summaries"
    )
    prefix_padding_ms: int = Field(default=100, ge=0, description="VAD prefix padding")
    silence_duration_ms: int = Field(default=1000, ge=0, description="VAD silence timeout")
    output_sample_rate: int = Field(
        default=24000, gt=0, description="Native sample rate of synthesized audio"
    )
    target_sample_rate: int = Field(
        default=16000, gt=0, description="Sample rate of audio relayed and cross-fed"
    )
    stop_tool_name: str = Field(
        default="conversationStopped",
        min_length=1,
        description="Function the backend calls to end the conversation",
    )

    @property
    def live_model(self) -> str:
        return self.advanced_model if self.advanced_mode else self.model

    def require_api_key(self) -> str:
        """Return the API key.

        Raises:
            ConfigurationError: If no API key is configured
        """
        if not self.api_key:
            raise ConfigurationError(
                "GOOGLE_AI_API_KEY is not set. "
                "Resolution: export GOOGLE_AI_API_KEY or set backend.api_key in the config file."
            )
        return self.api_key


class CatalogConfig(BaseModel):
    """Persona and style catalog configuration."""

    personas_path: Path | None = Field(default=None, description="Personas JSON/YAML file")
    styles_path: Path | None = Field(default=None, description="Styles JSON/YAML file")
    popular_topics: list[str] = Field(default_factory=list, description="Suggested topics")


class ConversationConfig(BaseModel):
    """Conversation protocol configuration."""

    first_speaker: Literal["a", "b"] = Field(
        default="b", description="Side that receives the scripted greeting and speaks first"
    )
    greeting_template: str = Field(
        default="Hello, {name}!", description="Opening line; {name} is the greeted persona"
    )
    wrap_up_message: str = Field(
        default="Unfortunately our time is up we need to wrap up this conversation.",
        description="Cue sent to the other side on a cooperative stop",
    )
    idle_timeout_s: float | None = Field(
        default=None,
        gt=0,
        description="Tear down a conversation with no backend activity (None disables)",
    )

    @field_validator("greeting_template")
    @classmethod
    def validate_greeting_template(cls, v: str) -> str:
        """Validate that the greeting names the greeted persona."""
        if "{name}" not in v:
            raise ValueError("greeting_template must contain a {name} placeholder")
        return v


class AuthConfig(BaseModel):
    """Client authentication configuration."""

    enabled: bool = Field(default=True, description="Require a bearer token")
    tokens: dict[str, str] = Field(
        default_factory=dict, description="Static token → user id map"
    )


class PaloozaConfig(BaseModel):
    """Root server configuration."""

    transport: TransportConfig = Field(default_factory=TransportConfig)
    http: HttpConfig = Field(default_factory=HttpConfig)
    backend: BackendConfig = Field(default_factory=BackendConfig)
    catalog: CatalogConfig = Field(default_factory=CatalogConfig)
    conversation: ConversationConfig = Field(default_factory=ConversationConfig)
    auth: AuthConfig = Field(default_factory=AuthConfig)

    # Operational settings
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR)",
    )
    graceful_shutdown_timeout_s: int = Field(
        default=10,
        ge=1,
        description="Graceful shutdown timeout in seconds",
    )

    @property
    def http_port(self) -> int:
        return self.http.port or self.transport.websocket.port + 1

    @classmethod
    def from_yaml(cls, path: Path) -> "PaloozaConfig":
        """Load configuration from YAML file with environment variable overrides.

        Args:
            path: Path to YAML configuration file

        Returns:
            Loaded configuration

        Raises:
            FileNotFoundError: If configuration file doesn't exist
            ValueError: If YAML is invalid or validation fails
        """
        import yaml  # type: ignore[import-untyped]

        if not path.exists():
            raise FileNotFoundError(f"Configuration file not found: {path}")

        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

        return cls.model_validate(apply_env_overrides(data))

    @classmethod
    def from_yaml_with_defaults(cls, path: Path | None = None) -> "PaloozaConfig":
        """Load configuration from YAML or use defaults if file doesn't exist.

        Environment overrides apply in both cases.

        Args:
            path: Optional path to YAML configuration file

        Returns:
            Loaded configuration or defaults
        """
        if path is not None and path.exists():
            return cls.from_yaml(path)

        return cls.model_validate(apply_env_overrides({}))


def _section(data: dict[str, Any], *keys: str) -> dict[str, Any]:
    for key in keys:
        data = data.setdefault(key, {})
    return data


def apply_env_overrides(data: dict[str, Any]) -> dict[str, Any]:
    """Apply environment variable overrides to raw configuration data.

    Recognized variables: GOOGLE_AI_API_KEY, GEMINI_ADVANCED_MODE, GEMINI_MODEL,
    GEMINI_MODEL_ADVANCED, PERSONAS, STYLES, POPULAR_TOPICS, PORT, LOG_LEVEL.

    Raises:
        ValueError: If POPULAR_TOPICS is not a JSON list
    """
    if api_key := os.getenv("GOOGLE_AI_API_KEY"):
        _section(data, "backend")["api_key"] = api_key

    if advanced := os.getenv("GEMINI_ADVANCED_MODE"):
        _section(data, "backend")["advanced_mode"] = advanced.lower() == "true"

    if model := os.getenv("GEMINI_MODEL"):
        _section(data, "backend")["model"] = model

    if advanced_model := os.getenv("GEMINI_MODEL_ADVANCED"):
        _section(data, "backend")["advanced_model"] = advanced_model

    if personas := os.getenv("PERSONAS"):
        _section(data, "catalog")["personas_path"] = personas

    if styles := os.getenv("STYLES"):
        _section(data, "catalog")["styles_path"] = styles

    if topics := os.getenv("POPULAR_TOPICS"):
        parsed = json.loads(topics)
        if not isinstance(parsed, list):
            raise ValueError("POPULAR_TOPICS must be a JSON list of strings")
        _section(data, "catalog")["popular_topics"] = parsed

    if port := os.getenv("PORT"):
        _section(data, "transport", "websocket")["port"] = int(port)

    if log_level := os.getenv("LOG_LEVEL"):
        data["log_level"] = log_level

    return data
