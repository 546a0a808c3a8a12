# config.py
# Configuration values consumed by the orchestration core.
#
# Values come from the environment (optionally seeded from a .env file).
# Anything invalid raises ConfigurationError before a plan is ever created.

import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from agent_orchestrator.errors import ConfigurationError
from agent_orchestrator.models import FailurePolicy

ENV_PREFIX = "AGENT_"

_API_KEY_FALLBACKS = {
    "openai": ("OPENROUTER_API_KEY", "OPENAI_API_KEY"),
    "anthropic": ("ANTHROPIC_API_KEY",),
}

# Model ids differ per vendor: OpenRouter namespaces them, Anthropic does not.
DEFAULT_MODELS = {
    "openai": "anthropic/claude-3.5-haiku",
    "anthropic": "claude-3-5-haiku-latest",
}


class AgentConfig(BaseModel):
    """Everything an Agent session needs besides its collaborators."""

    provider: str = Field(default="openai", pattern="^(openai|anthropic)$")
    model: str = Field(default="", description="Empty selects the provider's default model.")
    api_key: str = ""
    base_url: str | None = "https://openrouter.ai/api/v1"
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    max_tokens: int = Field(default=4096, gt=0)

    memory_token_budget: int = Field(default=8000, gt=0)
    context_tokens: int | None = Field(default=None, gt=0)

    failure_policy: FailurePolicy = FailurePolicy.ABORT
    planning_retries: int = Field(default=2, ge=0)
    tool_timeout: float | None = Field(default=None, gt=0)
    cancellation_timeout: float = Field(default=5.0, ge=0)

    allowed_roots: list[Path] = Field(default_factory=lambda: [Path(".")])
    rate_limit_max_calls: int = Field(default=10, gt=0)
    rate_limit_interval: float = Field(default=60.0, gt=0)

    log_level: str = "INFO"

    @field_validator("allowed_roots", mode="before")
    @classmethod
    def _split_roots(cls, value):
        if isinstance(value, str):
            return [part for part in value.split(os.pathsep) if part]
        return value

    @field_validator("log_level")
    @classmethod
    def _known_level(cls, value: str) -> str:
        level = value.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"unknown log level {value!r}")
        return level

    @model_validator(mode="after")
    def _default_model(self) -> "AgentConfig":
        if not self.model:
            self.model = DEFAULT_MODELS[self.provider]
        return self

    @classmethod
    def build(cls, **values) -> "AgentConfig":
        """Validate values, converting pydantic errors to ConfigurationError."""
        try:
            return cls(**values)
        except ValidationError as exc:
            raise ConfigurationError(f"Invalid configuration: {exc}") from exc

    @classmethod
    def from_env(cls, env_file: str | Path | None = None) -> "AgentConfig":
        """
        Load AGENT_* variables, e.g. AGENT_MODEL or AGENT_FAILURE_POLICY.

        AGENT_ALLOWED_ROOTS is split on os.pathsep. When AGENT_API_KEY is
        unset the provider's conventional key variable is used.
        """
        load_dotenv(env_file)

        values: dict = {}
        for name in cls.model_fields:
            raw = os.getenv(f"{ENV_PREFIX}{name.upper()}")
            if raw is not None and raw != "":
                values[name] = raw

        if "api_key" not in values:
            provider = values.get("provider", "openai")
            for variable in _API_KEY_FALLBACKS.get(provider, ()):
                if os.getenv(variable):
                    values["api_key"] = os.getenv(variable)
                    break

        return cls.build(**values)

    def require_credentials(self) -> None:
        if not self.api_key.strip():
            raise ConfigurationError(
                f"No API key configured for provider '{self.provider}'. "
                f"Set {ENV_PREFIX}API_KEY or one of: {', '.join(_API_KEY_FALLBACKS[self.provider])}."
            )
