# llm.py
# Completion providers consumed by the Planner (and the model-review
# guardrail). Each maps vendor failures onto ProviderError; retry and
# backoff stay with the vendor SDK / transport, never with the core.

import logging
from abc import ABC, abstractmethod
from collections.abc import Sequence

import httpx
import openai
from openai import OpenAI

from agent_orchestrator.errors import ProviderError, ProviderErrorKind
from agent_orchestrator.models import CompletionOptions, Message, Role

logger = logging.getLogger(__name__)

OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"
ANTHROPIC_URL = "https://api.anthropic.com/v1/messages"
ANTHROPIC_VERSION = "2023-06-01"


class CompletionProvider(ABC):
    """An LLM completion service: ordered messages in, one assistant message out."""

    model: str = ""
    temperature: float = 0.7
    max_tokens: int = 4096

    @abstractmethod
    def complete(self, messages: Sequence[Message], options: CompletionOptions | None = None) -> Message:
        ...

    def _options(self, options: CompletionOptions | None) -> CompletionOptions:
        """Fill unset options from the provider defaults."""
        if options is None:
            return CompletionOptions(model=self.model, temperature=self.temperature, max_tokens=self.max_tokens)
        if not options.model:
            return options.model_copy(update={"model": self.model})
        return options


def _status_kind(status: int) -> ProviderErrorKind:
    if status == 429:
        return ProviderErrorKind.RATE_LIMITED
    if status in (408, 504):
        return ProviderErrorKind.TIMEOUT
    if 400 <= status < 500:
        return ProviderErrorKind.INVALID_REQUEST
    return ProviderErrorKind.UNAVAILABLE


# ---------------------------------------------------------------------------
# OpenAI-compatible (OpenAI, OpenRouter, vLLM, Ollama ...)
# ---------------------------------------------------------------------------


class OpenAIProvider(CompletionProvider):
    """Chat Completions via the openai SDK. Defaults to OpenRouter."""

    def __init__(
        self,
        api_key: str,
        model: str,
        base_url: str | None = OPENROUTER_BASE_URL,
        temperature: float = 0.7,
        max_tokens: int = 4096,
        timeout: float | None = None,
        client: OpenAI | None = None,
    ) -> None:
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self._client = client or OpenAI(base_url=base_url, api_key=api_key, timeout=timeout)

    def complete(self, messages: Sequence[Message], options: CompletionOptions | None = None) -> Message:
        options = self._options(options)
        try:
            response = self._client.chat.completions.create(
                model=options.model,
                messages=[{"role": m.role.value, "content": m.content} for m in messages],
                temperature=options.temperature,
                max_tokens=options.max_tokens,
            )
        except openai.APITimeoutError as exc:
            raise ProviderError(ProviderErrorKind.TIMEOUT, f"OpenAI request timed out: {exc}") from exc
        except openai.APIConnectionError as exc:
            raise ProviderError(ProviderErrorKind.UNAVAILABLE, f"OpenAI connection error: {exc}") from exc
        except openai.RateLimitError as exc:
            raise ProviderError(ProviderErrorKind.RATE_LIMITED, "OpenAI rate limit exceeded.") from exc
        except openai.APIStatusError as exc:
            kind = _status_kind(exc.status_code)
            raise ProviderError(kind, f"OpenAI HTTP {exc.status_code} error: {exc.message}") from exc

        if not response.choices or response.choices[0].message.content is None:
            raise ProviderError(ProviderErrorKind.UNAVAILABLE, "OpenAI response contained no content.")
        return Message.assistant(response.choices[0].message.content.strip())


# ---------------------------------------------------------------------------
# Anthropic Messages API
# ---------------------------------------------------------------------------


def split_system(messages: Sequence[Message]) -> tuple[str | None, list[dict]]:
    """
    Separate system messages (joined by blank lines) from the
    user/assistant turns the Messages API expects in its array.
    """
    system_parts: list[str] = []
    turns: list[dict] = []
    for message in messages:
        if message.role is Role.SYSTEM:
            system_parts.append(message.content)
        else:
            turns.append({"role": message.role.value, "content": message.content})
    return ("\n\n".join(system_parts) if system_parts else None), turns


class AnthropicProvider(CompletionProvider):
    """Messages API over httpx."""

    def __init__(
        self,
        api_key: str,
        model: str,
        temperature: float = 0.7,
        max_tokens: int = 4096,
        timeout: float = 60.0,
        client: httpx.Client | None = None,
    ) -> None:
        self._api_key = api_key
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self._client = client or httpx.Client(timeout=timeout)

    def complete(self, messages: Sequence[Message], options: CompletionOptions | None = None) -> Message:
        options = self._options(options)
        system, turns = split_system(messages)
        body: dict = {
            "model": options.model,
            "messages": turns,
            "temperature": options.temperature,
            "max_tokens": options.max_tokens,
        }
        if system is not None:
            body["system"] = system

        try:
            response = self._client.post(
                ANTHROPIC_URL,
                json=body,
                headers={
                    "x-api-key": self._api_key,
                    "anthropic-version": ANTHROPIC_VERSION,
                    "content-type": "application/json",
                },
            )
        except httpx.TimeoutException as exc:
            raise ProviderError(ProviderErrorKind.TIMEOUT, f"Anthropic API request timeout: {exc}") from exc
        except httpx.TransportError as exc:
            raise ProviderError(ProviderErrorKind.UNAVAILABLE, f"Anthropic API connection error: {exc}") from exc

        if response.status_code == 401:
            raise ProviderError(
                ProviderErrorKind.INVALID_REQUEST, "Anthropic API authentication failed: invalid API key."
            )
        if response.is_error:
            raise ProviderError(
                _status_kind(response.status_code),
                f"Anthropic API HTTP {response.status_code} error: {response.text}",
            )

        try:
            content = response.json().get("content") or []
        except ValueError as exc:
            raise ProviderError(ProviderErrorKind.UNAVAILABLE, f"Failed to decode Anthropic response: {exc}") from exc
        if not content or "text" not in content[0]:
            raise ProviderError(ProviderErrorKind.UNAVAILABLE, "Anthropic response contained no content.")
        return Message.assistant(content[0]["text"])
