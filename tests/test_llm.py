import json
from unittest.mock import MagicMock

import httpx
import openai
import pytest

from agent_orchestrator.errors import ProviderError, ProviderErrorKind
from agent_orchestrator.llm import ANTHROPIC_URL, AnthropicProvider, OpenAIProvider, split_system
from agent_orchestrator.models import CompletionOptions, Message, Role

MESSAGES = [
    Message.system("be brief"),
    Message.system("plan carefully"),
    Message.user("add 2 and 3"),
]


# ---------------------------------------------------------------------------
# OpenAI-compatible
# ---------------------------------------------------------------------------

def _openai_client(content="  <plan>{}</plan>  "):
    client = MagicMock()
    choice = MagicMock()
    choice.message.content = content
    client.chat.completions.create.return_value = MagicMock(choices=[choice])
    return client

def test_openai_complete_uses_provider_defaults():
    client = _openai_client()
    provider = OpenAIProvider(api_key="k", model="m-1", temperature=0.2, max_tokens=100, client=client)

    reply = provider.complete(MESSAGES)

    assert reply.role is Role.ASSISTANT
    assert reply.content == "<plan>{}</plan>"
    kwargs = client.chat.completions.create.call_args.kwargs
    assert kwargs["model"] == "m-1"
    assert kwargs["temperature"] == 0.2
    assert kwargs["max_tokens"] == 100
    assert kwargs["messages"][0] == {"role": "system", "content": "be brief"}
    assert kwargs["messages"][-1] == {"role": "user", "content": "add 2 and 3"}

def test_openai_options_override_defaults():
    client = _openai_client()
    provider = OpenAIProvider(api_key="k", model="m-1", client=client)
    provider.complete(MESSAGES, CompletionOptions(temperature=0.0, max_tokens=10))

    kwargs = client.chat.completions.create.call_args.kwargs
    assert kwargs["model"] == "m-1"
    assert kwargs["temperature"] == 0.0
    assert kwargs["max_tokens"] == 10

def test_openai_empty_content():
    provider = OpenAIProvider(api_key="k", model="m", client=_openai_client(content=None))
    with pytest.raises(ProviderError) as excinfo:
        provider.complete(MESSAGES)
    assert excinfo.value.kind is ProviderErrorKind.UNAVAILABLE

_REQUEST = httpx.Request("POST", "https://openrouter.ai/api/v1/chat/completions")

@pytest.mark.parametrize(
    "error, kind",
    [
        (openai.APITimeoutError(request=_REQUEST), ProviderErrorKind.TIMEOUT),
        (openai.APIConnectionError(request=_REQUEST), ProviderErrorKind.UNAVAILABLE),
        (
            openai.RateLimitError("slow down", response=httpx.Response(429, request=_REQUEST), body=None),
            ProviderErrorKind.RATE_LIMITED,
        ),
        (
            openai.BadRequestError("bad", response=httpx.Response(400, request=_REQUEST), body=None),
            ProviderErrorKind.INVALID_REQUEST,
        ),
        (
            openai.InternalServerError("oops", response=httpx.Response(503, request=_REQUEST), body=None),
            ProviderErrorKind.UNAVAILABLE,
        ),
    ],
)
def test_openai_error_mapping(error, kind):
    client = MagicMock()
    client.chat.completions.create.side_effect = error
    provider = OpenAIProvider(api_key="k", model="m", client=client)

    with pytest.raises(ProviderError) as excinfo:
        provider.complete(MESSAGES)

    assert excinfo.value.kind is kind
    assert excinfo.value.__cause__ is error
    assert excinfo.value.retryable is (kind is not ProviderErrorKind.INVALID_REQUEST)


# ---------------------------------------------------------------------------
# Anthropic
# ---------------------------------------------------------------------------

def test_split_system():
    system, turns = split_system(MESSAGES)
    assert system == "be brief\n\nplan carefully"
    assert turns == [{"role": "user", "content": "add 2 and 3"}]
    assert split_system([Message.user("hi")])[0] is None

def _anthropic(handler) -> AnthropicProvider:
    client = httpx.Client(transport=httpx.MockTransport(handler))
    return AnthropicProvider(api_key="secret", model="claude-test", max_tokens=256, client=client)

def test_anthropic_request_and_reply():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["headers"] = request.headers
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"content": [{"type": "text", "text": "<plan>{}</plan>"}]})

    reply = _anthropic(handler).complete(MESSAGES)

    assert reply.content == "<plan>{}</plan>"
    assert seen["url"] == ANTHROPIC_URL
    assert seen["headers"]["x-api-key"] == "secret"
    assert seen["headers"]["anthropic-version"] == "2023-06-01"
    assert seen["body"]["model"] == "claude-test"
    assert seen["body"]["max_tokens"] == 256
    assert seen["body"]["system"] == "be brief\n\nplan carefully"
    assert seen["body"]["messages"] == [{"role": "user", "content": "add 2 and 3"}]

def test_anthropic_omits_system_when_absent():
    seen = {}

    def handler(request):
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"content": [{"text": "ok"}]})

    _anthropic(handler).complete([Message.user("hi")])
    assert "system" not in seen["body"]

@pytest.mark.parametrize(
    "status, kind",
    [
        (401, ProviderErrorKind.INVALID_REQUEST),
        (400, ProviderErrorKind.INVALID_REQUEST),
        (429, ProviderErrorKind.RATE_LIMITED),
        (504, ProviderErrorKind.TIMEOUT),
        (529, ProviderErrorKind.UNAVAILABLE),
    ],
)
def test_anthropic_status_mapping(status, kind):
    provider = _anthropic(lambda request: httpx.Response(status, text="error body"))
    with pytest.raises(ProviderError) as excinfo:
        provider.complete(MESSAGES)
    assert excinfo.value.kind is kind

def test_anthropic_transport_errors():
    def timeout(request):
        raise httpx.ReadTimeout("slow", request=request)

    def refused(request):
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(ProviderError) as excinfo:
        _anthropic(timeout).complete(MESSAGES)
    assert excinfo.value.kind is ProviderErrorKind.TIMEOUT

    with pytest.raises(ProviderError) as excinfo:
        _anthropic(refused).complete(MESSAGES)
    assert excinfo.value.kind is ProviderErrorKind.UNAVAILABLE

def test_anthropic_empty_content():
    provider = _anthropic(lambda request: httpx.Response(200, json={"content": []}))
    with pytest.raises(ProviderError) as excinfo:
        provider.complete(MESSAGES)
    assert excinfo.value.kind is ProviderErrorKind.UNAVAILABLE
