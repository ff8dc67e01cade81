"""Tests for the chat client: configuration checks and error translation."""
import asyncio

import httpx
import ollama
import pytest

from resume_review.config import Settings
from resume_review.errors import ConfigurationError, UpstreamError
from resume_review.llm_client import ChatClient
from resume_review.models import ChatMessage

MESSAGES = [
    ChatMessage(role="system", content="You are a reviewer."),
    ChatMessage(role="user", content="Review this."),
]


class FakeOllama:
    """Async stand-in for ollama.AsyncClient.chat."""

    def __init__(self, content="{}", error=None, delay=0.0):
        self.content = content
        self.error = error
        self.delay = delay
        self.requests = []

    async def chat(self, model, messages, options):
        self.requests.append({"model": model, "messages": messages, "options": options})
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return {"message": {"role": "assistant", "content": self.content}}


def _config(**overrides):
    values = {"llm_api_key": "test-key", "llm_model": "test-model", "llm_timeout_seconds": 1.0}
    values.update(overrides)
    return Settings(**values)


@pytest.mark.asyncio
async def test_chat_returns_content_and_sends_options():
    fake = FakeOllama(content='  {"overallScore": 1}  ')
    client = ChatClient(_config(), client=fake)

    text = await client.chat(MESSAGES, temperature=0.2, max_tokens=3000)

    assert text == '{"overallScore": 1}'
    request = fake.requests[0]
    assert request["model"] == "test-model"
    assert [m["role"] for m in request["messages"]] == ["system", "user"]
    assert request["options"] == {"temperature": 0.2, "num_predict": 3000}


@pytest.mark.asyncio
@pytest.mark.parametrize("overrides", [
    {"llm_api_key": None},
    {"llm_api_key": "your_api_key_here"},
    {"llm_model": None},
])
async def test_missing_configuration_fails_at_call_time(overrides):
    fake = FakeOllama()
    client = ChatClient(_config(**overrides), client=fake)

    with pytest.raises(ConfigurationError):
        await client.chat(MESSAGES)
    assert fake.requests == []


@pytest.mark.asyncio
@pytest.mark.parametrize("status,kind,retryable", [
    (401, "invalid_credentials", False),
    (429, "upstream_rate_limited", False),
    (400, "upstream_error", False),
    (503, "upstream_error", True),
])
async def test_status_codes_are_translated(status, kind, retryable):
    client = ChatClient(_config(), client=FakeOllama(error=ollama.ResponseError("boom", status)))

    with pytest.raises(UpstreamError) as exc_info:
        await client.chat(MESSAGES)

    assert exc_info.value.kind == kind
    assert exc_info.value.retryable is retryable
    if kind == "upstream_error":
        assert exc_info.value.status == status
        assert exc_info.value.body == "boom"


@pytest.mark.asyncio
async def test_timeout_aborts_call():
    client = ChatClient(_config(llm_timeout_seconds=0.05), client=FakeOllama(delay=1.0))

    with pytest.raises(UpstreamError) as exc_info:
        await client.chat(MESSAGES)

    assert exc_info.value.kind == "timeout"
    assert exc_info.value.retryable is True


@pytest.mark.asyncio
async def test_transport_timeout_is_timeout():
    client = ChatClient(_config(), client=FakeOllama(error=httpx.ReadTimeout("slow")))

    with pytest.raises(UpstreamError) as exc_info:
        await client.chat(MESSAGES)
    assert exc_info.value.kind == "timeout"


@pytest.mark.asyncio
async def test_connection_failure_is_unreachable():
    client = ChatClient(_config(), client=FakeOllama(error=ConnectionError("refused")))

    with pytest.raises(UpstreamError) as exc_info:
        await client.chat(MESSAGES)
    assert exc_info.value.kind == "unreachable"


@pytest.mark.asyncio
async def test_empty_content_is_an_error():
    client = ChatClient(_config(), client=FakeOllama(content="   "))

    with pytest.raises(UpstreamError) as exc_info:
        await client.chat(MESSAGES)
    assert exc_info.value.kind == "empty_response"
