"""
Tests for the provider layer: error classification, retries and the
structured-output fallback ladder
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest
from langchain_core.messages import AIMessage, HumanMessage

from pokedm.errors import GenerationError
from pokedm.config import settings
from pokedm.providers import create_provider
from pokedm.providers.base import message_text
from pokedm.providers.generic import GenericProvider
from pokedm.providers.openai import OpenAIProvider
from pokedm.providers.retry import RetryPolicy, classify_provider_error, retry_with_backoff
from pokedm.providers.structured import (
    extract_first_json_object,
    parse_structured_output,
    strip_code_fences,
)

SCHEMA = {
    "type": "object",
    "properties": {"intent": {"type": "string"}, "confidence": {"type": "number"}},
    "required": ["intent", "confidence"],
}


class StatusError(Exception):
    def __init__(self, message, status_code=None, headers=None):
        super().__init__(message)
        self.status_code = status_code
        self.response = MagicMock(status_code=status_code, headers=headers or {})


class TestErrorClassification:
    """Test retryable vs non-retryable classification"""

    def test_rate_limit_is_retryable(self):
        error = classify_provider_error(StatusError("Too Many Requests", 429, {"retry-after": "7"}))
        assert error.retryable is True
        assert error.retry_after == 7.0

    def test_retry_hint_in_message(self):
        error = classify_provider_error(Exception("Rate limit reached. Please retry in 2.5s"))
        assert error.retryable is True
        assert error.retry_after == 2.5

    @pytest.mark.parametrize(
        "exc",
        [
            StatusError("model gpt-x does not exist", 404),
            StatusError("bad request", 400),
            Exception("response_format json_schema is not supported"),
        ],
    )
    def test_model_errors_are_not_retryable(self, exc):
        assert classify_provider_error(exc, model="gpt-x").retryable is False

    @pytest.mark.parametrize(
        "exc",
        [
            StatusError("upstream failure", 503),
            asyncio.TimeoutError(),
            ConnectionError("reset by peer"),
            Exception("Request timed out"),
        ],
    )
    def test_transient_errors_are_retryable(self, exc):
        assert classify_provider_error(exc).retryable is True

    def test_unknown_errors_are_not_retryable(self):
        assert classify_provider_error(ValueError("weird")).retryable is False


class TestRetryWithBackoff:
    """Test exponential backoff"""

    def test_delays_grow_and_cap(self):
        policy = RetryPolicy(max_attempts=5, initial_delay=1.0, max_delay=3.0, multiplier=2.0)
        error = GenerationError("x", retryable=True)
        assert [policy.delay_for(n, error) for n in (1, 2, 3)] == [1.0, 2.0, 3.0]

    def test_retry_after_wins(self):
        policy = RetryPolicy(max_delay=10.0)
        assert policy.delay_for(1, GenerationError("x", retryable=True, retry_after=4.0)) == 4.0
        assert policy.delay_for(1, GenerationError("x", retryable=True, retry_after=60.0)) == 10.0

    @pytest.mark.asyncio
    async def test_retries_then_succeeds(self):
        call = AsyncMock(side_effect=[GenerationError("busy", retryable=True), "ok"])
        sleep = AsyncMock()
        result = await retry_with_backoff(call, RetryPolicy(max_attempts=3, initial_delay=0.5), sleep=sleep)

        assert result == "ok"
        assert call.await_count == 2
        sleep.assert_awaited_once_with(0.5)

    @pytest.mark.asyncio
    async def test_non_retryable_raises_immediately(self):
        call = AsyncMock(side_effect=GenerationError("no such model", retryable=False))
        with pytest.raises(GenerationError):
            await retry_with_backoff(call, RetryPolicy(max_attempts=3), sleep=AsyncMock())
        assert call.await_count == 1

    @pytest.mark.asyncio
    async def test_gives_up_after_max_attempts(self):
        call = AsyncMock(side_effect=GenerationError("busy", retryable=True))
        with pytest.raises(GenerationError, match="busy"):
            await retry_with_backoff(call, RetryPolicy(max_attempts=3), sleep=AsyncMock())
        assert call.await_count == 3


class TestStructuredLadder:
    """Test the text fallback ladder"""

    def test_strict_parse(self):
        parsed = parse_structured_output('{"intent": "lore", "confidence": 0.9}', SCHEMA)
        assert parsed.stage == "strict"
        assert parsed.data["intent"] == "lore"

    def test_code_fences_stripped(self):
        assert strip_code_fences('```json\n{"a": 1}\n```') == '{"a": 1}'
        parsed = parse_structured_output('```json\n{"intent": "roll", "confidence": 1}\n```', SCHEMA)
        assert parsed.stage == "strict"

    def test_embedded_object_extracted(self):
        content = 'Sure! Here you go: {"intent": "state", "confidence": 0.4} Hope that helps.'
        parsed = parse_structured_output(content, SCHEMA)
        assert parsed.stage == "extracted"
        assert parsed.data == {"intent": "state", "confidence": 0.4}

    def test_braces_inside_strings(self):
        text = 'note {"label": "a } tricky {", "n": 1} trailing'
        assert extract_first_json_object(text) == '{"label": "a } tricky {", "n": 1}'

    def test_skips_unbalanced_prefix(self):
        assert extract_first_json_object('{ oops {"n": 1}') == '{"n": 1}'
        assert extract_first_json_object("no json here") is None

    def test_nonconforming_object_falls_back(self):
        """Parseable JSON that breaks the schema is not accepted"""
        fallback = {"intent": "narration", "confidence": 0.0}
        parsed = parse_structured_output('{"intent": "lore"}', SCHEMA, fallback)
        assert parsed.stage == "fallback"
        assert parsed.data == fallback

    def test_prose_falls_back(self):
        parsed = parse_structured_output("Just some prose.", SCHEMA, {"intent": "narration", "confidence": 0})
        assert parsed.stage == "fallback"

    def test_arrays_are_not_objects(self):
        parsed = parse_structured_output("[1, 2]", None, {"ok": False})
        assert parsed.data == {"ok": False}


class TestProviders:
    """Test provider wrappers without a network"""

    @pytest.mark.asyncio
    async def test_chat_wraps_provider_errors(self, make_provider):
        provider = make_provider([ConnectionError("connection reset")])
        with pytest.raises(GenerationError) as exc_info:
            await provider.chat([HumanMessage(content="hi")])
        assert exc_info.value.retryable is True
        assert exc_info.value.model == "fake-model"

    @pytest.mark.asyncio
    async def test_health_check(self, make_provider):
        assert await make_provider(["pong"]).health_check() is True
        assert await make_provider([]).health_check() is False

    @pytest.mark.asyncio
    async def test_generic_provider_drops_json_mode(self):
        provider = GenericProvider("http://localhost:1234/v1", "", "local-model")
        json_llm = MagicMock()
        json_llm.ainvoke = AsyncMock(side_effect=Exception("response_format is not supported"))
        llm = MagicMock()
        llm.bind.return_value = json_llm
        llm.ainvoke = AsyncMock(return_value=AIMessage(content='{"intent": "lore", "confidence": 1}'))
        provider.llm = llm

        response = await provider.chat([HumanMessage(content="hi")], json_schema=SCHEMA)

        assert provider.json_mode is False
        assert response.structured is None
        assert response.content == '{"intent": "lore", "confidence": 1}'
        llm.bind.assert_called_once_with(response_format={"type": "json_object"})
        sent = llm.ainvoke.await_args.args[0]
        assert "JSON Schema" in sent[-1].content

    def test_message_text_flattens_blocks(self):
        message = AIMessage(content=[{"type": "text", "text": "Hello "}, {"type": "text", "text": "there"}])
        assert message_text(message) == "Hello there"


class TestProviderFactory:
    def test_generic(self, monkeypatch):
        monkeypatch.setattr(settings, "model_provider", "generic")
        monkeypatch.setattr(settings, "openai_api_base", "http://localhost:1234/v1")
        provider = create_provider("local-model")

        assert isinstance(provider, GenericProvider)
        assert provider.model_name == "local-model"

    def test_openai_uses_configured_model(self, monkeypatch):
        monkeypatch.setattr(settings, "model_provider", "openai")
        monkeypatch.setattr(settings, "openai_api_key", "sk-test")
        provider = create_provider()

        assert isinstance(provider, OpenAIProvider)
        assert provider.model_name == settings.model_name

    def test_unknown_provider(self, monkeypatch):
        monkeypatch.setattr(settings, "model_provider", "carrier-pigeon")
        with pytest.raises(ValueError):
            create_provider()
