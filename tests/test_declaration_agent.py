"""Tests for the Gemini extraction agent (fake model, no network)."""

import asyncio
from unittest.mock import AsyncMock

import pytest
from google.api_core import exceptions as google_exceptions

from triad3.agents import (
    DeclarationExtractionAgent,
    EmptyResponseError,
    QuotaExceededError,
    RateLimitedError,
    SYSTEM_INSTRUCTION,
    UpstreamError,
    translate_api_error,
)
from triad3.config.settings import GeminiSettings

from conftest import FakeResponse, HAPPY_PATH_PAYLOAD


class TestTranslateApiError:
    """Upstream failure -> exception family."""

    def test_throttling_is_rate_limited(self):
        error = google_exceptions.TooManyRequests("Resource has been exhausted")
        assert isinstance(translate_api_error(error), RateLimitedError)

    def test_resource_exhausted_is_rate_limited(self):
        error = google_exceptions.ResourceExhausted("Resource has been exhausted (e.g. check quota).")
        assert isinstance(translate_api_error(error), RateLimitedError)

    def test_billing_message_is_quota_exceeded(self):
        error = google_exceptions.ResourceExhausted(
            "You exceeded your current quota, please check your plan and billing details."
        )
        assert isinstance(translate_api_error(error), QuotaExceededError)

    @pytest.mark.parametrize("message", [
        "Quota exhausted for this project",
        "You exceeded your current quota.",
    ])
    def test_exhausted_quota_is_quota_exceeded(self, message):
        error = google_exceptions.ResourceExhausted(message)
        assert isinstance(translate_api_error(error), QuotaExceededError)

    def test_per_minute_quota_is_rate_limited(self):
        error = google_exceptions.ResourceExhausted(
            "Quota exceeded for quota metric 'Generate Content API requests per minute'"
        )
        assert isinstance(translate_api_error(error), RateLimitedError)

    def test_payment_required_is_quota_exceeded(self):
        error = google_exceptions.ClientError("Payment required")
        error.code = 402
        assert isinstance(translate_api_error(error), QuotaExceededError)

    def test_other_errors_are_upstream(self):
        assert isinstance(
            translate_api_error(google_exceptions.InternalServerError("boom")),
            UpstreamError,
        )
        assert isinstance(
            translate_api_error(google_exceptions.DeadlineExceeded("slow")),
            UpstreamError,
        )


class TestDeclarationExtractionAgent:

    @pytest.mark.asyncio
    async def test_returns_raw_reply(self, make_agent):
        agent = make_agent('{"rendimentos": []}')
        reply = await agent.extract("texto da declaracao", 2024)
        assert reply == '{"rendimentos": []}'

    @pytest.mark.asyncio
    async def test_single_call_with_transcript_and_year(self, gemini_settings):
        model = AsyncMock()
        model.generate_content_async.return_value = FakeResponse("{}")
        agent = DeclarationExtractionAgent(settings=gemini_settings, model=model)

        await agent.extract("ACME LTDA 50.000,00", 2024)

        model.generate_content_async.assert_awaited_once()
        prompt = model.generate_content_async.await_args.args[0]
        assert "2024" in prompt
        assert "ACME LTDA 50.000,00" in prompt
        assert model.generate_content_async.await_args.kwargs["request_options"] == {"timeout": 5}

    def test_transcript_is_capped(self):
        settings = GeminiSettings(api_key="k", max_transcript_chars=1000)
        agent = DeclarationExtractionAgent(settings=settings, model=AsyncMock())
        prompt = agent.build_prompt("a" * 5000, 2024)
        assert prompt.count("a") < 1100

    @pytest.mark.asyncio
    async def test_empty_reply(self, make_agent):
        with pytest.raises(EmptyResponseError):
            await make_agent("").extract("texto", 2024)

    @pytest.mark.asyncio
    async def test_whitespace_reply_is_empty(self, make_agent):
        with pytest.raises(EmptyResponseError):
            await make_agent("   \n").extract("texto", 2024)

    @pytest.mark.asyncio
    async def test_blocked_reply_is_empty(self, make_agent):
        with pytest.raises(EmptyResponseError):
            await make_agent(blocked=True).extract("texto", 2024)

    @pytest.mark.asyncio
    async def test_quota_error_is_not_retried(self, make_agent):
        agent = make_agent(error=google_exceptions.ResourceExhausted(
            "Insufficient credits: check billing"
        ))
        with pytest.raises(QuotaExceededError):
            await agent.extract("texto", 2024)
        assert agent._model.generate_content_async.await_count == 1

    @pytest.mark.asyncio
    async def test_rate_limit(self, make_agent):
        agent = make_agent(error=google_exceptions.TooManyRequests("slow down"))
        with pytest.raises(RateLimitedError):
            await agent.extract("texto", 2024)

    @pytest.mark.asyncio
    async def test_transport_error_is_upstream(self, make_agent):
        agent = make_agent(error=ConnectionError("connection reset"))
        with pytest.raises(UpstreamError):
            await agent.extract("texto", 2024)

    @pytest.mark.asyncio
    async def test_timeout_is_upstream(self):
        settings = GeminiSettings(api_key="k", request_timeout_seconds=0.05)

        async def hang(*args, **kwargs):
            await asyncio.sleep(5)

        model = AsyncMock()
        model.generate_content_async.side_effect = hang
        agent = DeclarationExtractionAgent(settings=settings, model=model)

        with pytest.raises(UpstreamError):
            await agent.extract("texto", 2024)


class TestSystemInstruction:

    def test_names_every_section(self):
        for key in HAPPY_PATH_PAYLOAD:
            assert f'"{key}"' in SYSTEM_INSTRUCTION

    def test_never_asks_for_account_id(self):
        assert "user_id" not in SYSTEM_INSTRUCTION
