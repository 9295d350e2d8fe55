"""Tests for the LangChain completion service and run completion criteria."""

import asyncio
from unittest.mock import AsyncMock

import pytest
from langchain_core.messages import AIMessage, HumanMessage, SystemMessage

from jobnick_agent.core.completion import CompletionCriteria, CompletionTracker
from jobnick_agent.core.errors import (
    CompletionAuthError,
    CompletionError,
    CompletionRateLimitError,
    MalformedCompletionError,
)
from jobnick_agent.jobs.completion import LangChainCompletionService, translate_completion_error


class ProviderError(Exception):
    def __init__(self, message, status_code=None):
        super().__init__(message)
        self.status_code = status_code


class TestLangChainCompletionService:
    """Test cases for the completion service over a chat model."""

    @pytest.fixture
    def chat_model(self):
        model = AsyncMock()
        model.ainvoke.return_value = AIMessage(content='{"shouldApply": true}')
        return model

    @pytest.mark.asyncio
    async def test_complete_returns_content(self, chat_model):
        service = LangChainCompletionService(chat_model=chat_model, timeout=5)

        text = await service.complete("Screen this job")

        assert text == '{"shouldApply": true}'
        messages = chat_model.ainvoke.await_args.args[0]
        assert isinstance(messages[0], SystemMessage)
        assert isinstance(messages[1], HumanMessage)
        assert messages[1].content == "Screen this job"

    @pytest.mark.asyncio
    async def test_empty_content_is_malformed(self, chat_model):
        chat_model.ainvoke.return_value = AIMessage(content="   ")
        service = LangChainCompletionService(chat_model=chat_model, timeout=5)

        with pytest.raises(MalformedCompletionError):
            await service.complete("Screen this job")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status, expected", [
        (401, CompletionAuthError),
        (403, CompletionAuthError),
        (429, CompletionRateLimitError),
        (500, CompletionError),
    ])
    async def test_provider_errors_are_translated(self, chat_model, status, expected):
        chat_model.ainvoke.side_effect = ProviderError("provider said no", status_code=status)
        service = LangChainCompletionService(chat_model=chat_model, timeout=5)

        with pytest.raises(expected):
            await service.complete("Screen this job")

    @pytest.mark.asyncio
    async def test_timeout(self, chat_model):
        async def hang(messages):
            await asyncio.sleep(10)

        chat_model.ainvoke.side_effect = hang
        service = LangChainCompletionService(chat_model=chat_model, timeout=0.01)

        with pytest.raises(CompletionError, match="timed out"):
            await service.complete("Screen this job")

    @pytest.mark.asyncio
    async def test_unconfigured_service(self, monkeypatch):
        monkeypatch.setattr("jobnick_agent.jobs.completion.settings.groq_api_key", None)
        monkeypatch.setattr("jobnick_agent.jobs.completion.settings.openai_api_key", None)
        service = LangChainCompletionService()

        assert service.is_configured is False
        with pytest.raises(CompletionAuthError):
            await service.complete("Screen this job")

    def test_set_credential_builds_groq_model(self, monkeypatch):
        monkeypatch.setattr("jobnick_agent.jobs.completion.settings.groq_api_key", None)
        monkeypatch.setattr("jobnick_agent.jobs.completion.settings.openai_api_key", None)
        service = LangChainCompletionService()

        service.set_credential("gsk_test_key")

        assert service.is_configured is True
        assert service.groq_api_key == "gsk_test_key"

    def test_translate_nested_response_status(self):
        class Response:
            status_code = 429

        error = ProviderError("throttled")
        error.response = Response()

        assert isinstance(translate_completion_error(error), CompletionRateLimitError)


class TestCompletionTracker:
    """Test cases for run completion criteria."""

    class Clock:
        def __init__(self):
            self.now = 0.0

        def __call__(self):
            return self.now

    def test_fresh_run_is_not_complete(self):
        tracker = CompletionTracker(CompletionCriteria(), clock=self.Clock())

        assert tracker.check().should_complete is False

    @pytest.mark.parametrize("field, value, fragment", [
        ("applications_submitted", 10, "applications"),
        ("pages_visited", 10, "pages"),
        ("jobs_found", 100, "jobs"),
    ])
    def test_counter_limits(self, field, value, fragment):
        tracker = CompletionTracker(CompletionCriteria(), clock=self.Clock())
        setattr(tracker.stats, field, value)

        check = tracker.check()

        assert check.should_complete is True
        assert fragment in check.reason

    def test_runtime_limit(self):
        clock = self.Clock()
        tracker = CompletionTracker(CompletionCriteria(max_runtime_minutes=60), clock=clock)
        clock.now += 60 * 60

        check = tracker.check()

        assert check.should_complete is True
        assert "minutes" in check.reason

    def test_start_resets_counters(self):
        tracker = CompletionTracker(CompletionCriteria(), clock=self.Clock())
        tracker.stats.jobs_found = 100

        tracker.start()

        assert tracker.stats.jobs_found == 0
