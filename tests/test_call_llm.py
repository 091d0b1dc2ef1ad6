"""Tests for model calls made through a run: mocking, usage, failures, throttling."""

import asyncio
import json
import random

import pytest

from cannoli.config import RunConfig
from cannoli.errors import LLMCallError
from cannoli.llm.functions import CHOICE_FUNCTION_NAME, create_choice_function
from cannoli.llm.mock import MOCK_RESPONSE, MockLLMProvider, estimate_tokens
from cannoli.llm.provider import (
    ChatMessage,
    CompletionRequest,
    LLMProvider,
    LLMResponse,
)
from cannoli.runtime.run import Run
from cannoli.schemas.usage import DEFAULT_MODEL_INFO


def make_config(**overrides) -> RunConfig:
    values = {
        "model": "gpt-3.5-turbo",
        "llm_limit": 10,
        "is_mock": False,
        "verbose": False,
        "model_info": dict(DEFAULT_MODEL_INFO),
    }
    values.update(overrides)
    return RunConfig(**values)


def make_request(content: str = "Hello", model: str = "gpt-4", **kwargs) -> CompletionRequest:
    return CompletionRequest(messages=[ChatMessage(role="user", content=content)], model=model, **kwargs)


# ---- Fake providers ----
class FixedProvider(LLMProvider):
    """Returns a canned reply with exact token counts."""

    def __init__(self, content="Real reply", input_tokens=12, output_tokens=7, message=True):
        self.content = content
        self.input_tokens = input_tokens
        self.output_tokens = output_tokens
        self.message = message
        self.requests = []

    async def acomplete(self, request):
        self.requests.append(request)
        return LLMResponse(
            message=ChatMessage(role="assistant", content=self.content) if self.message else None,
            model=request.model,
            input_tokens=self.input_tokens,
            output_tokens=self.output_tokens,
        )


class FailingProvider(LLMProvider):
    async def acomplete(self, request):
        raise ConnectionError("backend unreachable")


class SlowProvider(LLMProvider):
    """Tracks how many calls are in flight at once."""

    def __init__(self):
        self.in_flight = 0
        self.peak = 0

    async def acomplete(self, request):
        self.in_flight += 1
        self.peak = max(self.peak, self.in_flight)
        await asyncio.sleep(0.001)
        self.in_flight -= 1
        return LLMResponse(
            message=ChatMessage(role="assistant", content="ok"),
            model=request.model,
            input_tokens=1,
            output_tokens=1,
        )


class TestMockCalls:
    @pytest.mark.asyncio
    async def test_mock_returns_placeholder(self):
        run = Run({}, config=make_config(is_mock=True))

        result = await run.call_llm(make_request())

        assert isinstance(result, ChatMessage)
        assert result.content == MOCK_RESPONSE
        assert result.function_call is None

    @pytest.mark.asyncio
    async def test_mock_picks_a_choice(self):
        run = Run({}, config=make_config(is_mock=True))
        request = make_request(
            functions=[create_choice_function(["yes", "no"])],
            function_call={"name": CHOICE_FUNCTION_NAME},
        )

        for _ in range(10):
            result = await run.call_llm(request)
            assert result.function_call.name == CHOICE_FUNCTION_NAME
            assert json.loads(result.function_call.arguments)["choice"] in ("yes", "no")

    @pytest.mark.asyncio
    async def test_mock_provider_is_seedable(self):
        request = make_request(functions=[create_choice_function(["a", "b", "c"])])
        first = await MockLLMProvider(random.Random(7)).acomplete(request)
        second = await MockLLMProvider(random.Random(7)).acomplete(request)
        assert first.message.function_call.arguments == second.message.function_call.arguments

    @pytest.mark.asyncio
    async def test_mock_usage_is_estimated_under_request_model(self):
        run = Run({}, config=make_config(is_mock=True))
        request = make_request("x" * 393, model="gpt-4")

        await run.call_llm(request)

        counters = run.usage["gpt-4"].model_usage
        assert counters.prompt_tokens == estimate_tokens(request.messages) == 100
        assert counters.completion_tokens == 0
        assert counters.api_calls == 1
        assert counters.estimated is True

    @pytest.mark.asyncio
    async def test_mock_mode_ignores_real_provider(self):
        provider = FixedProvider()
        run = Run({}, llm=provider, config=make_config(is_mock=True))

        result = await run.call_llm(make_request())

        assert result.content == MOCK_RESPONSE
        assert provider.requests == []

    @pytest.mark.asyncio
    async def test_no_provider_falls_back_to_mock(self):
        run = Run({}, config=make_config(is_mock=False))
        result = await run.call_llm(make_request())
        assert result.content == MOCK_RESPONSE


class TestProviderCalls:
    @pytest.mark.asyncio
    async def test_reported_usage_is_recorded_exactly(self):
        run = Run({}, llm=FixedProvider(input_tokens=12, output_tokens=7), config=make_config())

        result = await run.call_llm(make_request(model="gpt-4"))

        assert result.content == "Real reply"
        counters = run.usage["gpt-4"].model_usage
        assert (counters.prompt_tokens, counters.completion_tokens) == (12, 7)
        assert counters.estimated is False
        assert run.total_cost == pytest.approx(12 * 0.03 / 1000 + 7 * 0.06 / 1000)

    @pytest.mark.asyncio
    async def test_provider_failure_is_returned_not_raised(self):
        run = Run({}, llm=FailingProvider(), config=make_config())

        result = await run.call_llm(make_request())

        assert isinstance(result, ConnectionError)
        assert "unreachable" in str(result)
        assert run.usage == {}

    @pytest.mark.asyncio
    async def test_missing_message_is_an_error_value(self):
        run = Run({}, llm=FixedProvider(message=False), config=make_config())

        result = await run.call_llm(make_request())

        assert isinstance(result, LLMCallError)
        assert str(result) == "No message returned"

    @pytest.mark.asyncio
    async def test_zero_usage_is_not_recorded(self):
        run = Run({}, llm=FixedProvider(input_tokens=0, output_tokens=0), config=make_config())
        await run.call_llm(make_request(model="gpt-4"))
        assert "gpt-4" not in run.usage

    @pytest.mark.asyncio
    async def test_verbose_logs_messages(self, caplog):
        run = Run({}, llm=FixedProvider(), config=make_config())

        with caplog.at_level("INFO", logger="cannoli.runtime.run"):
            await run.call_llm(make_request("Tell me a joke"), verbose=True)

        assert "Input Messages" in caplog.text
        assert "Tell me a joke" in caplog.text

    @pytest.mark.asyncio
    async def test_calls_never_exceed_the_run_limit(self):
        provider = SlowProvider()
        run = Run({}, llm=provider, config=make_config(), llm_limit=3)

        results = await asyncio.gather(*(run.call_llm(make_request()) for _ in range(15)))

        assert all(isinstance(r, ChatMessage) for r in results)
        assert provider.peak == 3
        assert run.usage["gpt-4"].model_usage.api_calls == 15


class ResolvingProvider(LLMProvider):
    """Reports the model its own configuration picked."""

    async def acomplete(self, request):
        return LLMResponse(
            message=ChatMessage(role="assistant", content="ok"),
            model=request.model or "llama3",
            input_tokens=3,
            output_tokens=2,
        )


class TestUsageModelName:
    @pytest.mark.asyncio
    async def test_usage_recorded_under_provider_resolved_model(self):
        run = Run({}, llm=ResolvingProvider(), config=make_config(model="gpt-4"))

        await run.call_llm(CompletionRequest(messages=[ChatMessage(role="user", content="Hi")]))

        assert list(run.usage) == ["llama3"]

    @pytest.mark.asyncio
    async def test_mock_usage_falls_back_to_run_model(self):
        run = Run({}, config=make_config(model="gpt-4", is_mock=True))

        await run.call_llm(CompletionRequest(messages=[ChatMessage(role="user", content="Hi")]))

        assert run.usage["gpt-4"].model_usage.api_calls == 1
