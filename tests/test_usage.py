"""Tests for usage accounting and cost computation."""

import pytest

from cannoli.llm.mock import estimate_prompt_text, estimate_tokens
from cannoli.llm.provider import ChatMessage, FunctionCall
from cannoli.runtime.usage import UsageTracker
from cannoli.schemas.usage import (
    DEFAULT_MODEL_INFO,
    Model,
    ModelUsage,
    Stoppage,
    StoppageReason,
    Usage,
    cost_for_model,
    total_cost,
)


class TestCost:
    def test_cost_for_known_model(self):
        usage = Usage(
            model=DEFAULT_MODEL_INFO["gpt-4"],
            model_usage=ModelUsage(prompt_tokens=1000, completion_tokens=500),
        )
        assert cost_for_model(usage) == pytest.approx(0.06)
        assert usage.total_cost == pytest.approx(0.06)

    def test_unknown_model_costs_nothing(self):
        usage = Usage(model=None, model_usage=ModelUsage(prompt_tokens=1_000_000))
        assert cost_for_model(usage) == 0.0

    def test_total_cost_sums_every_model(self):
        usage = {
            "gpt-4": Usage(
                model=DEFAULT_MODEL_INFO["gpt-4"],
                model_usage=ModelUsage(prompt_tokens=1000),
            ),
            "gpt-3.5-turbo": Usage(
                model=DEFAULT_MODEL_INFO["gpt-3.5-turbo"],
                model_usage=ModelUsage(completion_tokens=1000),
            ),
        }
        assert total_cost(usage) == pytest.approx(0.03 + 0.002)

    def test_cost_follows_counters(self):
        usage = Usage(model=Model(name="m", prompt_token_price=1.0))
        assert usage.total_cost == 0.0
        usage.model_usage.prompt_tokens = 3
        assert usage.total_cost == pytest.approx(3.0)

    def test_total_cost_is_serialized(self):
        usage = Usage(
            model=DEFAULT_MODEL_INFO["gpt-4"],
            model_usage=ModelUsage(prompt_tokens=1000),
        )
        assert usage.model_dump()["total_cost"] == pytest.approx(0.03)


class TestUsageTracker:
    def test_record_accumulates(self):
        tracker = UsageTracker()
        tracker.record("gpt-4", 100, 50)
        tracker.record("gpt-4", 10, 5)

        counters = tracker.usage["gpt-4"].model_usage
        assert counters.prompt_tokens == 110
        assert counters.completion_tokens == 55
        assert counters.api_calls == 2
        assert counters.estimated is False

    def test_estimated_flag_sticks(self):
        tracker = UsageTracker()
        tracker.record("gpt-4", 10, 0, estimated=True)
        tracker.record("gpt-4", 10, 5)
        assert tracker.usage["gpt-4"].model_usage.estimated is True

    def test_unknown_model_is_recorded_without_price(self):
        tracker = UsageTracker()
        tracker.record("local-llama", 1000, 1000)

        assert tracker.usage["local-llama"].model is None
        assert tracker.usage["local-llama"].model_usage.api_calls == 1
        assert tracker.total_cost() == 0.0

    def test_custom_model_info(self):
        tracker = UsageTracker({"cheap": Model(name="cheap", completion_token_price=0.5)})
        tracker.record("cheap", 0, 4)
        assert tracker.total_cost() == pytest.approx(2.0)

    def test_snapshot_is_independent(self):
        tracker = UsageTracker()
        tracker.record("gpt-4", 100, 0)

        snapshot = tracker.snapshot()
        tracker.record("gpt-4", 100, 0)

        assert snapshot["gpt-4"].model_usage.prompt_tokens == 100
        assert tracker.usage["gpt-4"].model_usage.prompt_tokens == 200

    def test_reset(self):
        tracker = UsageTracker()
        tracker.record("gpt-4", 1, 1)
        tracker.reset()
        assert tracker.usage == {}
        assert tracker.total_cost() == 0.0


class TestTokenEstimate:
    def test_four_characters_per_token(self):
        # "user: " + 393 chars + " " is 400 characters
        messages = [ChatMessage(role="user", content="x" * 393)]
        assert len(estimate_prompt_text(messages)) == 400
        assert estimate_tokens(messages) == 100

    def test_partial_token_rounds_up(self):
        messages = [ChatMessage(role="user", content="x")]
        # "user: x " is 8 characters
        assert estimate_tokens(messages) == 2
        messages = [ChatMessage(role="user", content="xy")]
        assert estimate_tokens(messages) == 3

    def test_function_call_arguments_count(self):
        plain = [ChatMessage(role="assistant", content="hi")]
        with_call = [
            ChatMessage(
                role="assistant",
                content="hi",
                function_call=FunctionCall(name="enter_choice", arguments='{"choice": "a"}'),
            )
        ]
        assert estimate_prompt_text(with_call) == 'assistant: hi {"choice": "a"} '
        assert estimate_tokens(with_call) > estimate_tokens(plain)


class TestStoppage:
    def test_reason_values(self):
        assert [r.value for r in StoppageReason] == ["user", "error", "complete"]

    def test_message_defaults_to_none(self):
        stoppage = Stoppage(reason=StoppageReason.COMPLETE)
        assert stoppage.message is None
        assert stoppage.usage == {}
        assert stoppage.total_cost == 0.0
