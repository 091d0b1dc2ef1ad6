"""
Usage Schema - token accounting and the terminal outcome of a run.

Token counters only ever grow. Money is never stored: ``Usage.total_cost``
is recomputed from the counters and the model's prices on every access,
so late-arriving counts are always reflected.
"""

from enum import StrEnum

from pydantic import BaseModel, Field, computed_field


class Model(BaseModel):
    """Pricing for one model, in dollars per token."""

    name: str
    prompt_token_price: float = 0.0
    completion_token_price: float = 0.0


DEFAULT_MODEL_INFO: dict[str, Model] = {
    "gpt-4": Model(
        name="gpt-4",
        prompt_token_price=0.03 / 1000,  # $0.03 per 1K tokens
        completion_token_price=0.06 / 1000,  # $0.06 per 1K tokens
    ),
    "gpt-3.5-turbo": Model(
        name="gpt-3.5-turbo",
        prompt_token_price=0.0015 / 1000,  # $0.0015 per 1K tokens
        completion_token_price=0.002 / 1000,  # $0.002 per 1K tokens
    ),
}


class ModelUsage(BaseModel):
    """Accumulated counters for one model."""

    prompt_tokens: int = 0
    completion_tokens: int = 0
    api_calls: int = 0
    estimated: bool = Field(
        default=False,
        description="True once a character-count estimate contributed to the token counts",
    )


class Usage(BaseModel):
    """Usage of one model name. ``model`` is None when the name has no price entry."""

    model: Model | None = None
    model_usage: ModelUsage = Field(default_factory=ModelUsage)

    @computed_field
    @property
    def total_cost(self) -> float:
        return cost_for_model(self)


def cost_for_model(usage: Usage) -> float:
    """Cost of one usage record; 0.0 for a model without prices."""
    if usage.model is None:
        return 0.0
    prompt_cost = usage.model.prompt_token_price * usage.model_usage.prompt_tokens
    completion_cost = usage.model.completion_token_price * usage.model_usage.completion_tokens
    return prompt_cost + completion_cost


def total_cost(usage: dict[str, Usage]) -> float:
    """Sum of ``cost_for_model`` over every entry."""
    return sum(cost_for_model(u) for u in usage.values())


class StoppageReason(StrEnum):
    """Why a run stopped."""

    USER = "user"
    ERROR = "error"
    COMPLETE = "complete"


class Stoppage(BaseModel):
    """The single terminal outcome of a run."""

    reason: StoppageReason
    usage: dict[str, Usage] = Field(default_factory=dict)
    total_cost: float = 0.0
    message: str | None = None  # Only set when reason is ERROR
