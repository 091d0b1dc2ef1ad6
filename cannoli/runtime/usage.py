"""Usage tracker - per-model token counters and their cost."""

import logging

from cannoli.schemas.usage import (
    DEFAULT_MODEL_INFO,
    Model,
    Usage,
    cost_for_model,
)
from cannoli.schemas.usage import total_cost as sum_cost

logger = logging.getLogger(__name__)


class UsageTracker:
    """
    Accumulates usage per model name for one run.

    Unknown model names are recorded with ``model=None`` and cost nothing,
    so a missing price entry never fails a run.
    """

    def __init__(self, model_info: dict[str, Model] | None = None):
        self.model_info = dict(DEFAULT_MODEL_INFO if model_info is None else model_info)
        self.usage: dict[str, Usage] = {}

    def _entry(self, model_name: str) -> Usage:
        entry = self.usage.get(model_name)
        if entry is None:
            model = self.model_info.get(model_name)
            if model is None:
                logger.warning(
                    f"No pricing for model '{model_name}'; its cost is reported as 0",
                    extra={"model": model_name},
                )
            entry = Usage(model=model)
            self.usage[model_name] = entry
        return entry

    def record(
        self,
        model_name: str,
        prompt_tokens: int = 0,
        completion_tokens: int = 0,
        *,
        estimated: bool = False,
    ) -> Usage:
        """Add one call's token counts to ``model_name``'s totals."""
        entry = self._entry(model_name)
        counters = entry.model_usage
        counters.prompt_tokens += prompt_tokens
        counters.completion_tokens += completion_tokens
        counters.api_calls += 1
        if estimated:
            counters.estimated = True
        logger.debug(
            f"Recorded {prompt_tokens}+{completion_tokens} tokens for {model_name}",
            extra={"model": model_name, "tokens_used": prompt_tokens + completion_tokens},
        )
        return entry

    def cost_for_model(self, usage: Usage) -> float:
        return cost_for_model(usage)

    def total_cost(self) -> float:
        return sum_cost(self.usage)

    def snapshot(self) -> dict[str, Usage]:
        """Deep copy of the current usage, safe to hand out in a stoppage."""
        return {name: u.model_copy(deep=True) for name, u in self.usage.items()}

    def reset(self) -> None:
        self.usage.clear()
