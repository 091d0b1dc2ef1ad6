"""
Model configuration shared by every provider.

Values arrive as loosely typed strings from graph annotations and config
files; pydantic coerces numbers ("0.7" -> 0.7). Unset fields stay None and
never override a lower-precedence value when configs are merged.
"""

from collections.abc import Callable
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict


class SupportedProvider(StrEnum):
    OPENAI = "openai"
    OLLAMA = "ollama"
    GEMINI = "gemini"
    ANTHROPIC = "anthropic"
    GROQ = "groq"
    AZURE_OPENAI = "azure_openai"


# Providers that accept OpenAI-style ``functions`` / ``function_call`` natively
FUNCTION_CALLING_PROVIDERS = frozenset(
    {SupportedProvider.OPENAI, SupportedProvider.OLLAMA, SupportedProvider.AZURE_OPENAI}
)

# litellm model prefixes per provider
LITELLM_PREFIXES: dict[SupportedProvider, str] = {
    SupportedProvider.OPENAI: "openai",
    SupportedProvider.OLLAMA: "ollama_chat",
    SupportedProvider.GEMINI: "gemini",
    SupportedProvider.ANTHROPIC: "anthropic",
    SupportedProvider.GROQ: "groq",
    SupportedProvider.AZURE_OPENAI: "azure",
}


class ModelConfig(BaseModel):
    """Provider selection plus sampling parameters. Every field is optional."""

    model_config = ConfigDict(extra="ignore", protected_namespaces=())

    provider: SupportedProvider | None = None
    api_key: str | None = None
    base_url: str | None = None
    model: str | None = None
    function_call: dict[str, str] | None = None
    functions: list[dict[str, Any]] | None = None
    temperature: float | None = None
    top_p: float | None = None
    top_k: float | None = None
    frequency_penalty: float | None = None
    presence_penalty: float | None = None
    stop: str | None = None
    role: str | None = None
    seed: int | None = None
    num_ctx: int | None = None
    num_predict: int | None = None
    azure_deployment_name: str | None = None
    azure_instance_name: str | None = None
    azure_api_version: str | None = None

    def set_fields(self) -> dict[str, Any]:
        """Fields with a value, for merging."""
        return self.model_dump(exclude_none=True)


GetDefaultsByProvider = Callable[[SupportedProvider], ModelConfig | dict[str, Any]]


def merge_config(
    base: ModelConfig,
    overrides: ModelConfig | None = None,
    defaults_by_provider: GetDefaultsByProvider | None = None,
) -> ModelConfig:
    """
    Merge configs with precedence base < provider defaults < overrides.

    The provider is taken from the overrides when set, otherwise from base.
    """
    overrides = overrides or ModelConfig()
    provider = overrides.provider or base.provider or SupportedProvider.OPENAI

    defaults: dict[str, Any] = {}
    if defaults_by_provider is not None:
        raw = defaults_by_provider(provider)
        defaults = raw.set_fields() if isinstance(raw, ModelConfig) else {
            k: v for k, v in raw.items() if v is not None
        }

    merged = {**base.set_fields(), **defaults, **overrides.set_fields(), "provider": provider}
    return ModelConfig.model_validate(merged)
