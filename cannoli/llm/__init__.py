"""LLM provider abstraction."""

from cannoli.llm.config import ModelConfig, SupportedProvider, merge_config
from cannoli.llm.functions import (
    create_choice_function,
    create_list_function,
    parse_function_arguments,
)
from cannoli.llm.litellm import LiteLLMProvider
from cannoli.llm.mock import MockLLMProvider, estimate_tokens
from cannoli.llm.provider import (
    ChatMessage,
    CompletionRequest,
    FunctionCall,
    FunctionSpec,
    LLMProvider,
    LLMResponse,
)

__all__ = [
    "ChatMessage",
    "CompletionRequest",
    "FunctionCall",
    "FunctionSpec",
    "LLMProvider",
    "LLMResponse",
    "LiteLLMProvider",
    "MockLLMProvider",
    "ModelConfig",
    "SupportedProvider",
    "create_choice_function",
    "create_list_function",
    "estimate_tokens",
    "merge_config",
    "parse_function_arguments",
]
