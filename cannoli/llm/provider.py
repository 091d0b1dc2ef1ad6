"""LLM Provider abstraction for pluggable chat-completion backends."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any


@dataclass
class FunctionCall:
    """A function call requested by the model. ``arguments`` is a JSON string."""

    name: str
    arguments: str = ""


@dataclass
class ChatMessage:
    """One chat message, sent or received."""

    role: str
    content: str = ""
    function_call: FunctionCall | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"role": self.role, "content": self.content}
        if self.function_call is not None:
            data["function_call"] = {
                "name": self.function_call.name,
                "arguments": self.function_call.arguments,
            }
        return data


@dataclass
class FunctionSpec:
    """A function the model may call, described with JSON Schema parameters."""

    name: str
    description: str = ""
    parameters: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "parameters": self.parameters,
        }


@dataclass
class CompletionRequest:
    """A chat completion request as work items build it."""

    messages: list[ChatMessage]
    model: str | None = None  # None defers to the provider's configured model
    functions: list[FunctionSpec] | None = None
    function_call: dict[str, str] | None = None  # e.g. {"name": "enter_choice"}
    temperature: float | None = None
    top_p: float | None = None
    frequency_penalty: float | None = None
    presence_penalty: float | None = None
    stop: list[str] | None = None
    provider: str | None = None

    def find_function(self, name: str) -> FunctionSpec | None:
        for fn in self.functions or []:
            if fn.name == name:
                return fn
        return None


@dataclass
class LLMResponse:
    """Response from a provider call."""

    message: ChatMessage | None
    model: str | None
    input_tokens: int = 0
    output_tokens: int = 0
    estimated: bool = False  # True when token counts are a character-count estimate
    stop_reason: str = ""
    raw_response: Any = None


class LLMProvider(ABC):
    """
    Abstract LLM provider - plug in any chat-completion backend.

    Implementations should handle:
    - API authentication
    - Request/response formatting
    - Reporting token usage on the response
    """

    @abstractmethod
    async def acomplete(self, request: CompletionRequest) -> LLMResponse:
        """
        Run one chat completion.

        Args:
            request: Messages, optional function specs, and model parameters

        Returns:
            LLMResponse with the reply message (None if the backend returned
            none) and token counts
        """
        pass
