"""Mock provider - synthesizes replies without a model backend."""

import json
import math
import random

from cannoli.llm.functions import CHOICE_FUNCTION_NAME, choice_options
from cannoli.llm.provider import (
    ChatMessage,
    CompletionRequest,
    FunctionCall,
    LLMProvider,
    LLMResponse,
)

CHARS_PER_TOKEN = 4
MOCK_RESPONSE = "Mock response"


def estimate_prompt_text(messages: list[ChatMessage]) -> str:
    """The text a mock estimate is based on: ``"role: content "`` per message."""
    parts = []
    for message in messages:
        if message.function_call is not None:
            parts.append(f"{message.role}: {message.content} {message.function_call.arguments} ")
        else:
            parts.append(f"{message.role}: {message.content} ")
    return "".join(parts)


def estimate_tokens(messages: list[ChatMessage]) -> int:
    """Approximate prompt tokens at four characters per token."""
    return math.ceil(len(estimate_prompt_text(messages)) / CHARS_PER_TOKEN)


class MockLLMProvider(LLMProvider):
    """
    Replies with a fixed placeholder, or a random pick when the request
    offers a choice function, so downstream logic can run offline.

    Token counts are estimates and flagged as such on the response.
    """

    def __init__(self, rng: random.Random | None = None):
        self._rng = rng or random.Random()

    async def acomplete(self, request: CompletionRequest) -> LLMResponse:
        prompt_tokens = estimate_tokens(request.messages)
        options = choice_options(request.find_function(CHOICE_FUNCTION_NAME))

        if options:
            choice = self._rng.choice(options)
            message = ChatMessage(
                role="assistant",
                content=MOCK_RESPONSE,
                function_call=FunctionCall(
                    name=CHOICE_FUNCTION_NAME,
                    arguments=json.dumps({"choice": choice}),
                ),
            )
        else:
            message = ChatMessage(role="assistant", content=MOCK_RESPONSE)

        return LLMResponse(
            message=message,
            model=request.model,
            input_tokens=prompt_tokens,
            output_tokens=0,
            estimated=True,
        )
