"""Function-call helpers: the functions work items offer to the model."""

import json
import re
from typing import Any

from cannoli.llm.provider import ChatMessage, FunctionCall, FunctionSpec

CHOICE_FUNCTION_NAME = "enter_choice"
LIST_FUNCTION_NAME = "enter_answers"

_JSON_OBJECT_PATTERN = re.compile(r"\{.*\}", re.DOTALL)


def create_choice_function(choices: list[str]) -> FunctionSpec:
    """A function whose single ``choice`` argument is one of ``choices``."""
    return FunctionSpec(
        name=CHOICE_FUNCTION_NAME,
        description="Enter your answer to the question above using this function.",
        parameters={
            "type": "object",
            "properties": {
                "choice": {
                    "type": "string",
                    "enum": list(choices),
                },
            },
            "required": ["choice"],
        },
    )


def create_list_function(tags: list[str]) -> FunctionSpec:
    """A function with one required string argument per tag."""
    return FunctionSpec(
        name=LIST_FUNCTION_NAME,
        description="Use this function to enter the requested information for each key.",
        parameters={
            "type": "object",
            "properties": {tag: {"type": "string"} for tag in tags},
            "required": list(tags),
        },
    )


def choice_options(function: FunctionSpec | None) -> list[str]:
    """The enum of a choice function, or [] if it has none."""
    if function is None:
        return []
    choice = function.parameters.get("properties", {}).get("choice", {})
    return list(choice.get("enum") or [])


def messages_with_function_prompt(
    messages: list[ChatMessage], function: FunctionSpec
) -> list[ChatMessage]:
    """
    Ask for a function call in plain text, for backends without native
    function calling. The schema goes in a system message ahead of the
    conversation.
    """
    instructions = (
        f"Respond only by calling the function `{function.name}`: "
        f"{function.description}\n"
        "Reply with a single JSON object holding the arguments, matching this JSON Schema, "
        "and nothing else:\n"
        f"{json.dumps(function.parameters, indent=2)}"
    )
    return [ChatMessage(role="system", content=instructions), *messages]


def extract_json_object(text: str) -> str:
    """The outermost ``{...}`` block in ``text``, or ``text`` unchanged."""
    match = _JSON_OBJECT_PATTERN.search(text)
    return match.group(0) if match else text


def parse_function_arguments(function_call: FunctionCall | None) -> dict[str, Any]:
    """Decode a function call's JSON arguments. Returns {} when they do not parse."""
    if function_call is None or not function_call.arguments:
        return {}
    try:
        parsed = json.loads(extract_json_object(function_call.arguments))
    except json.JSONDecodeError:
        return {}
    return parsed if isinstance(parsed, dict) else {}
