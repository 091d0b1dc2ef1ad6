"""
Reference node variants.

Each node gathers the content of its completed incoming edges, does its
work in ``process()``, and exposes what outgoing edges should carry through
``output``.
"""

from __future__ import annotations

import logging

from cannoli.graph.objects import CannoliVertex
from cannoli.llm.functions import (
    CHOICE_FUNCTION_NAME,
    create_choice_function,
    parse_function_arguments,
)
from cannoli.llm.provider import ChatMessage, CompletionRequest

logger = logging.getLogger(__name__)

CONTENT_SEPARATOR = "\n\n"


class ContentNode(CannoliVertex):
    """Static text. Incoming content, when there is any, replaces it."""

    kind = "content"

    async def process(self) -> None:
        incoming = self.incoming_content()
        if incoming:
            self.text = CONTENT_SEPARATOR.join(incoming)


class DisplayNode(ContentNode):
    """Shows whatever arrives; its text is written back to the canvas."""

    kind = "display"
    renders_text = True


class FloatingNode(CannoliVertex):
    """A named variable living outside the flow. Its text is rendered on completion."""

    kind = "floating"
    renders_text = True

    def __init__(self, id: str, name: str, text: str = "", dependencies: list[str] | None = None):
        super().__init__(id, text, dependencies)
        self.name = name

    def validate(self) -> None:
        if not self.name.strip():
            self.error("Floating nodes need a name")


class ReferenceNode(CannoliVertex):
    """
    A note in the store, by name.

    With incoming content the note is overwritten; without it the note is
    read and becomes this node's output.
    """

    kind = "reference"
    renders_text = True

    def __init__(self, id: str, note_name: str, dependencies: list[str] | None = None):
        super().__init__(id, "", dependencies)
        self.note_name = note_name

    def validate(self) -> None:
        if self.run is not None and self.run.store is None and not self.run.is_mock:
            self.error(f'Reference to "{self.note_name}" needs a note store')

    async def process(self) -> None:
        incoming = self.incoming_content()
        if incoming:
            content = CONTENT_SEPARATOR.join(incoming)
            if await self.run.edit_note(self.note_name, content) is None:
                self.error(f'Note "{self.note_name}" not found')
                return
            self.text = content
            return

        if self.run.is_mock and self.run.store is None:
            self.text = f"# {self.note_name}\nMock note content"
            return

        content = await self.run.get_note(self.note_name)
        if content is None:
            self.error(f'Note "{self.note_name}" not found')
            return
        self.text = content


class CallNode(CannoliVertex):
    """
    Sends its incoming content plus its own text to the model.

    With ``choices`` the model must pick one through the ``enter_choice``
    function; outgoing edges labelled with another choice then reject.
    """

    kind = "call"
    is_call_node = True

    def __init__(
        self,
        id: str,
        text: str = "",
        dependencies: list[str] | None = None,
        model: str | None = None,
        temperature: float | None = None,
        choices: list[str] | None = None,
    ):
        super().__init__(id, text, dependencies)
        self.model = model
        self.temperature = temperature
        self.choices = list(choices or [])
        self.response: str | None = None
        self.choice: str | None = None

    @property
    def output(self) -> str:
        return self.response or ""

    def reset(self) -> None:
        self.response = None
        self.choice = None
        super().reset()

    def validate(self) -> None:
        if len(set(self.choices)) != len(self.choices):
            self.error(f"Call node {self.id} has duplicate choices")

    def build_request(self) -> CompletionRequest:
        messages = [ChatMessage(role="user", content=c) for c in self.incoming_content()]
        if self.text:
            messages.append(ChatMessage(role="user", content=self.text))

        request = CompletionRequest(
            messages=messages,
            model=self.model or self.run.config.model,
            temperature=self.temperature,
        )
        if self.choices:
            request.functions = [create_choice_function(self.choices)]
            request.function_call = {"name": CHOICE_FUNCTION_NAME}
        return request

    async def process(self) -> None:
        result = await self.run.call_llm(self.build_request())

        if isinstance(result, Exception):
            self.error(f"Model call failed: {result}")
            return

        if not self.choices:
            self.response = result.content
            return

        choice = parse_function_arguments(result.function_call).get("choice")
        if choice not in self.choices:
            self.error(f"Model chose {choice!r}, expected one of: {', '.join(self.choices)}")
            return
        self.choice = choice
        self.response = choice

    def log_details(self) -> str:
        details = super().log_details()
        if self.choices:
            details += f" choices=({', '.join(self.choices)})"
        return details
