"""LLM provider: a thin adapter over the Anthropic Messages API."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

import anthropic
from anthropic import Anthropic
from dotenv import load_dotenv

# Load .env from the working directory and the project root
load_dotenv()
load_dotenv(Path(__file__).parent.parent.parent / ".env")

logger = logging.getLogger(__name__)


class LLMError(Exception):
    """The provider call failed or returned nothing usable."""
    pass


@dataclass
class ToolCall:
    """One tool invocation requested by the model.

    ``arguments`` is the raw JSON text of the call's input.
    """

    id: str
    name: str
    arguments: str


@dataclass
class LLMResponse:
    text: str | None = None
    tool_calls: list[ToolCall] = field(default_factory=list)
    input_tokens: int = 0
    output_tokens: int = 0


class AnthropicProvider:
    """Sends a transcript to Claude and normalizes the reply."""

    def __init__(self, client: Anthropic | None = None):
        if client is None:
            api_key = os.environ.get("ANTHROPIC_API_KEY")
            if not api_key:
                raise ValueError(
                    "ANTHROPIC_API_KEY environment variable not set. "
                    "Set it with: export ANTHROPIC_API_KEY=your-key-here "
                    "or add it to a .env file"
                )
            client = Anthropic(api_key=api_key)
        self.client = client

    def complete(
        self,
        model: str,
        system: str,
        messages: list[dict],
        tools: list[dict],
        max_tokens: int,
    ) -> LLMResponse:
        """Run one completion.

        Raises:
            LLMError: on any SDK error, or when the reply has neither text nor tool calls
        """
        try:
            response = self.client.messages.create(
                model=model,
                max_tokens=max_tokens,
                system=system,
                tools=tools,
                messages=messages,
            )
        except anthropic.APIError as e:
            raise LLMError(str(e)) from e

        texts = []
        tool_calls = []
        for block in response.content:
            if block.type == "text":
                if block.text:
                    texts.append(block.text)
            elif block.type == "tool_use":
                tool_calls.append(ToolCall(
                    id=block.id,
                    name=block.name,
                    arguments=json.dumps(block.input, ensure_ascii=False),
                ))

        text = "\n".join(texts).strip() or None
        if text is None and not tool_calls:
            raise LLMError(f"No response from LLM (stop reason: {response.stop_reason})")

        usage = getattr(response, "usage", None)
        return LLMResponse(
            text=text,
            tool_calls=tool_calls,
            input_tokens=getattr(usage, "input_tokens", 0) or 0,
            output_tokens=getattr(usage, "output_tokens", 0) or 0,
        )
