"""LLM provider protocol."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable


@dataclass
class ToolCall:
    name: str
    input: dict[str, Any]
    id: str = ""


@dataclass
class LLMResponse:
    content: str = ""
    tool_calls: list[ToolCall] = field(default_factory=list)
    stop_reason: str | None = None

    def tool_call(self, name: str) -> ToolCall | None:
        """Return the first call to the named tool, if any."""
        for call in self.tool_calls:
            if call.name == name:
                return call
        return None


@runtime_checkable
class LLMProvider(Protocol):
    """Protocol for chat-style model providers with tool calling."""

    def chat(
        self,
        messages: list[dict],
        max_tokens: int = 4096,
        system_prompt: str | None = None,
        tools: list[dict] | None = None,
        model: str | None = None,
    ) -> LLMResponse:
        """Send a conversation and return text plus any tool calls.

        Args:
            messages: [{"role": "user" | "assistant", "content": str}, ...]
            max_tokens: maximum tokens to generate
            system_prompt: optional system prompt
            tools: provider-neutral tool dicts {name, description, parameters}
            model: model name; the provider's default when omitted
        """
        ...
