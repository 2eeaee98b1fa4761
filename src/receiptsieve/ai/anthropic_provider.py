"""Anthropic AI provider: Claude API client with tool calling."""

from __future__ import annotations

from receiptsieve.ai.base import LLMResponse, ToolCall

DEFAULT_MODEL = "claude-sonnet-4-5-20250929"


class AnthropicProvider:
    """Anthropic API client for Claude models."""

    def __init__(self, default_model: str = DEFAULT_MODEL):
        self.default_model = default_model
        self._client = None

    def _get_client(self):
        if self._client is None:
            import anthropic
            self._client = anthropic.Anthropic()
        return self._client

    def chat(
        self,
        messages: list[dict],
        max_tokens: int = 4096,
        system_prompt: str | None = None,
        tools: list[dict] | None = None,
        model: str | None = None,
    ) -> LLMResponse:
        """Send a conversation to Claude and collect text and tool_use blocks."""
        client = self._get_client()

        kwargs: dict = {
            "model": model or self.default_model,
            "max_tokens": max_tokens,
            "messages": messages,
        }
        if system_prompt:
            kwargs["system"] = system_prompt
        if tools:
            kwargs["tools"] = [to_anthropic_tool(t) for t in tools]
            if len(tools) == 1:
                kwargs["tool_choice"] = {"type": "tool", "name": tools[0]["name"]}

        response = client.messages.create(**kwargs)

        text = ""
        calls: list[ToolCall] = []
        for block in response.content:
            block_type = getattr(block, "type", None)
            if block_type == "tool_use":
                calls.append(ToolCall(name=block.name, input=dict(block.input or {}), id=block.id))
            elif hasattr(block, "text"):
                text += block.text

        return LLMResponse(content=text, tool_calls=calls, stop_reason=getattr(response, "stop_reason", None))


def to_anthropic_tool(tool: dict) -> dict:
    return {
        "name": tool["name"],
        "description": tool.get("description", ""),
        "input_schema": tool["parameters"],
    }
