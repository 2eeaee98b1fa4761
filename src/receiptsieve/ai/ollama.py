"""Ollama AI provider: HTTP client for local LLM inference with tool calling."""

from __future__ import annotations

import json
import logging
import time

import httpx

from receiptsieve.ai.base import LLMResponse, ToolCall

logger = logging.getLogger(__name__)


class OllamaProvider:
    """Ollama HTTP API client for local or cloud inference."""

    def __init__(
        self,
        base_url: str = "http://localhost:11434",
        api_key: str = "",
        default_model: str = "llama3.1",
        max_retries: int = 3,
        timeout: float = 120.0,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.default_model = default_model
        self.max_retries = max_retries
        self.timeout = timeout

    def chat(
        self,
        messages: list[dict],
        max_tokens: int = 4096,
        system_prompt: str | None = None,
        tools: list[dict] | None = None,
        model: str | None = None,
    ) -> LLMResponse:
        """POST /api/chat and translate the reply into an LLMResponse."""
        chat_messages = list(messages)
        if system_prompt:
            chat_messages = [{"role": "system", "content": system_prompt}] + chat_messages

        payload: dict = {
            "model": model or self.default_model,
            "messages": chat_messages,
            "stream": False,
            "options": {"num_predict": max_tokens},
        }
        if tools:
            payload["tools"] = [to_ollama_tool(t) for t in tools]

        headers = {}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        for attempt in range(self.max_retries):
            try:
                with httpx.Client(timeout=self.timeout) as client:
                    resp = client.post(
                        f"{self.base_url}/api/chat",
                        json=payload,
                        headers=headers,
                    )
                    resp.raise_for_status()
                return parse_chat_response(resp.json())

            except (httpx.ConnectError, httpx.TimeoutException) as e:
                if attempt < self.max_retries - 1:
                    logger.warning("Ollama request failed (attempt %d): %s", attempt + 1, e)
                    time.sleep(2 ** attempt)
                    continue
                raise ConnectionError(
                    f"Failed to connect to Ollama at {self.base_url}: {e}"
                ) from e

        raise ConnectionError(f"Failed to connect to Ollama at {self.base_url}")


def to_ollama_tool(tool: dict) -> dict:
    return {
        "type": "function",
        "function": {
            "name": tool["name"],
            "description": tool.get("description", ""),
            "parameters": tool["parameters"],
        },
    }


def parse_chat_response(data: dict) -> LLMResponse:
    """Pull text and tool calls out of an /api/chat response body."""
    message = data.get("message") or {}
    calls: list[ToolCall] = []
    for i, raw in enumerate(message.get("tool_calls") or []):
        function = raw.get("function") or {}
        arguments = function.get("arguments") or {}
        # Some models return arguments as a JSON string.
        if isinstance(arguments, str):
            try:
                arguments = json.loads(arguments)
            except json.JSONDecodeError:
                arguments = {}
        calls.append(ToolCall(name=function.get("name", ""), input=arguments, id=raw.get("id", f"call_{i}")))

    return LLMResponse(
        content=message.get("content", "") or "",
        tool_calls=calls,
        stop_reason=data.get("done_reason"),
    )
