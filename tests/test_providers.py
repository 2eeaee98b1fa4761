"""Tests for the LLM providers (mocked transports) and the provider factory."""

from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import httpx
import pytest

from receiptsieve.ai import get_provider, parse_model_spec
from receiptsieve.ai.anthropic_provider import AnthropicProvider, to_anthropic_tool
from receiptsieve.ai.base import LLMProvider
from receiptsieve.ai.ollama import OllamaProvider, parse_chat_response, to_ollama_tool
from receiptsieve.ai.prompts import EXTRACTION_TOOL, EXTRACTION_TOOL_NAME

MESSAGES = [{"role": "user", "content": "Extract this"}]


def test_get_provider_ollama():
    provider, model = get_provider("ollama:llama3.1", {"ollama_base_url": "http://gpu-box:11434/"})
    assert isinstance(provider, OllamaProvider)
    assert model == "llama3.1"
    assert provider.base_url == "http://gpu-box:11434"
    assert provider.default_model == "llama3.1"


def test_get_provider_anthropic_default():
    provider, model = get_provider("claude-sonnet-4-5-20250929")
    assert isinstance(provider, AnthropicProvider)
    assert model == "claude-sonnet-4-5-20250929"
    assert isinstance(provider, LLMProvider)


def test_get_provider_unknown():
    with pytest.raises(ValueError, match="Unknown AI provider"):
        get_provider("openai:gpt-4o")


def test_tool_conversion():
    anthropic_tool = to_anthropic_tool(EXTRACTION_TOOL)
    assert anthropic_tool["name"] == EXTRACTION_TOOL_NAME
    assert anthropic_tool["input_schema"]["type"] == "object"
    assert "merchant_name" in anthropic_tool["input_schema"]["required"]

    ollama_tool = to_ollama_tool(EXTRACTION_TOOL)
    assert ollama_tool["type"] == "function"
    assert ollama_tool["function"]["parameters"] is EXTRACTION_TOOL["parameters"]


def test_anthropic_chat_forces_single_tool():
    provider = AnthropicProvider(default_model="claude-test")
    provider._client = MagicMock()
    provider._client.messages.create.return_value = SimpleNamespace(
        content=[
            SimpleNamespace(type="text", text="Here you go."),
            SimpleNamespace(type="tool_use", name=EXTRACTION_TOOL_NAME, input={"merchant_name": "Zara"}, id="toolu_9"),
        ],
        stop_reason="tool_use",
    )

    response = provider.chat(MESSAGES, max_tokens=1000, system_prompt="sys", tools=[EXTRACTION_TOOL])

    kwargs = provider._client.messages.create.call_args.kwargs
    assert kwargs["model"] == "claude-test"
    assert kwargs["max_tokens"] == 1000
    assert kwargs["system"] == "sys"
    assert kwargs["tool_choice"] == {"type": "tool", "name": EXTRACTION_TOOL_NAME}
    assert kwargs["tools"][0]["input_schema"] is EXTRACTION_TOOL["parameters"]

    assert response.content == "Here you go."
    assert response.stop_reason == "tool_use"
    call = response.tool_call(EXTRACTION_TOOL_NAME)
    assert call.input == {"merchant_name": "Zara"}
    assert call.id == "toolu_9"


def test_anthropic_chat_without_tools():
    provider = AnthropicProvider()
    provider._client = MagicMock()
    provider._client.messages.create.return_value = SimpleNamespace(
        content=[SimpleNamespace(type="text", text="hi")], stop_reason="end_turn"
    )

    response = provider.chat(MESSAGES, model="claude-other")

    kwargs = provider._client.messages.create.call_args.kwargs
    assert kwargs["model"] == "claude-other"
    assert "tools" not in kwargs
    assert "system" not in kwargs
    assert response.tool_calls == []


def _ollama_reply():
    return {
        "message": {
            "role": "assistant",
            "content": "",
            "tool_calls": [
                {"function": {"name": EXTRACTION_TOOL_NAME, "arguments": {"merchant_name": "Elkjøp"}}}
            ],
        },
        "done_reason": "stop",
    }


def test_ollama_chat_posts_payload():
    provider = OllamaProvider(base_url="http://localhost:11434", api_key="secret", default_model="qwen2.5")

    with patch("receiptsieve.ai.ollama.httpx.Client") as client_cls:
        client = client_cls.return_value.__enter__.return_value
        client.post.return_value.json.return_value = _ollama_reply()

        response = provider.chat(MESSAGES, max_tokens=512, system_prompt="sys", tools=[EXTRACTION_TOOL])

    url = client.post.call_args.args[0]
    payload = client.post.call_args.kwargs["json"]
    headers = client.post.call_args.kwargs["headers"]
    assert url == "http://localhost:11434/api/chat"
    assert payload["model"] == "qwen2.5"
    assert payload["stream"] is False
    assert payload["options"] == {"num_predict": 512}
    assert payload["messages"][0] == {"role": "system", "content": "sys"}
    assert payload["messages"][1:] == MESSAGES
    assert payload["tools"][0]["function"]["name"] == EXTRACTION_TOOL_NAME
    assert headers == {"Authorization": "Bearer secret"}

    assert response.tool_call(EXTRACTION_TOOL_NAME).input == {"merchant_name": "Elkjøp"}
    assert response.stop_reason == "stop"


def test_ollama_retries_then_raises_connection_error():
    provider = OllamaProvider(max_retries=2)

    with patch("receiptsieve.ai.ollama.httpx.Client") as client_cls, \
            patch("receiptsieve.ai.ollama.time.sleep") as sleep:
        client_cls.return_value.__enter__.return_value.post.side_effect = httpx.ConnectError("refused")

        with pytest.raises(ConnectionError, match="Failed to connect to Ollama"):
            provider.chat(MESSAGES)

    assert sleep.call_count == 1


def test_parse_chat_response_string_arguments():
    response = parse_chat_response(
        {
            "message": {
                "content": "ok",
                "tool_calls": [
                    {"function": {"name": "a", "arguments": '{"x": 1}'}},
                    {"function": {"name": "b", "arguments": "not json"}},
                ],
            }
        }
    )
    assert response.content == "ok"
    assert response.tool_calls[0].input == {"x": 1}
    assert response.tool_calls[0].id == "call_0"
    assert response.tool_calls[1].input == {}


def test_parse_chat_response_empty():
    response = parse_chat_response({})
    assert response.content == ""
    assert response.tool_calls == []
    assert response.tool_call("anything") is None


def test_parse_model_spec():
    assert parse_model_spec("ollama:qwen2.5:7b") == ("ollama", "qwen2.5:7b")
    assert parse_model_spec("claude-haiku") == ("anthropic", "claude-haiku")
    with pytest.raises(ValueError, match="No model name"):
        parse_model_spec("ollama:")
