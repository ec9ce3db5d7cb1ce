"""Tests for the LLM router."""

from unittest.mock import patch

import pytest

from agentcrm.errors import LLMError
from agentcrm.llm.router import call_llm, get_current_config, resolve_model

MESSAGES = [{"role": "user", "content": "hi"}]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("ACRM_LLM_PROVIDER", "ACRM_INTENT_MODEL", "ACRM_NARRATOR_TEMPERATURE"):
        monkeypatch.delenv(name, raising=False)


def test_invalid_role():
    with pytest.raises(ValueError, match="Invalid role"):
        call_llm(MESSAGES, role="poet")


def test_unknown_provider():
    with pytest.raises(ValueError, match="Unsupported LLM provider"):
        call_llm(MESSAGES, role="intent", provider="carrier-pigeon")


def test_ollama_call_uses_role_model():
    with patch("agentcrm.llm.router.ollama_chat", return_value="hello") as chat:
        assert call_llm(MESSAGES, role="intent") == "hello"

    assert chat.call_args.kwargs["model"] == "qwen2.5:14b-instruct"
    assert chat.call_args.kwargs["temperature"] == 0.0


def test_model_env_override(monkeypatch):
    monkeypatch.setenv("ACRM_INTENT_MODEL", "llama3.2:3b")

    assert resolve_model("intent", "ollama") == "llama3.2:3b"


def test_narrator_gets_longer_timeout():
    with patch("agentcrm.llm.router.ollama_chat", return_value="ok") as chat:
        call_llm(MESSAGES, role="narrator", timeout=30)

    assert chat.call_args.kwargs["timeout"] == 90


def test_provider_failure_is_wrapped():
    with patch("agentcrm.llm.router.ollama_chat", side_effect=ConnectionError("refused")):
        with pytest.raises(LLMError) as excinfo:
            call_llm(MESSAGES, role="planner")

    assert excinfo.value.provider == "ollama"
    assert excinfo.value.role == "planner"
    assert "refused" in str(excinfo.value)


def test_missing_api_key_is_an_llm_error(monkeypatch):
    monkeypatch.delenv("ACRM_OPENAI_API_KEY", raising=False)
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)

    with patch("agentcrm.llm.router.importlib.import_module"):
        with pytest.raises(LLMError, match="OpenAI API key not found"):
            call_llm(MESSAGES, role="intent", provider="openai")


def test_current_config(monkeypatch):
    monkeypatch.setenv("ACRM_LLM_PROVIDER", "openai")

    config = get_current_config()

    assert config["provider"] == "openai"
    assert config["models"]["planner"] == "gpt-4o"
    assert "ollama" in config["available_providers"]
