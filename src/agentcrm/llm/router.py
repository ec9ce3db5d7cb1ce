"""LLM router for dispatching to the right model based on role.

Roles:
- intent: turns a conversation into a tool call or a conversational reply
- planner: structured extraction (analytics query plans, transcript facts)
- narrator: writes the user-facing summary of a tool result

Supported providers:
- ollama: Local models via Ollama (default)
- anthropic: Claude models via Anthropic API
- openai: GPT models via OpenAI API

Environment variables:
- ACRM_LLM_PROVIDER: Provider to use (ollama, anthropic, openai)
- ACRM_ANTHROPIC_API_KEY / ANTHROPIC_API_KEY
- ACRM_OPENAI_API_KEY / OPENAI_API_KEY
- ACRM_INTENT_MODEL, ACRM_PLANNER_MODEL, ACRM_NARRATOR_MODEL
- ACRM_INTENT_TEMPERATURE, ACRM_PLANNER_TEMPERATURE, ACRM_NARRATOR_TEMPERATURE
"""

import importlib
import importlib.util
import logging
import os
from typing import Any

from agentcrm.errors import LLMError
from agentcrm.llm.ollama_client import ollama_chat

logger = logging.getLogger(__name__)

ROLES = ("intent", "planner", "narrator")

DEFAULT_MODELS = {
    "ollama": {
        "intent": "qwen2.5:14b-instruct",
        "planner": "qwen2.5:14b-instruct",
        "narrator": "llama3.1:8b",
    },
    "anthropic": {
        "intent": "claude-3-5-haiku-20241022",
        "planner": "claude-3-5-sonnet-20241022",
        "narrator": "claude-3-5-haiku-20241022",
    },
    "openai": {
        "intent": "gpt-4o-mini",
        "planner": "gpt-4o",
        "narrator": "gpt-4o-mini",
    },
}

DEFAULT_TEMPERATURES = {"intent": "0", "planner": "0", "narrator": "0.3"}


def _call_anthropic(
    messages: list[dict[str, str]],
    model: str,
    temperature: float,
    max_tokens: int | None,
    timeout: int,
) -> str:
    """Call Anthropic API (Claude models)."""
    try:
        anthropic = importlib.import_module("anthropic")
    except ImportError as e:
        raise ImportError(
            "anthropic package not installed. Install with: pip install 'agentcrm[anthropic]'"
        ) from e

    api_key = os.environ.get("ACRM_ANTHROPIC_API_KEY") or os.environ.get("ANTHROPIC_API_KEY")
    if not api_key:
        raise ValueError(
            "Anthropic API key not found. "
            "Set ACRM_ANTHROPIC_API_KEY or ANTHROPIC_API_KEY environment variable."
        )

    client = anthropic.Anthropic(api_key=api_key, timeout=timeout)

    # Anthropic takes the system prompt separately
    system_content = None
    api_messages = []
    for msg in messages:
        if msg["role"] == "system":
            system_content = msg["content"]
        else:
            api_messages.append(msg)

    response = client.messages.create(
        model=model,
        max_tokens=max_tokens or 4096,
        temperature=temperature,
        system=system_content or "You are a helpful CRM assistant.",
        messages=api_messages,
    )
    return response.content[0].text


def _call_openai(
    messages: list[dict[str, str]],
    model: str,
    temperature: float,
    max_tokens: int | None,
    timeout: int,
) -> str:
    """Call OpenAI API (GPT models)."""
    try:
        openai_module = importlib.import_module("openai")
    except ImportError as e:
        raise ImportError(
            "openai package not installed. Install with: pip install 'agentcrm[openai]'"
        ) from e

    api_key = os.environ.get("ACRM_OPENAI_API_KEY") or os.environ.get("OPENAI_API_KEY")
    if not api_key:
        raise ValueError(
            "OpenAI API key not found. "
            "Set ACRM_OPENAI_API_KEY or OPENAI_API_KEY environment variable."
        )

    client = openai_module.OpenAI(api_key=api_key, timeout=timeout)
    response = client.chat.completions.create(
        model=model,
        messages=messages,
        temperature=temperature,
        max_tokens=max_tokens or 4096,
    )
    return response.choices[0].message.content or ""


def resolve_model(role: str, provider: str) -> str:
    default_model = DEFAULT_MODELS.get(provider, DEFAULT_MODELS["ollama"])[role]
    return os.environ.get(f"ACRM_{role.upper()}_MODEL", default_model)


def call_llm(
    messages: list[dict[str, str]],
    *,
    role: str = "planner",
    max_tokens: int | None = None,
    timeout: int = 60,
    provider: str | None = None,
    model: str | None = None,
    temperature_override: float | None = None,
) -> str:
    """Route an LLM call to the model configured for ``role``.

    Args:
        messages: List of message dicts with 'role' and 'content'
        role: One of 'intent', 'planner' or 'narrator'
        max_tokens: Maximum tokens in response (optional)
        timeout: Request timeout in seconds
        provider: Override ACRM_LLM_PROVIDER
        model: Override the role's model
        temperature_override: Override the role's temperature

    Returns:
        Response text content

    Raises:
        ValueError: If role or provider is unknown
        LLMError: If the provider call fails
    """
    if role not in ROLES:
        raise ValueError(f"Invalid role: {role}. Must be one of {', '.join(ROLES)}")

    resolved_provider = (provider or os.environ.get("ACRM_LLM_PROVIDER", "ollama")).lower()
    if resolved_provider not in DEFAULT_MODELS:
        raise ValueError(
            f"Unsupported LLM provider: {resolved_provider}. Supported: ollama, anthropic, openai"
        )

    role_model = model or resolve_model(role, resolved_provider)
    temperature = float(
        os.environ.get(f"ACRM_{role.upper()}_TEMPERATURE", DEFAULT_TEMPERATURES[role])
    )
    if temperature_override is not None:
        temperature = temperature_override
    if role == "narrator":
        timeout = max(timeout, 90)

    logger.debug("LLM call role=%s provider=%s model=%s", role, resolved_provider, role_model)
    try:
        if resolved_provider == "anthropic":
            return _call_anthropic(messages, role_model, temperature, max_tokens, timeout)
        if resolved_provider == "openai":
            return _call_openai(messages, role_model, temperature, max_tokens, timeout)
        return ollama_chat(
            messages,
            model=role_model,
            temperature=temperature,
            max_tokens=max_tokens,
            timeout=timeout,
        )
    except Exception as e:
        logger.error("LLM call failed (role=%s, provider=%s): %s", role, resolved_provider, e)
        raise LLMError(str(e), provider=resolved_provider, role=role) from e


def _has_module(module_name: str) -> bool:
    """Return True when a module is installed in the current environment."""
    return importlib.util.find_spec(module_name) is not None


def get_available_providers() -> list[str]:
    """List providers usable with the installed packages and configured keys."""
    available = ["ollama"]
    if _has_module("anthropic") and (
        os.environ.get("ACRM_ANTHROPIC_API_KEY") or os.environ.get("ANTHROPIC_API_KEY")
    ):
        available.append("anthropic")
    if _has_module("openai") and (
        os.environ.get("ACRM_OPENAI_API_KEY") or os.environ.get("OPENAI_API_KEY")
    ):
        available.append("openai")
    return available


def get_current_config() -> dict[str, Any]:
    """Describe the active provider and per-role models."""
    provider = os.environ.get("ACRM_LLM_PROVIDER", "ollama").lower()
    lookup = provider if provider in DEFAULT_MODELS else "ollama"
    return {
        "provider": provider,
        "models": {role: resolve_model(role, lookup) for role in ROLES},
        "available_providers": get_available_providers(),
    }
