"""Ollama chat endpoint wrapper with retry and backoff."""

import logging
import os
import time

import requests

logger = logging.getLogger(__name__)


def _backoff(attempt: int) -> None:
    # 0.5s, 1s, 2s
    time.sleep(0.5 * (2 ** attempt))


def ollama_chat(
    messages: list[dict[str, str]],
    *,
    model: str,
    temperature: float = 0.0,
    max_tokens: int | None = None,
    timeout: int = 30,
) -> str:
    """Call the Ollama ``/api/chat`` endpoint and return the reply text.

    Args:
        messages: List of message dicts with 'role' and 'content'
        model: Ollama model name (e.g. qwen2.5:7b-instruct)
        temperature: Sampling temperature
        max_tokens: Maximum tokens in response, sent as ``num_predict``
        timeout: Request timeout in seconds

    Returns:
        Response text content

    Raises:
        ConnectionError: If the Ollama service cannot be reached after retries
        ValueError: On timeouts, HTTP errors or malformed responses after retries
    """
    base_url = os.environ.get("ACRM_OLLAMA_BASE_URL", "http://localhost:11434")
    max_retries = int(os.environ.get("ACRM_MAX_RETRIES", "2"))
    endpoint = f"{base_url}/api/chat"

    # The intent prompt carries the full tool catalog and examples; the
    # Ollama default context of 2048 tokens truncates it silently.
    num_ctx = int(os.environ.get("ACRM_OLLAMA_NUM_CTX", "8192"))

    payload = {
        "model": model,
        "messages": messages,
        "stream": False,
        "options": {
            "temperature": temperature,
            "num_ctx": num_ctx,
        },
    }
    if max_tokens is not None:
        payload["options"]["num_predict"] = max_tokens

    last_error: Exception | None = None
    for attempt in range(max_retries + 1):
        response = None
        try:
            response = requests.post(endpoint, json=payload, timeout=timeout)
            response.raise_for_status()

            result = response.json()
            if "message" not in result or "content" not in result["message"]:
                raise ValueError(f"Unexpected Ollama response format: {result}")
            return result["message"]["content"]

        except requests.exceptions.ConnectionError as e:
            last_error = e
            if attempt < max_retries:
                logger.warning("Ollama unreachable at %s (attempt %d), retrying", base_url, attempt + 1)
                _backoff(attempt)
                continue
            raise ConnectionError(
                f"Cannot connect to Ollama at {base_url}. "
                "Ensure Ollama is running (ollama serve or Ollama app)."
            ) from e

        except requests.exceptions.Timeout as e:
            last_error = e
            if attempt < max_retries:
                _backoff(attempt)
                continue
            raise ValueError(f"Ollama request timed out after {timeout}s (model: {model})") from e

        except requests.exceptions.HTTPError as e:
            last_error = e
            status = response.status_code if response is not None else 0
            # 5xx is transient
            if 500 <= status < 600 and attempt < max_retries:
                _backoff(attempt)
                continue
            body = response.text if response is not None else ""
            raise ValueError(f"Ollama API error ({status}): {body}") from e

        except ValueError as e:
            last_error = e
            if attempt < max_retries:
                _backoff(attempt)
                continue
            raise

    raise ValueError(f"Failed after {max_retries} retries. Last error: {last_error}")
