"""Chat-completion client — wraps the openai SDK for tool-calling requests.

Works against any OpenAI-compatible backend (OpenAI, DeepSeek, Zhipu, Qwen,
OpenRouter, LM Studio).  ``create_client`` resolves a provider preset plus
explicit overrides into a ready ``ChatClient``.

The SDK's own retry machinery is disabled: ``ChatClient`` retries the whole
request itself with exponential backoff so the attempt count and delays are
exactly those configured.
"""

import logging
import os
import time
from typing import Any

import openai as _openai

from papersum.models import (
    ChatCompletionResponse,
    ChatMessage,
    Config,
    ConfigurationError,
    ConnectionTestResult,
    LLMError,
)

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_S = 120.0
DEFAULT_RETRIES = 3
DEFAULT_RETRY_BASE_DELAY_S = 1.0
DEFAULT_TEMPERATURE = 0.7
DEFAULT_MAX_TOKENS = 4096

# ---------------------------------------------------------------------------
# Provider presets
# ---------------------------------------------------------------------------

PROVIDER_PRESETS: dict[str, dict[str, str]] = {
    "openai": {
        "base_url": "https://api.openai.com/v1",
        "model": "gpt-4o",
        "display_name": "OpenAI",
    },
    "deepseek": {
        "base_url": "https://api.deepseek.com",
        "model": "deepseek-chat",
        "display_name": "DeepSeek",
    },
    "zhipu": {
        "base_url": "https://open.bigmodel.cn/api/paas/v4",
        "model": "glm-4-plus",
        "display_name": "Zhipu AI",
    },
    "qwen": {
        "base_url": "https://dashscope.aliyuncs.com/compatible-mode/v1",
        "model": "qwen-plus",
        "display_name": "Qwen",
    },
    "openrouter": {
        "base_url": "https://openrouter.ai/api/v1",
        "model": "openai/gpt-4o-mini",
        "display_name": "OpenRouter",
    },
    "lmstudio": {
        "base_url": "http://localhost:1234/v1",
        "model": "local-model",
        "display_name": "LM Studio",
    },
    "custom": {"base_url": "", "model": "", "display_name": "Custom"},
}

_LMSTUDIO_DUMMY_KEY = "lm-studio"


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------


class ChatClient:
    """OpenAI-compatible chat client with tool-calling, retry and timeout.

    Attributes:
        model:    Model identifier sent with every request.
        base_url: API base URL without trailing slash; requests go to
                  ``{base_url}/chat/completions``.
    """

    def __init__(
        self,
        model: str,
        base_url: str,
        api_key: str,
        extra_headers: dict | None = None,
        timeout_s: float = DEFAULT_TIMEOUT_S,
        retries: int = DEFAULT_RETRIES,
        retry_base_delay_s: float = DEFAULT_RETRY_BASE_DELAY_S,
        max_output_tokens: int = DEFAULT_MAX_TOKENS,
    ) -> None:
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.timeout_s = timeout_s
        self.retries = max(1, retries)
        self.retry_base_delay_s = retry_base_delay_s
        self.max_output_tokens = max_output_tokens
        self._client = _openai.OpenAI(
            base_url=self.base_url,
            api_key=api_key,
            default_headers=extra_headers or {},
            max_retries=0,
        )

    def chat(
        self,
        messages: list[ChatMessage],
        tools: list[dict] | None = None,
        *,
        temperature: float | None = None,
        max_tokens: int | None = None,
        tool_choice: str | dict | None = None,
    ) -> ChatCompletionResponse:
        """Send one chat-completion request and return the parsed response.

        Raises:
            LLMError: when every attempt failed; chained to the last error.
        """
        kwargs: dict[str, Any] = dict(
            model=self.model,
            messages=[message.to_wire() for message in messages],
            temperature=DEFAULT_TEMPERATURE if temperature is None else temperature,
            max_tokens=max_tokens or self.max_output_tokens,
            timeout=self.timeout_s,
        )
        if tools:
            kwargs["tools"] = tools
            kwargs["tool_choice"] = tool_choice or "auto"

        raw = self._create_with_retries(kwargs)
        try:
            return ChatCompletionResponse.model_validate(raw.model_dump())
        except Exception as exc:
            raise LLMError(f"Unexpected chat-completion response: {exc}") from exc

    def test_connection(self) -> ConnectionTestResult:
        """Run a minimal exchange to check credentials and endpoint.

        Never raises; failures are reported in the result.
        """
        t0 = time.monotonic()
        try:
            response = self.chat([ChatMessage(role="user", content="Hi")], max_tokens=5)
        except Exception as exc:
            return ConnectionTestResult(success=False, error=str(exc))
        latency_ms = (time.monotonic() - t0) * 1000
        return ConnectionTestResult(
            success=True,
            latency_ms=round(latency_ms, 1),
            model=response.model or self.model,
        )

    def _create_with_retries(self, kwargs: dict[str, Any]):
        for attempt in range(1, self.retries + 1):
            try:
                return self._client.chat.completions.create(**kwargs)
            except Exception as exc:
                if attempt >= self.retries:
                    raise LLMError(
                        f"Chat request failed after {attempt} attempt(s): {exc}"
                    ) from exc
                delay_s = retry_delay_seconds(attempt, self.retry_base_delay_s)
                logger.warning(
                    "Chat request failed on attempt %d/%d (%s); retrying in %.1fs",
                    attempt,
                    self.retries,
                    exc,
                    delay_s,
                )
                time.sleep(delay_s)

        raise LLMError("Chat request failed after retries")


def retry_delay_seconds(attempt: int, base_delay_s: float = DEFAULT_RETRY_BASE_DELAY_S) -> float:
    """Exponential backoff after failed attempt ``attempt``: base, 2*base, 4*base, ..."""
    return float(base_delay_s * 2 ** (attempt - 1))


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------


def validate_provider_config(
    base_url: str | None, api_key: str | None, model: str | None
) -> bool:
    """True when all three values are present and non-blank."""
    return all(value and value.strip() for value in (base_url, api_key, model))


def resolve_provider(config: Config) -> tuple[str, str]:
    """Return ``(base_url, model)`` from explicit config, else the preset.

    Raises:
        ConfigurationError: for an unknown preset name.
    """
    preset = PROVIDER_PRESETS.get(config.provider)
    if preset is None:
        raise ConfigurationError(
            f"Unknown provider {config.provider!r}; "
            f"choose one of: {', '.join(PROVIDER_PRESETS)}"
        )
    base_url = config.base_url or preset["base_url"]
    model = config.model or preset["model"]
    return base_url, model


def create_client(config: Config) -> ChatClient:
    """Create a ``ChatClient`` from configuration.

    API key resolution order:
        1. ``config.api_key`` (explicit)
        2. ``LLM_API_KEY`` environment variable
        3. ``"lm-studio"`` for the ``lmstudio`` preset only (LM Studio
           ignores the value)

    OpenRouter attribution headers are added when the base URL points there.

    Raises:
        ConfigurationError: if base URL, API key or model cannot be resolved.
    """
    base_url, model = resolve_provider(config)
    api_key = config.api_key or os.environ.get("LLM_API_KEY")
    if not api_key and config.provider == "lmstudio":
        api_key = _LMSTUDIO_DUMMY_KEY

    if not validate_provider_config(base_url, api_key, model):
        missing = [
            name
            for name, value in (("base URL", base_url), ("API key", api_key), ("model", model))
            if not (value and value.strip())
        ]
        raise ConfigurationError(
            f"AI provider is not configured (missing {', '.join(missing)}). "
            "Set LLM_API_KEY or pass --base-url/--model."
        )

    extra_headers: dict = {}
    if "openrouter.ai" in base_url:
        extra_headers = {
            "HTTP-Referer": "https://github.com/papersum",
            "X-Title": "papersum",
        }

    return ChatClient(
        model=model,
        base_url=base_url,
        api_key=api_key,
        extra_headers=extra_headers,
        timeout_s=config.timeout_s,
        retries=config.retries,
        retry_base_delay_s=config.retry_base_delay_s,
        max_output_tokens=config.max_output_tokens,
    )
