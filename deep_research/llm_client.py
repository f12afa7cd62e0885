"""Chat-completion providers behind a single `invoke` call.

Provider kinds form a closed set (Anthropic, OpenRouter, mock). The concrete
implementation is chosen once per call from the kind and the active
`ResearchConfig`; when mock mode is on every kind resolves to the mock.
"""
from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any

from deep_research.config import ModelNames, ResearchConfig, default_config
from deep_research.services import logger as log_service


class ProviderKind(str, Enum):
    ANTHROPIC = "anthropic"
    OPENROUTER = "openrouter"
    MOCK = "mock"

    @classmethod
    def parse(cls, value: "str | ProviderKind | None", default: "ProviderKind | None" = None) -> "ProviderKind":
        if isinstance(value, ProviderKind):
            return value
        lowered = (value or "").lower().strip()
        for kind in cls:
            if kind.value == lowered:
                return kind
        if default is not None:
            return default
        raise ValueError(f"Unsupported provider: {value}")


@dataclass(frozen=True)
class Capability:
    provider: ProviderKind
    model: str
    temperature: float = 0.7
    max_output_tokens: int = 4096


class ProviderError(Exception):
    """A completion call failed.

    `status_code` is set only when the failure came back as an HTTP response;
    without it the failure is not retryable.
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        retry_after: float | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.retry_after = retry_after

    @property
    def retryable(self) -> bool:
        return self.status_code is not None


def _retry_after_seconds(headers: Any) -> float | None:
    if headers is None:
        return None
    try:
        raw = headers.get("retry-after")
    except AttributeError:
        return None
    if raw is None:
        return None
    try:
        return float(str(raw).strip().rstrip("s"))
    except ValueError:
        return None


def _split_system_prompt(prompt: str) -> tuple[str, str]:
    """Lift a leading system paragraph out of a single-message prompt."""
    head, sep, rest = prompt.partition("\n\n")
    if not sep or not rest.strip():
        return "", prompt
    return head.strip(), rest


class CompletionProvider:
    kind: ProviderKind

    async def complete(self, capability: Capability, prompt: str) -> str:
        raise NotImplementedError


class OpenRouterProvider(CompletionProvider):
    """OpenRouter through the OpenAI-compatible SDK."""

    kind = ProviderKind.OPENROUTER

    def __init__(self, config: ResearchConfig, client: Any | None = None):
        self._config = config
        self._client = client

    def _get_client(self) -> Any:
        if self._client is None:
            from openai import AsyncOpenAI

            if not self._config.openrouter_api_key:
                raise ProviderError("OPENROUTER_API_KEY is not configured")
            self._client = AsyncOpenAI(
                api_key=self._config.openrouter_api_key,
                base_url=self._config.openrouter_base_url,
                timeout=self._config.request_timeout_seconds,
                max_retries=0,
            )
        return self._client

    @staticmethod
    def _to_messages(prompt: str) -> list[dict[str, str]]:
        system, user = _split_system_prompt(prompt)
        messages: list[dict[str, str]] = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": user})
        return messages

    async def complete(self, capability: Capability, prompt: str) -> str:
        import openai

        client = self._get_client()
        try:
            response = await client.chat.completions.create(
                model=capability.model,
                messages=self._to_messages(prompt),
                temperature=capability.temperature,
                max_tokens=capability.max_output_tokens,
                extra_headers={
                    "HTTP-Referer": "https://deep-research-server",
                    "X-Title": "Deep Research Server",
                },
            )
        except openai.APIStatusError as e:
            raise ProviderError(
                f"OpenRouter API error: {e.status_code} {e.message}",
                status_code=e.status_code,
                retry_after=_retry_after_seconds(getattr(e.response, "headers", None)),
            ) from e
        except openai.APIError as e:
            raise ProviderError(f"OpenRouter request failed: {e}") from e

        choices = getattr(response, "choices", None) or []
        if not choices:
            raise ProviderError("OpenRouter returned no choices")
        return getattr(choices[0].message, "content", None) or ""


class AnthropicProvider(CompletionProvider):
    """Anthropic Messages API."""

    kind = ProviderKind.ANTHROPIC

    def __init__(self, config: ResearchConfig, client: Any | None = None):
        self._config = config
        self._client = client

    def _get_client(self) -> Any:
        if self._client is None:
            import anthropic

            if not self._config.anthropic_api_key:
                raise ProviderError("ANTHROPIC_API_KEY is not configured")
            self._client = anthropic.AsyncAnthropic(
                api_key=self._config.anthropic_api_key,
                timeout=self._config.request_timeout_seconds,
                max_retries=0,
            )
        return self._client

    async def complete(self, capability: Capability, prompt: str) -> str:
        import anthropic

        client = self._get_client()
        system, user = _split_system_prompt(prompt)
        kwargs: dict[str, Any] = {
            "model": capability.model,
            "max_tokens": capability.max_output_tokens,
            "temperature": capability.temperature,
            "messages": [{"role": "user", "content": user}],
        }
        if system:
            kwargs["system"] = system
        try:
            response = await client.messages.create(**kwargs)
        except anthropic.APIStatusError as e:
            raise ProviderError(
                f"Anthropic API error: {e.status_code} {e.message}",
                status_code=e.status_code,
                retry_after=_retry_after_seconds(getattr(e.response, "headers", None)),
            ) from e
        except anthropic.APIError as e:
            raise ProviderError(f"Anthropic request failed: {e}") from e

        text_blocks = [b for b in response.content if getattr(b, "type", None) == "text"]
        return "\n".join(b.text for b in text_blocks)


def get_provider(kind: ProviderKind | str, config: ResearchConfig | None = None) -> CompletionProvider:
    """Resolve the implementation for `kind` under `config`.

    Mock mode replaces every kind with the mock; callers are not told.
    """
    from deep_research.tools.mock_llm import MockProvider

    config = config or default_config()
    resolved = ProviderKind.parse(kind)
    if config.mock_mode or resolved is ProviderKind.MOCK:
        return MockProvider(latency_ms=config.mock_llm_latency_ms)
    if resolved is ProviderKind.ANTHROPIC:
        return AnthropicProvider(config)
    return OpenRouterProvider(config)


def model_names(kind: ProviderKind | str, config: ResearchConfig | None = None) -> ModelNames:
    config = config or default_config()
    resolved = ProviderKind.parse(kind)
    if config.mock_mode or resolved is ProviderKind.MOCK:
        return config.mock_models
    if resolved is ProviderKind.ANTHROPIC:
        return config.anthropic_models
    return config.openrouter_models


async def invoke(
    capability: Capability,
    prompt: str,
    *,
    config: ResearchConfig | None = None,
    caller: str = "research",
    provider: CompletionProvider | None = None,
) -> str:
    """Run one completion, bounded by the configured request timeout."""
    config = config or default_config()
    active = provider or get_provider(capability.provider, config)

    t0 = time.monotonic()
    try:
        text = await asyncio.wait_for(
            active.complete(capability, prompt),
            timeout=config.request_timeout_seconds,
        )
    except asyncio.TimeoutError as e:
        elapsed_ms = int((time.monotonic() - t0) * 1000)
        log_service.log_llm_call(
            model=capability.model,
            caller=caller,
            provider=active.kind.value,
            duration_ms=elapsed_ms,
            prompt_chars=len(prompt),
            status="timeout",
            error="timed out",
        )
        raise ProviderError(
            f"{active.kind.value} call timed out after {config.request_timeout_seconds:.0f}s"
        ) from e
    except ProviderError as e:
        elapsed_ms = int((time.monotonic() - t0) * 1000)
        log_service.log_llm_call(
            model=capability.model,
            caller=caller,
            provider=active.kind.value,
            duration_ms=elapsed_ms,
            prompt_chars=len(prompt),
            status="error",
            error=str(e),
        )
        raise

    elapsed_ms = int((time.monotonic() - t0) * 1000)
    log_service.log_llm_call(
        model=capability.model,
        caller=caller,
        provider=active.kind.value,
        duration_ms=elapsed_ms,
        prompt_chars=len(prompt),
        response_chars=len(text),
    )
    return text
