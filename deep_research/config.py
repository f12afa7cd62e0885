from __future__ import annotations

from dataclasses import dataclass

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Global overrides
    mock_mode: bool = False  # every provider and search backend becomes the mock
    enable_search: bool = True
    use_mock_when_keys_are_missing: bool = True

    # Provider selection
    default_provider: str = "openrouter"  # anthropic | openrouter | mock
    default_language: str = "en-US"
    default_max_iterations: int = 2

    # OpenRouter
    openrouter_api_key: str = ""
    openrouter_base_url: str = "https://openrouter.ai/api/v1"
    openrouter_thinking_model: str = "google/gemini-2.0-flash-thinking-exp"
    openrouter_networking_model: str = "google/gemini-2.0-flash-001"
    openrouter_fallback_model: str = "google/gemini-flash-1.5"

    # Anthropic
    anthropic_api_key: str = ""
    anthropic_thinking_model: str = "claude-sonnet-4-5-20250929"
    anthropic_networking_model: str = "claude-sonnet-4-5-20250929"
    anthropic_fallback_model: str = "claude-haiku-4-5-20251001"

    request_timeout_seconds: float = 300.0
    mock_llm_latency_ms: int = 0

    # Search
    default_search_backend: str = "live"  # live | mock
    search_provider: str = "tavily"  # tavily | brave
    tavily_api_key: str = ""
    tavily_search_depth: str = "advanced"
    brave_api_key: str = ""
    search_fallback_to_tavily: bool = True
    search_max_results_per_query: int = 5
    parallel_search_limit: int = 3

    # App
    cors_origins: str = "http://localhost:3000"
    app_log_level: str = "INFO"
    noisy_log_level: str = "WARNING"
    log_dir: str = "logs"

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    @property
    def cors_origin_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",")]


settings = Settings()


@dataclass(frozen=True)
class ModelNames:
    thinking: str
    networking: str
    fallback: str


@dataclass(frozen=True)
class ResearchConfig:
    """Immutable snapshot of the settings the research engine reads.

    Passed explicitly through the engine so concurrent sessions (and tests)
    can run with different mock/search policies side by side.
    """

    mock_mode: bool = False
    enable_search: bool = True
    use_mock_when_keys_are_missing: bool = True
    default_provider: str = "openrouter"
    default_search_backend: str = "live"
    search_provider: str = "tavily"
    search_fallback_to_tavily: bool = True
    tavily_api_key: str = ""
    tavily_search_depth: str = "advanced"
    brave_api_key: str = ""
    openrouter_api_key: str = ""
    openrouter_base_url: str = "https://openrouter.ai/api/v1"
    anthropic_api_key: str = ""
    openrouter_models: ModelNames = ModelNames(
        thinking="google/gemini-2.0-flash-thinking-exp",
        networking="google/gemini-2.0-flash-001",
        fallback="google/gemini-flash-1.5",
    )
    anthropic_models: ModelNames = ModelNames(
        thinking="claude-sonnet-4-5-20250929",
        networking="claude-sonnet-4-5-20250929",
        fallback="claude-haiku-4-5-20251001",
    )
    mock_models: ModelNames = ModelNames(
        thinking="mock-thinking",
        networking="mock-networking",
        fallback="mock-fallback",
    )
    request_timeout_seconds: float = 300.0
    parallel_search_limit: int = 3
    mock_llm_latency_ms: int = 0

    @classmethod
    def from_settings(cls, source: Settings | None = None) -> "ResearchConfig":
        s = source or settings
        return cls(
            mock_mode=bool(s.mock_mode),
            enable_search=bool(s.enable_search),
            use_mock_when_keys_are_missing=bool(s.use_mock_when_keys_are_missing),
            default_provider=str(s.default_provider).lower().strip(),
            default_search_backend=str(s.default_search_backend).lower().strip(),
            search_provider=str(s.search_provider).lower().strip(),
            search_fallback_to_tavily=bool(s.search_fallback_to_tavily),
            tavily_api_key=s.tavily_api_key.strip(),
            tavily_search_depth=s.tavily_search_depth,
            brave_api_key=s.brave_api_key.strip(),
            openrouter_api_key=s.openrouter_api_key.strip(),
            openrouter_base_url=s.openrouter_base_url.strip() or "https://openrouter.ai/api/v1",
            anthropic_api_key=s.anthropic_api_key.strip(),
            openrouter_models=ModelNames(
                thinking=s.openrouter_thinking_model,
                networking=s.openrouter_networking_model,
                fallback=s.openrouter_fallback_model,
            ),
            anthropic_models=ModelNames(
                thinking=s.anthropic_thinking_model,
                networking=s.anthropic_networking_model,
                fallback=s.anthropic_fallback_model,
            ),
            request_timeout_seconds=max(float(s.request_timeout_seconds), 1.0),
            parallel_search_limit=max(int(s.parallel_search_limit), 1),
            mock_llm_latency_ms=max(int(s.mock_llm_latency_ms), 0),
        )


def default_config() -> ResearchConfig:
    """Snapshot the process-wide settings."""
    return ResearchConfig.from_settings(settings)
