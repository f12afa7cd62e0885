from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from loguru import logger

from deep_research.config import ResearchConfig, default_config
from deep_research.models.research import SearchResult
from deep_research.tools import brave_search, mock_search, tavily_search


class SearchBackend(str, Enum):
    LIVE = "live"
    TAVILY = "tavily"
    BRAVE = "brave"
    MOCK = "mock"

    @classmethod
    def parse(cls, value: "str | SearchBackend | None") -> "SearchBackend":
        if isinstance(value, SearchBackend):
            return value
        lowered = (value or "").lower().strip()
        for backend in cls:
            if backend.value == lowered:
                return backend
        raise ValueError(f"Unsupported search backend: {value}")


class SearchError(Exception):
    """A live search failed and mock fallback is disabled."""


@dataclass
class SearchResponse:
    results: list[SearchResult]
    provider: str
    fallback_from: str | None = None
    fallback_reason: str | None = None


def _usable(results: list[SearchResult], max_results: int) -> list[SearchResult]:
    kept = [r for r in results if r.url and r.url.strip() and r.content and r.content.strip()]
    return kept[: max(max_results, 1)]


def _mock(query: str, max_results: int, *, fallback_from: str | None = None, reason: str | None = None) -> SearchResponse:
    return SearchResponse(
        results=_usable(mock_search.search(query, max_results=max_results), max_results),
        provider="mock",
        fallback_from=fallback_from,
        fallback_reason=reason,
    )


def _has_credentials(provider: str, config: ResearchConfig) -> bool:
    if provider == "tavily":
        return bool(config.tavily_api_key)
    if provider == "brave":
        return bool(config.brave_api_key)
    return False


async def _live_search(
    provider: str,
    query: str,
    *,
    max_results: int,
    config: ResearchConfig,
) -> SearchResponse:
    if provider == "tavily":
        results = await tavily_search.search(
            query,
            api_key=config.tavily_api_key,
            search_depth=config.tavily_search_depth,
            max_results=max_results,
        )
        return SearchResponse(results=results, provider="tavily")

    if provider == "brave":
        use_fallback = config.search_fallback_to_tavily and bool(config.tavily_api_key)
        try:
            results = await brave_search.search(
                query,
                api_key=config.brave_api_key,
                max_results=max_results,
            )
            if results or not use_fallback:
                return SearchResponse(results=results, provider="brave")
            reason = "brave returned zero results"
        except Exception as e:
            if not use_fallback:
                raise
            reason = str(e)

        fallback_results = await tavily_search.search(
            query,
            api_key=config.tavily_api_key,
            search_depth=config.tavily_search_depth,
            max_results=max_results,
        )
        return SearchResponse(
            results=fallback_results,
            provider="tavily",
            fallback_from="brave",
            fallback_reason=reason,
        )

    raise ValueError(f"Unsupported SEARCH_PROVIDER: {provider}")


async def search(
    query: str,
    *,
    backend: SearchBackend | str = SearchBackend.LIVE,
    max_results: int = 5,
    config: ResearchConfig | None = None,
) -> SearchResponse:
    """Search the web for `query`, substituting mock results where allowed.

    Raises `SearchError` only when the live backend cannot serve the query
    and `use_mock_when_keys_are_missing` is off.
    """
    config = config or default_config()
    max_results = max(int(max_results), 1)
    requested = SearchBackend.parse(backend)

    if not config.enable_search:
        logger.info("Search is disabled in settings. Using mock search.")
        return _mock(query, max_results, reason="search disabled")
    if config.mock_mode or requested is SearchBackend.MOCK:
        return _mock(query, max_results)

    provider = config.search_provider if requested is SearchBackend.LIVE else requested.value
    use_mock = config.use_mock_when_keys_are_missing

    if not _has_credentials(provider, config):
        if use_mock:
            logger.info(f"No credentials for {provider} search. Using mock search.")
            return _mock(query, max_results, fallback_from=provider, reason="missing credentials")
        raise SearchError(f"No API key configured for search provider '{provider}'")

    try:
        response = await _live_search(provider, query, max_results=max_results, config=config)
    except Exception as e:
        if use_mock:
            logger.warning(f"Error in {provider} search, using mock search: {e}")
            return _mock(query, max_results, fallback_from=provider, reason=str(e))
        raise SearchError(f"{provider} search failed: {e}") from e

    response.results = _usable(response.results, max_results)
    if not response.results and use_mock:
        logger.info(f"No {response.provider} results. Using mock search.")
        return _mock(query, max_results, fallback_from=response.provider, reason="no results")
    return response


def results_to_dicts(results: list[SearchResult]) -> list[dict]:
    return [r.to_dict() for r in results]
