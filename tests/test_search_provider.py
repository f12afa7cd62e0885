from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from deep_research.config import ResearchConfig
from deep_research.models.research import SearchResult
from deep_research.tools import search_provider
from deep_research.tools.search_provider import SearchBackend, SearchError

LIVE = ResearchConfig(tavily_api_key="tv-key", brave_api_key="br-key")
STRICT = ResearchConfig(use_mock_when_keys_are_missing=False)


def _result(n: int, url: str | None = None, content: str = "body") -> SearchResult:
    return SearchResult(title=f"t{n}", url=url if url is not None else f"https://e.com/{n}", content=content)


@pytest.mark.asyncio
async def test_mock_mode_returns_mock_results():
    response = await search_provider.search("q", config=ResearchConfig(mock_mode=True, tavily_api_key="k"))
    assert response.provider == "mock"
    assert len(response.results) == 2


@pytest.mark.asyncio
async def test_search_disabled_returns_mock_results():
    response = await search_provider.search("q", config=ResearchConfig(enable_search=False))
    assert response.provider == "mock"
    assert response.fallback_reason == "search disabled"


@pytest.mark.asyncio
async def test_missing_credentials_fall_back_to_mock():
    response = await search_provider.search("q", backend="tavily", config=ResearchConfig())
    assert response.provider == "mock"
    assert response.fallback_from == "tavily"


@pytest.mark.asyncio
async def test_missing_credentials_raise_when_fallback_disabled():
    with pytest.raises(SearchError):
        await search_provider.search("q", backend="tavily", config=STRICT)


@pytest.mark.asyncio
async def test_live_failure_falls_back_to_mock():
    with patch(
        "deep_research.tools.search_provider.tavily_search.search",
        new_callable=AsyncMock,
        side_effect=RuntimeError("boom"),
    ):
        response = await search_provider.search("q", config=LIVE)

    assert response.provider == "mock"
    assert response.fallback_reason == "boom"


@pytest.mark.asyncio
async def test_live_failure_raises_search_error_when_fallback_disabled():
    config = ResearchConfig(tavily_api_key="k", use_mock_when_keys_are_missing=False)
    with patch(
        "deep_research.tools.search_provider.tavily_search.search",
        new_callable=AsyncMock,
        side_effect=RuntimeError("boom"),
    ):
        with pytest.raises(SearchError) as excinfo:
            await search_provider.search("q", config=config)

    assert isinstance(excinfo.value.__cause__, RuntimeError)


@pytest.mark.asyncio
async def test_unusable_results_are_filtered_and_capped():
    raw = [_result(1), _result(2, url=""), _result(3, content="  "), _result(4), _result(5)]
    with patch(
        "deep_research.tools.search_provider.tavily_search.search",
        new_callable=AsyncMock,
        return_value=raw,
    ):
        response = await search_provider.search("q", max_results=2, config=LIVE)

    assert response.provider == "tavily"
    assert [r.url for r in response.results] == ["https://e.com/1", "https://e.com/4"]


@pytest.mark.asyncio
@pytest.mark.parametrize("raw", [[], [_result(1, url=""), _result(2, content="")]])
async def test_empty_live_results_fall_back_to_mock(raw):
    with patch(
        "deep_research.tools.search_provider.tavily_search.search",
        new_callable=AsyncMock,
        return_value=raw,
    ):
        response = await search_provider.search("q", config=LIVE)

    assert response.provider == "mock"
    assert response.fallback_from == "tavily"
    assert response.fallback_reason == "no results"


@pytest.mark.asyncio
async def test_brave_falls_back_to_tavily_on_zero_results():
    config = ResearchConfig(search_provider="brave", tavily_api_key="tv", brave_api_key="br")
    with patch(
        "deep_research.tools.search_provider.brave_search.search",
        new_callable=AsyncMock,
        return_value=[],
    ), patch(
        "deep_research.tools.search_provider.tavily_search.search",
        new_callable=AsyncMock,
        return_value=[_result(1)],
    ):
        response = await search_provider.search("q", config=config)

    assert response.provider == "tavily"
    assert response.fallback_from == "brave"
    assert response.fallback_reason == "brave returned zero results"
    assert [r.url for r in response.results] == ["https://e.com/1"]


@pytest.mark.asyncio
async def test_brave_falls_back_to_tavily_on_error():
    config = ResearchConfig(search_provider="brave", tavily_api_key="tv", brave_api_key="br")
    with patch(
        "deep_research.tools.search_provider.brave_search.search",
        new_callable=AsyncMock,
        side_effect=RuntimeError("brave down"),
    ), patch(
        "deep_research.tools.search_provider.tavily_search.search",
        new_callable=AsyncMock,
        return_value=[_result(1)],
    ):
        response = await search_provider.search("q", config=config)

    assert response.provider == "tavily"
    assert response.fallback_from == "brave"
    assert response.fallback_reason == "brave down"


@pytest.mark.asyncio
async def test_brave_result_mapping():
    from deep_research.tools import brave_search

    payload = {
        "web": {
            "results": [
                {"title": "A", "url": "https://a.com", "description": "desc a"},
                {"title": "B", "url": "https://b.com", "description": "", "extra_snippets": ["s1", "s2"]},
            ]
        }
    }
    mock_response = MagicMock()
    mock_response.json.return_value = payload
    mock_response.raise_for_status.return_value = None
    mock_client = AsyncMock()
    mock_client.get.return_value = mock_response
    mock_client.__aenter__.return_value = mock_client

    with patch("deep_research.tools.brave_search.httpx.AsyncClient", return_value=mock_client):
        results = await brave_search.search("q", api_key="k", max_results=2)

    assert [r.content for r in results] == ["desc a", "s1 s2"]
    assert results[0].score == 1.0
    assert results[1].score == 0.5


def test_backend_parse():
    assert SearchBackend.parse("Mock") is SearchBackend.MOCK
    with pytest.raises(ValueError):
        SearchBackend.parse("model")
