"""Brave web search client."""
from __future__ import annotations

from typing import Any

import httpx

from deep_research.models.research import SearchResult

BRAVE_SEARCH_URL = "https://api.search.brave.com/res/v1/web/search"
BRAVE_MAX_COUNT = 20


def _content(item: dict[str, Any]) -> str:
    description = (item.get("description") or "").strip()
    if description:
        return description
    return " ".join(item.get("extra_snippets") or []).strip()


def parse_results(payload: dict[str, Any]) -> list[SearchResult]:
    """Map a Brave response body to results, scored by rank."""
    items = (payload.get("web") or {}).get("results") or []
    total = max(len(items), 1)
    return [
        SearchResult(
            title=item.get("title") or "",
            url=item.get("url") or "",
            content=_content(item),
            score=max(0.0, 1.0 - rank / total),
        )
        for rank, item in enumerate(items)
    ]


async def search(
    query: str,
    *,
    api_key: str,
    max_results: int = 5,
    timeout: float = 30.0,
    country: str | None = None,
) -> list[SearchResult]:
    if not api_key:
        raise RuntimeError("BRAVE_API_KEY is not configured")

    params: dict[str, Any] = {"q": query, "count": min(max_results, BRAVE_MAX_COUNT)}
    if country:
        params["country"] = country
    headers = {"Accept": "application/json", "X-Subscription-Token": api_key}

    async with httpx.AsyncClient(timeout=timeout, headers=headers) as client:
        response = await client.get(BRAVE_SEARCH_URL, params=params)
        response.raise_for_status()

    return parse_results(response.json())[:max_results]
