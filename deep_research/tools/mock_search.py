from __future__ import annotations

from deep_research.models.research import SearchResult


def search(query: str, *, max_results: int = 2) -> list[SearchResult]:
    """Deterministic search results for development and tests."""
    results = [
        SearchResult(
            title=f"Mock Result 1 for {query}",
            url="https://example.com/mock-result-1",
            content=(
                f"This is a mock search result for {query}. It contains some sample "
                "content that would be returned by a real search API."
            ),
        ),
        SearchResult(
            title=f"Mock Result 2 for {query}",
            url="https://example.com/mock-result-2",
            content=(
                f"This is another mock search result for {query}. It contains different "
                "sample content to simulate multiple search results."
            ),
        ),
    ]
    return results[: max(max_results, 1)]
