from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ResearchState(str, Enum):
    GENERATING_QUERIES = "generating_queries"
    SEARCHING = "searching"
    SYNTHESIZING = "synthesizing"
    REVIEWING = "reviewing"
    FINALIZING_REPORT = "finalizing_report"
    DONE = "done"


class DetailLevel(str, Enum):
    BRIEF = "brief"
    STANDARD = "standard"
    COMPREHENSIVE = "comprehensive"


@dataclass(frozen=True)
class Query:
    """A search query the model proposed, with the reason for running it."""

    text: str
    goal: str = ""

    def to_dict(self) -> dict[str, str]:
        return {"query": self.text, "researchGoal": self.goal}


@dataclass(frozen=True)
class SearchResult:
    title: str
    url: str
    content: str
    score: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {"title": self.title, "url": self.url, "content": self.content, "score": self.score}


@dataclass
class QueryResult:
    """Outcome of searching and synthesizing one query."""

    query: Query
    sources: list[SearchResult] = field(default_factory=list)
    learnings: list[str] = field(default_factory=list)
    search_error: str | None = None
    synthesis_error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "query": self.query.text,
            "researchGoal": self.query.goal,
            "sources": [s.to_dict() for s in self.sources],
            "learnings": list(self.learnings),
        }


@dataclass(frozen=True)
class ResearchOptions:
    max_results_per_query: int = 5
    requirement: str = ""
    detail_level: str = DetailLevel.STANDARD.value
    report_style: str = ""
    prompt_type: str = "default"
    suggestion: str = ""
    parallel_search: bool = False
    timeout_seconds: float | None = None


@dataclass
class ResearchSession:
    """Mutable state of one research run.

    The learning set only grows, and `current_iteration` never passes
    `max_iterations`.
    """

    topic: str
    language: str
    provider: str
    max_iterations: int
    current_iteration: int = 1
    learnings: list[str] = field(default_factory=list)
    state: ResearchState = ResearchState.GENERATING_QUERIES
    transitions: list[ResearchState] = field(default_factory=list)
    _lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)

    def __post_init__(self) -> None:
        self.max_iterations = max(int(self.max_iterations), 1)
        self.transitions.append(self.state)

    async def add_learnings(self, items: list[str]) -> None:
        async with self._lock:
            self.learnings.extend(items)

    def snapshot(self) -> list[str]:
        return list(self.learnings)

    def can_review(self) -> bool:
        return self.current_iteration < self.max_iterations

    def advance(self) -> None:
        if not self.can_review():
            raise RuntimeError(
                f"Iteration {self.current_iteration} is already at the cap of {self.max_iterations}"
            )
        self.current_iteration += 1

    def enter(self, state: ResearchState) -> None:
        self.state = state
        self.transitions.append(state)
