from __future__ import annotations

from typing import Any

from deep_research.models.events import EventType, SSEEvent
from deep_research.models.research import Query


def queries_generated(queries: list[Query], *, fallback: bool = False) -> SSEEvent:
    return SSEEvent(
        event=EventType.QUERIES_GENERATED,
        data={"queries": [q.to_dict() for q in queries], "fallback": fallback},
    )


def iteration_started(iteration: int, max_iterations: int, queries_count: int) -> SSEEvent:
    return SSEEvent(
        event=EventType.ITERATION_STARTED,
        data={
            "iteration": iteration,
            "max_iterations": max_iterations,
            "queries_count": queries_count,
        },
    )


def agent_started(agent: str, step: int | None = None, **kwargs: Any) -> SSEEvent:
    data: dict[str, Any] = {"agent": agent}
    if step is not None:
        data["step"] = step
    data.update(kwargs)
    return SSEEvent(event=EventType.AGENT_STARTED, data=data)


def agent_completed(agent: str, **kwargs: Any) -> SSEEvent:
    return SSEEvent(event=EventType.AGENT_COMPLETED, data={"agent": agent, **kwargs})


def search_result(
    step: int,
    results: list[dict],
    *,
    query: str,
    learnings_count: int = 0,
) -> SSEEvent:
    return SSEEvent(
        event=EventType.SEARCH_RESULT,
        data={
            "step": step,
            "query": query,
            "results": results,
            "learnings_count": learnings_count,
        },
    )


def review_completed(iteration: int, queries: list[Query]) -> SSEEvent:
    return SSEEvent(
        event=EventType.REVIEW_COMPLETED,
        data={"iteration": iteration, "queries": [q.to_dict() for q in queries]},
    )


def synthesis_started(learnings_count: int) -> SSEEvent:
    return SSEEvent(event=EventType.SYNTHESIS_STARTED, data={"learnings_count": learnings_count})


def research_complete(
    report: str,
    learnings: list[str],
    iterations: int,
    runtime_ms: int | None = None,
) -> SSEEvent:
    data: dict[str, Any] = {
        "report": report,
        "learnings": learnings,
        "iterations": iterations,
    }
    if runtime_ms is not None:
        data["runtime_ms"] = runtime_ms
    return SSEEvent(event=EventType.RESEARCH_COMPLETE, data=data)


def error(message: str, agent: str | None = None) -> SSEEvent:
    data: dict[str, Any] = {"message": message}
    if agent:
        data["agent"] = agent
    return SSEEvent(event=EventType.ERROR, data=data)
