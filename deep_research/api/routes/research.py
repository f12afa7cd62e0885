from __future__ import annotations

import json as _json

from fastapi import APIRouter, Depends
from sse_starlette.sse import EventSourceResponse

from deep_research.agents.orchestrator import ResearchOrchestrator, run_research
from deep_research.api.deps import get_config
from deep_research.config import ResearchConfig
from deep_research.models.research import Query, ResearchOptions
from deep_research.models.schemas import (
    QueriesResponse,
    QueryItem,
    QueryResultItem,
    ReportRequest,
    ReportResponse,
    ResearchRequest,
    ReviewRequest,
    SearchRequest,
    SearchResponse,
    SourceItem,
    StartRequest,
)
from deep_research.services import logger as log_service
from deep_research.services import streaming

router = APIRouter(prefix="/api/research", tags=["research"])


def _query_items(queries: list[Query]) -> list[QueryItem]:
    return [QueryItem(query=q.text, research_goal=q.goal) for q in queries]


@router.post("/query", response_model=ReportResponse)
async def query_research(request: ResearchRequest, config: ResearchConfig = Depends(get_config)):
    """Run a full research session and return the report."""
    log_service.log_event(
        event_type="research_started",
        message="Research started",
        query=request.query[:100],
        provider=request.provider or config.default_provider,
    )
    report = await run_research(
        request.query,
        language=request.language,
        provider=request.provider,
        model=request.model,
        search_backend=request.search_backend,
        max_iterations=request.max_iterations,
        options=request.to_options(),
        config=config,
    )
    return ReportResponse(report=report)


@router.post("/stream")
async def stream_research(request: ResearchRequest, config: ResearchConfig = Depends(get_config)):
    """SSE endpoint that streams research progress events."""
    orchestrator = ResearchOrchestrator(
        language=request.language,
        provider=request.provider,
        model=request.model,
        search_backend=request.search_backend,
        options=request.to_options(),
        config=config,
    )

    async def event_generator():
        log_service.log_event(
            event_type="research_started",
            message="Research stream started",
            session_id=orchestrator.session_id,
            query=request.query[:100],
        )
        try:
            async for event in orchestrator.research(request.query, max_iterations=request.max_iterations):
                yield {
                    "event": event.event.value,
                    "data": _json.dumps(event.data),
                }
        except Exception as e:
            log_service.log_event(
                event_type="stream_error",
                message="Unhandled error in research stream",
                error=str(e),
                session_id=orchestrator.session_id,
            )
            error_event = streaming.error("Research stream failed unexpectedly.")
            yield {
                "event": error_event.event.value,
                "data": _json.dumps(error_event.data),
            }

    return EventSourceResponse(event_generator())


@router.post("/start", response_model=QueriesResponse)
async def start_research(request: StartRequest, config: ResearchConfig = Depends(get_config)):
    """Generate the first round of search queries for a topic."""
    orchestrator = ResearchOrchestrator(
        language=request.language,
        provider=request.provider,
        model=request.model,
        options=ResearchOptions(prompt_type=request.mode, detail_level=request.detail_level),
        config=config,
    )
    queries, used_defaults = await orchestrator.generate_queries(request.topic.strip())
    return QueriesResponse(queries=_query_items(queries), fallback=used_defaults)


@router.post("/search", response_model=SearchResponse)
async def search_queries(request: SearchRequest, config: ResearchConfig = Depends(get_config)):
    """Search each query and summarize the results into learnings."""
    orchestrator = ResearchOrchestrator(
        language=request.language,
        provider=request.provider,
        model=request.model,
        search_backend=request.search_backend,
        options=ResearchOptions(
            max_results_per_query=request.max_results,
            parallel_search=request.parallel_search,
        ),
        config=config,
    )
    queries = [Query(text=item.query, goal=item.research_goal) for item in request.queries]
    results, _ = await orchestrator.run_search_tasks(queries)

    items = [
        QueryResultItem(
            query=r.query.text,
            research_goal=r.query.goal,
            sources=[SourceItem(**s.to_dict()) for s in r.sources],
            learnings=r.learnings,
        )
        for r in results
    ]
    learnings = [learning for r in results for learning in r.learnings]
    return SearchResponse(results=items, learnings=learnings)


@router.post("/review", response_model=QueriesResponse)
async def review_learnings(request: ReviewRequest, config: ResearchConfig = Depends(get_config)):
    """Suggest follow-up queries; an empty list means research is complete."""
    orchestrator = ResearchOrchestrator(
        language=request.language,
        provider=request.provider,
        model=request.model,
        options=ResearchOptions(suggestion=request.suggestion),
        config=config,
    )
    queries = await orchestrator.review(request.topic.strip(), request.learnings)
    return QueriesResponse(queries=_query_items(queries))


@router.post("/report", response_model=ReportResponse)
async def write_report(request: ReportRequest, config: ResearchConfig = Depends(get_config)):
    """Write the final report from a set of learnings."""
    orchestrator = ResearchOrchestrator(
        language=request.language,
        provider=request.provider,
        model=request.model,
        options=ResearchOptions(
            requirement=request.requirement,
            detail_level=request.detail_level,
            report_style=request.mode,
            prompt_type=request.mode,
        ),
        config=config,
    )
    report = await orchestrator.write_final_report(request.topic.strip(), request.learnings)
    return ReportResponse(report=report)
