from __future__ import annotations

import asyncio
import re
import time
from typing import Any, AsyncGenerator, Awaitable, TypeVar
from uuid import uuid4

from loguru import logger

from deep_research import llm_client
from deep_research.config import ResearchConfig, default_config
from deep_research.llm_client import Capability, ProviderKind
from deep_research.models.events import EventType, SSEEvent
from deep_research.models.research import (
    Query,
    QueryResult,
    ResearchOptions,
    ResearchSession,
    ResearchState,
)
from deep_research.services import logger as log_service
from deep_research.services import streaming
from deep_research.services.json_salvage import coerce_queries, parse_structured
from deep_research.services.research_prompts import (
    compose,
    detail_level_prompt,
    final_report_prompt,
    language_prompt,
    mode_for_topic,
    process_result_prompt,
    review_prompt,
    serp_queries_prompt,
    system_prompt,
)
from deep_research.services.retry import InvocationContext, RetryPolicy, with_retry
from deep_research.tools import search_provider
from deep_research.tools.search_provider import SearchBackend

T = TypeVar("T")

DEFAULT_TOPIC = "General research topic"
PLACEHOLDER_LEARNING = (
    "Basic information about {topic} would typically include key facts and data points "
    "relevant to the topic."
)
SYNTHESIS_FALLBACK = (
    "Unable to process search results due to API limits. Basic information about {query} "
    "would typically include key facts and data points relevant to the topic."
)
# Minimum time the report call gets once a session deadline is set.
REPORT_MIN_SECONDS = 30.0

_LIST_PREFIX_RE = re.compile(r"^\s*(?:\d+[.)]|[-*•])\s*")


def default_queries(topic: str) -> list[Query]:
    return [
        Query(
            text=f"Latest research on {topic}",
            goal=f"Find the most recent studies and papers on {topic}",
        ),
        Query(
            text=f"History of {topic}",
            goal=f"Understand the historical context and evolution of {topic}",
        ),
        Query(
            text=f"Future trends in {topic}",
            goal=f"Identify emerging trends and future directions for {topic}",
        ),
    ]


def parse_learnings(content: str) -> list[str]:
    """One learning per non-blank line, list numbering and bullets removed."""
    learnings: list[str] = []
    for line in (content or "").splitlines():
        cleaned = _LIST_PREFIX_RE.sub("", line).strip()
        if cleaned:
            learnings.append(cleaned)
    return learnings


def degraded_report(topic: str, learnings: list[str], error: Any) -> str:
    numbered = "\n\n".join(f"{i}. {learning}" for i, learning in enumerate(learnings, 1))
    return (
        f"# Research Report on {topic}\n\n"
        f"## Error Generating Full Report\n\n"
        f"We encountered an error while generating the full report: {error}\n\n"
        f"## Key Learnings\n\n"
        f"{numbered or 'No learnings were collected.'}"
    )


def error_report(topic: str, error: Any) -> str:
    return (
        f"# Research Report on {topic or DEFAULT_TOPIC}\n\n"
        f"## Error Generating Report\n\n"
        f"We encountered an error while researching this topic: {error}\n\n"
        f"Please try again later or refine your query."
    )


class ResearchOrchestrator:
    """Drives one multi-round research session.

    Flow:
      1. Ask the model for search queries (defaults when that fails)
      2. Fan out: search + summarize each query into learnings
      3. Review the learnings; more queries start another round
      4. Write the final report (degraded report when that fails)

    Every phase has a fallback that moves the session forward, and the
    number of rounds is capped by `max_iterations`.
    """

    def __init__(
        self,
        *,
        language: str = "en-US",
        provider: ProviderKind | str | None = None,
        model: str | None = None,
        search_backend: SearchBackend | str | None = None,
        options: ResearchOptions | None = None,
        config: ResearchConfig | None = None,
    ):
        self.config = config or default_config()
        self.options = options or ResearchOptions()
        self.language = language or "en-US"
        self.session_id = str(uuid4())

        default_kind = ProviderKind.parse(self.config.default_provider, default=ProviderKind.OPENROUTER)
        self.provider = ProviderKind.parse(provider, default=default_kind) if provider else default_kind

        names = llm_client.model_names(self.provider, self.config)
        requested_model = (model or "").strip()
        self.thinking_model = requested_model or names.thinking
        self.networking_model = requested_model or names.networking
        self.fallback_model = names.fallback

        try:
            self.search_backend = SearchBackend.parse(search_backend or self.config.default_search_backend)
        except ValueError:
            logger.warning(f"Unsupported search backend {search_backend!r}. Using mock search.")
            self.search_backend = SearchBackend.MOCK

        self.max_parallel = self.config.parallel_search_limit if self.options.parallel_search else 1
        self.max_results_per_query = max(int(self.options.max_results_per_query), 1)
        self.session: ResearchSession | None = None
        self._deadline: float | None = None

    # -- prompt options -------------------------------------------------

    def _prompt_type(self, topic: str) -> str:
        prompt_type = (self.options.prompt_type or "default").lower().strip()
        return mode_for_topic(topic) if prompt_type == "auto" else prompt_type

    def _report_style(self, topic: str) -> str:
        style = (self.options.report_style or "").lower().strip()
        return mode_for_topic(topic) if style in ("", "auto") else style

    # -- model calls ----------------------------------------------------

    async def _complete(
        self,
        caller: str,
        prompt: str,
        *,
        model: str,
        temperature: float,
        max_tokens: int,
        max_retries: int = 3,
        downgraded_temperature: float | None = None,
        downgraded_max_tokens: int | None = None,
    ) -> str:
        """One completion through the retry policy, downgrading on rate limits."""
        policy = RetryPolicy(max_retries=max_retries, fallback_model=self.fallback_model)

        async def attempt(context: InvocationContext) -> str:
            downgraded = context.downgraded
            capability = Capability(
                provider=self.provider,
                model=context.model,
                temperature=(
                    downgraded_temperature
                    if downgraded and downgraded_temperature is not None
                    else temperature
                ),
                max_output_tokens=(
                    downgraded_max_tokens
                    if downgraded and downgraded_max_tokens is not None
                    else max_tokens
                ),
            )
            return await llm_client.invoke(capability, prompt, config=self.config, caller=caller)

        return await with_retry(attempt, policy, model=model)

    # -- deadline -------------------------------------------------------

    def _remaining(self) -> float | None:
        if self._deadline is None:
            return None
        return self._deadline - asyncio.get_running_loop().time()

    async def _bounded(self, awaitable: Awaitable[T]) -> T:
        """Await within the session deadline; raises asyncio.TimeoutError on expiry."""
        remaining = self._remaining()
        if remaining is None:
            return await awaitable
        if remaining <= 0:
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            raise asyncio.TimeoutError()
        return await asyncio.wait_for(awaitable, timeout=remaining)

    # -- phases ---------------------------------------------------------

    async def generate_queries(self, topic: str) -> tuple[list[Query], bool]:
        """Return (queries, used_defaults). Never returns an empty list."""
        prompt = compose(
            system_prompt(self._prompt_type(topic)),
            serp_queries_prompt(topic),
            detail_level_prompt(self.options.detail_level),
            language_prompt(self.language),
        )
        try:
            content = await self._complete(
                "generate_queries",
                prompt,
                model=self.thinking_model,
                temperature=0.2,
                max_tokens=1024,
                max_retries=3,
            )
        except Exception as e:
            logger.warning(f"Error generating search queries, using defaults: {e}")
            return default_queries(topic), True

        queries = coerce_queries(parse_structured(content, [], source="generate_queries"))
        if not queries:
            logger.warning("Model returned no usable search queries, using defaults")
            return default_queries(topic), True
        return queries, False

    async def run_query(self, query: Query, session: ResearchSession | None = None) -> QueryResult:
        """Search one query and distill the results into learnings.

        Search failures leave the sources empty; synthesis failures produce a
        single generic learning. Learnings are added to `session` as soon as
        this query finishes.
        """
        result = QueryResult(query=query)

        try:
            response = await search_provider.search(
                query.text,
                backend=self.search_backend,
                max_results=self.max_results_per_query,
                config=self.config,
            )
            result.sources = response.results
        except Exception as e:
            logger.error(f"Search error for query {query.text!r}: {e}")
            result.search_error = str(e)

        prompt = compose(
            process_result_prompt(query.text, query.goal, result.sources),
            language_prompt(self.language),
        )
        try:
            content = await self._complete(
                "process_results",
                prompt,
                model=self.networking_model,
                temperature=0.2,
                max_tokens=4096,
                max_retries=2,
                downgraded_max_tokens=2048,
            )
        except Exception as e:
            logger.error(f"Error processing search results for query {query.text!r}: {e}")
            result.synthesis_error = str(e)
            content = SYNTHESIS_FALLBACK.format(query=query.text)

        result.learnings = parse_learnings(content)
        if session is not None:
            await session.add_learnings(result.learnings)
        return result

    async def run_search_tasks(
        self,
        queries: list[Query],
        session: ResearchSession | None = None,
        *,
        step_offset: int = 0,
    ) -> tuple[list[QueryResult], list[SSEEvent]]:
        """Run every query under the concurrency limit; failures stay isolated."""
        events: list[SSEEvent] = []
        valid = [q for q in queries if isinstance(q, Query) and q.text.strip()]
        if len(valid) < len(queries):
            logger.warning(f"Skipping {len(queries) - len(valid)} invalid queries")
        if not valid:
            return [], events

        semaphore = asyncio.Semaphore(max(self.max_parallel, 1))

        for index, query in enumerate(valid):
            events.append(streaming.agent_started("search", step=step_offset + index, query=query.text))

        async def run_one(query: Query) -> QueryResult:
            async with semaphore:
                return await self.run_query(query, session)

        raw_results = await asyncio.gather(
            *(run_one(query) for query in valid),
            return_exceptions=True,
        )

        results: list[QueryResult] = []
        for index, item in enumerate(raw_results):
            step = step_offset + index
            if isinstance(item, BaseException):
                logger.error(f"Task for query {valid[index].text!r} failed: {item!r}")
                events.append(streaming.error(str(item), agent="search"))
                events.append(streaming.agent_completed("search", step=step, success=False))
                continue

            results.append(item)
            events.append(
                streaming.search_result(
                    step,
                    search_provider.results_to_dicts(item.sources),
                    query=item.query.text,
                    learnings_count=len(item.learnings),
                )
            )
            events.append(
                streaming.agent_completed(
                    "search",
                    step=step,
                    success=item.search_error is None and item.synthesis_error is None,
                    results_count=len(item.sources),
                    learnings_count=len(item.learnings),
                )
            )
        return results, events

    async def review(self, topic: str, learnings: list[str]) -> list[Query]:
        """Follow-up queries, or none. A failed review ends the research."""
        prompt = compose(
            review_prompt(topic, learnings, self.options.suggestion),
            language_prompt(self.language),
        )
        try:
            content = await self._complete(
                "review",
                prompt,
                model=self.thinking_model,
                temperature=0.2,
                max_tokens=1024,
                max_retries=3,
            )
        except Exception as e:
            logger.warning(f"Error reviewing search results, finishing research: {e}")
            return []
        return coerce_queries(parse_structured(content, [], source="review"))

    async def write_final_report(self, topic: str, learnings: list[str]) -> str:
        prompt = compose(
            system_prompt(self._prompt_type(topic)),
            final_report_prompt(
                topic,
                learnings,
                requirement=self.options.requirement,
                report_style=self._report_style(topic),
                detail_level=self.options.detail_level,
            ),
            language_prompt(self.language),
        )
        call = self._complete(
            "final_report",
            prompt,
            model=self.networking_model,
            temperature=0.7,
            max_tokens=32768,
            max_retries=3,
            downgraded_temperature=0.5,
            downgraded_max_tokens=16384,
        )
        remaining = self._remaining()
        try:
            if remaining is None:
                report = await call
            else:
                budget = max(remaining, REPORT_MIN_SECONDS)
                try:
                    report = await asyncio.wait_for(call, timeout=budget)
                except asyncio.TimeoutError:
                    raise TimeoutError(f"report not finished within {budget:.1f}s") from None
        except Exception as e:
            logger.error(f"Error writing final report: {e}")
            return degraded_report(topic, learnings, e)

        if not report.strip():
            logger.error("Final report came back empty")
            return degraded_report(topic, learnings, "the model returned an empty report")
        return report

    # -- session --------------------------------------------------------

    async def research(self, topic: str, *, max_iterations: int = 2) -> AsyncGenerator[SSEEvent, None]:
        """Run the full session, yielding progress events.

        The last event is always `research_complete` carrying the report.
        """
        t0 = time.monotonic()
        topic = " ".join((topic or "").split()) or DEFAULT_TOPIC
        session = ResearchSession(
            topic=topic,
            language=self.language,
            provider=self.provider.value,
            max_iterations=max_iterations,
        )
        self.session = session
        if self.options.timeout_seconds:
            self._deadline = asyncio.get_running_loop().time() + float(self.options.timeout_seconds)

        log_service.log_research_step(
            self.session_id,
            "session",
            "started",
            {"topic": topic[:100], "provider": self.provider.value, "max_iterations": session.max_iterations},
        )

        try:
            step_offset = 0
            try:
                queries, used_defaults = await self._bounded(self.generate_queries(topic))
                yield streaming.queries_generated(queries, fallback=used_defaults)

                while True:
                    session.enter(ResearchState.SEARCHING)
                    yield streaming.iteration_started(
                        session.current_iteration, session.max_iterations, len(queries)
                    )
                    _, events = await self._bounded(
                        self.run_search_tasks(queries, session, step_offset=step_offset)
                    )
                    for event in events:
                        yield event
                    step_offset += len(queries)
                    session.enter(ResearchState.SYNTHESIZING)

                    if not session.learnings:
                        await session.add_learnings([PLACEHOLDER_LEARNING.format(topic=topic)])

                    if not session.can_review():
                        break

                    session.enter(ResearchState.REVIEWING)
                    queries = await self._bounded(self.review(topic, session.snapshot()))
                    yield streaming.review_completed(session.current_iteration, queries)
                    log_service.log_research_step(
                        self.session_id, "review", "completed", {"queries": len(queries)}
                    )
                    if not queries:
                        logger.info("No additional queries suggested. Moving to final report.")
                        break
                    session.advance()
            except asyncio.TimeoutError:
                logger.warning(
                    f"Research deadline reached after {len(session.learnings)} learnings; finalizing"
                )
                yield streaming.error("Research deadline reached; writing report from collected learnings.")

            session.enter(ResearchState.FINALIZING_REPORT)
            if not session.learnings:
                await session.add_learnings([PLACEHOLDER_LEARNING.format(topic=topic)])
            yield streaming.synthesis_started(len(session.learnings))
            report = await self.write_final_report(topic, session.snapshot())
        except Exception as e:
            logger.exception(f"Unexpected error in research on {topic!r}")
            yield streaming.error("Research failed unexpectedly.")
            report = error_report(topic, e)

        session.enter(ResearchState.DONE)
        runtime_ms = int((time.monotonic() - t0) * 1000)
        log_service.log_research_step(
            self.session_id,
            "session",
            "completed",
            {
                "iterations": session.current_iteration,
                "learnings": len(session.learnings),
                "runtime_ms": runtime_ms,
            },
        )
        yield streaming.research_complete(
            report=report,
            learnings=session.snapshot(),
            iterations=session.current_iteration,
            runtime_ms=runtime_ms,
        )


async def run_research(
    topic: str,
    language: str = "en-US",
    provider: ProviderKind | str | None = None,
    model: str | None = None,
    search_backend: SearchBackend | str | None = None,
    max_iterations: int = 2,
    options: ResearchOptions | None = None,
    *,
    config: ResearchConfig | None = None,
) -> str:
    """Research `topic` and return the final report. Never raises."""
    try:
        orchestrator = ResearchOrchestrator(
            language=language,
            provider=provider,
            model=model,
            search_backend=search_backend,
            options=options,
            config=config,
        )
        report = ""
        async for event in orchestrator.research(topic, max_iterations=max_iterations):
            if event.event is EventType.RESEARCH_COMPLETE:
                report = event.data.get("report", "") or ""
        if report.strip():
            return report
        return error_report(topic, "no report was produced")
    except Exception as e:
        logger.exception("Unexpected error in research")
        return error_report(topic, e)
