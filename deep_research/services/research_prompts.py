"""Assemble the prompts for each research phase from the prompt catalog."""
from __future__ import annotations

from deep_research.models.research import SearchResult
from deep_research.services.prompt_store import render_named, render_prompt

MODES = ("default", "academic", "technical", "news")

_TOPIC_KEYWORDS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("academic", ("research", "study", "paper", "academic")),
    ("technical", ("code", "programming", "software", "technical")),
    ("news", ("news", "current events", "politics", "recent developments")),
)


def mode_for_topic(topic: str) -> str:
    lowered = topic.lower()
    for mode, keywords in _TOPIC_KEYWORDS:
        if any(keyword in lowered for keyword in keywords):
            return mode
    return "default"


def system_prompt(prompt_type: str | None = "default") -> str:
    return render_named("system", prompt_type)


def detail_level_prompt(detail_level: str | None = "standard") -> str:
    return render_named("detail_level", detail_level, default="standard")


def report_style_prompt(report_style: str | None) -> str:
    """Named style when given, otherwise the generic section layout."""
    if report_style:
        return render_named("report_style", report_style)
    return render_prompt("report_style.default")


def language_prompt(language: str = "en-US") -> str:
    if not language or language == "en-US":
        return render_prompt("language.english")
    return render_prompt("language.other", language=language)


def _learnings_block(learnings: list[str]) -> str:
    return "\n".join(f"<learning>\n{learning}\n</learning>" for learning in learnings)


def serp_queries_prompt(topic: str) -> str:
    return render_prompt(
        "research.serp_queries",
        query=topic,
        schema=render_prompt("research.query_schema"),
    )


def process_result_prompt(query: str, research_goal: str, results: list[SearchResult]) -> str:
    contents = "\n".join(
        f'<content url="{r.url}">\n{r.content}\n</content>' for r in results
    )
    return render_prompt(
        "research.process_result",
        query=query,
        research_goal=research_goal,
        contents=f"<contents>{contents}</contents>" if contents else "",
    )


def review_prompt(topic: str, learnings: list[str], suggestion: str = "") -> str:
    has_suggestion = bool(suggestion.strip())
    return render_prompt(
        "research.review_queries",
        query=topic,
        learnings=_learnings_block(learnings),
        suggestion_block=(
            render_prompt("research.suggestion_block", suggestion=suggestion) if has_suggestion else ""
        ),
        suggestion_clause=" and user research suggestions" if has_suggestion else "",
        schema=render_prompt("research.query_schema"),
    )


def final_report_prompt(
    topic: str,
    learnings: list[str],
    *,
    requirement: str = "",
    report_style: str = "",
    detail_level: str = "standard",
) -> str:
    return render_prompt(
        "research.final_report",
        query=topic,
        detail_level=detail_level_prompt(detail_level),
        learnings=_learnings_block(learnings),
        requirement_block=(
            render_prompt("research.requirement_block", requirement=requirement)
            if requirement.strip()
            else ""
        ),
        report_structure=report_style_prompt(report_style),
    )


def compose(*parts: str) -> str:
    """Join non-empty prompt parts with blank lines."""
    return "\n\n".join(part for part in parts if part and part.strip())
