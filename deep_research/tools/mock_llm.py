"""Deterministic stand-in for the chat-completion providers.

Responses depend only on the prompt text, so requesting any provider kind in
mock mode produces the same output as requesting the mock directly.
"""
from __future__ import annotations

import asyncio
import json
import re

from deep_research.llm_client import Capability, CompletionProvider, ProviderKind

REPORT_MARKER = "write a final report"
REVIEW_MARKER = "determine whether further research is needed"
LEARNINGS_MARKER = "generate a list of learnings"
QUERIES_MARKER = "generate a list of serp queries"

_QUERY_RE = re.compile(r"<query>(.*?)</query>", re.DOTALL)
_LEARNING_RE = re.compile(r"<learning>\s*(.*?)\s*</learning>", re.DOTALL)
_TECHNICAL_HINTS = ("technical", "scientific")

DEFAULT_QUERIES = [
    {
        "query": "What is {topic}?",
        "researchGoal": "Understand the basic definition and concepts of {topic}",
    },
    {
        "query": "History of {topic} development",
        "researchGoal": "Learn about the key milestones in {topic} research",
    },
    {
        "query": "Current applications of {topic}",
        "researchGoal": "Discover how {topic} is being used in practice today",
    },
]

TECHNICAL_QUERIES = [
    {
        "query": "{topic} architecture fundamentals",
        "researchGoal": "Understand the technical structure behind {topic}",
    },
    {
        "query": "{topic} approaches comparison",
        "researchGoal": "Analyze competing approaches to {topic} and where each applies",
    },
    {
        "query": "Recent advancements in {topic} research",
        "researchGoal": "Identify cutting-edge developments in {topic}",
    },
]

LEARNINGS = [
    "{topic} is an active field with contributions from academia and industry.",
    "Published work on {topic} highlights both measurable progress and open problems.",
    "Practitioners working on {topic} cite cost, reliability and scale as the main constraints.",
]


def _first_query(prompt: str) -> str:
    match = _QUERY_RE.search(prompt)
    if not match:
        return "the topic"
    return " ".join(match.group(1).split()) or "the topic"


def _queries_response(prompt: str) -> str:
    topic = _first_query(prompt)
    lowered = prompt.lower()
    templates = TECHNICAL_QUERIES if any(h in lowered for h in _TECHNICAL_HINTS) else DEFAULT_QUERIES
    return json.dumps(
        [
            {"query": t["query"].format(topic=topic), "researchGoal": t["researchGoal"].format(topic=topic)}
            for t in templates
        ],
        indent=2,
    )


def _learnings_response(prompt: str) -> str:
    topic = _first_query(prompt)
    return "\n".join(f"{i}. {line.format(topic=topic)}" for i, line in enumerate(LEARNINGS, 1))


def _report_response(prompt: str) -> str:
    topic = _first_query(prompt)
    learnings = [item for item in _LEARNING_RE.findall(prompt) if item.strip()]
    lines = [
        f"# {topic}: Research Overview",
        "",
        "## Introduction",
        f"This report summarizes what the research rounds established about {topic}.",
        "",
        "## Key Findings",
    ]
    if learnings:
        lines.extend(f"- {item}" for item in learnings)
    else:
        lines.append("- No findings were collected.")
    lines.extend(
        [
            "",
            "## Conclusion",
            f"{topic} continues to evolve; the findings above are the current state of the research.",
        ]
    )
    return "\n".join(lines)


def mock_response(prompt: str) -> str:
    """Pick the canned response for a prompt by its task marker."""
    lowered = prompt.lower()
    if REPORT_MARKER in lowered:
        return _report_response(prompt)
    if REVIEW_MARKER in lowered:
        # A single review round is enough for deterministic runs.
        return "[]"
    if LEARNINGS_MARKER in lowered:
        return _learnings_response(prompt)
    if QUERIES_MARKER in lowered:
        return _queries_response(prompt)
    return json.dumps([{"query": "Default mock query", "researchGoal": "Default research goal"}])


class MockProvider(CompletionProvider):
    kind = ProviderKind.MOCK

    def __init__(self, latency_ms: int = 0):
        self.latency_ms = max(int(latency_ms), 0)

    async def complete(self, capability: Capability, prompt: str) -> str:
        if self.latency_ms:
            await asyncio.sleep(self.latency_ms / 1000)
        return mock_response(prompt)
