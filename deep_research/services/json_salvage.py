"""Recover structured data from free-text model output.

`parse_structured` runs a fixed pipeline of cleaning and parsing strategies
and returns the first one that yields valid JSON. It never raises.
"""
from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any, Callable

from loguru import logger

from deep_research.models.research import Query

_FENCE_START_RE = re.compile(r"^\s*```[A-Za-z0-9_-]*\s*")
_FENCE_END_RE = re.compile(r"\s*```\s*$")
_BARE_KEY_RE = re.compile(r"([{,])\s*([A-Za-z0-9_]+)\s*:")


def strip_code_fence(text: str) -> str:
    return _FENCE_END_RE.sub("", _FENCE_START_RE.sub("", text)).strip()


def trim_to_json(text: str) -> str:
    """Keep the span from the first `[`/`{` to the last `]`/`}`."""
    starts = [i for i in (text.find("["), text.find("{")) if i >= 0]
    if starts:
        text = text[min(starts):]
    end = max(text.rfind("]"), text.rfind("}"))
    if end != -1:
        text = text[: end + 1]
    return text


def normalize_quotes(text: str) -> str:
    return text.replace("'", '"')


def quote_bare_keys(text: str) -> str:
    return _BARE_KEY_RE.sub(r'\1"\2":', text)


@dataclass(frozen=True)
class ParseStrategy:
    name: str
    transform: Callable[[str], str]


STRATEGIES: tuple[ParseStrategy, ...] = (
    ParseStrategy("as_is", lambda text: text),
    ParseStrategy("double_quotes", normalize_quotes),
    ParseStrategy("quoted_keys", quote_bare_keys),
)


def clean_text(text: str) -> str:
    return trim_to_json(strip_code_fence(text))


def try_strategy(strategy: ParseStrategy, cleaned: str) -> tuple[bool, Any]:
    try:
        return True, json.loads(strategy.transform(cleaned))
    except (ValueError, TypeError):
        return False, None


def parse_structured(text: Any, default: Any, *, source: str = "unknown") -> Any:
    """Parse JSON out of `text`, returning `default` when nothing works."""
    if not isinstance(text, str):
        logger.warning(f"JSON parsing skipped in {source}: expected text, got {type(text).__name__}")
        return default

    cleaned = clean_text(text)
    for strategy in STRATEGIES:
        ok, value = try_strategy(strategy, cleaned)
        if ok:
            if strategy.name != "as_is":
                logger.debug(f"JSON in {source} recovered with strategy '{strategy.name}'")
            return value

    logger.warning(f"JSON parsing error in {source}; using default")
    logger.debug(f"Original text ({source}): {text!r}")
    logger.debug(f"Cleaned text ({source}): {cleaned!r}")
    return default


def coerce_queries(value: Any) -> list[Query]:
    """Turn parsed model output into `Query` objects, dropping unusable items."""
    if isinstance(value, dict):
        value = value.get("queries", [])
    if not isinstance(value, list):
        return []

    queries: list[Query] = []
    for item in value:
        if not isinstance(item, dict):
            continue
        text = item.get("query") or item.get("text") or ""
        goal = item.get("researchGoal") or item.get("goal") or ""
        if not isinstance(text, str) or not text.strip():
            continue
        queries.append(Query(text=" ".join(text.split()), goal=str(goal).strip()))
    return queries
