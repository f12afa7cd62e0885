"""Prompt catalog stored as JSON inside the package.

Entries are addressed by dotted keys such as `research.serp_queries`. A value
is either a string or a list of lines, and `$name` placeholders are filled in
with `string.Template`. The file is re-read whenever its mtime changes.
"""
from __future__ import annotations

import json
from pathlib import Path
from string import Template
from typing import Any

PROMPTS_PATH = Path(__file__).resolve().parents[1] / "prompts" / "prompts.json"

_cache: dict[str, Any] = {"mtime_ns": None, "catalog": None}


def load_catalog() -> dict[str, Any]:
    mtime_ns = PROMPTS_PATH.stat().st_mtime_ns
    if _cache["catalog"] is None or _cache["mtime_ns"] != mtime_ns:
        payload = json.loads(PROMPTS_PATH.read_text(encoding="utf-8"))
        if not isinstance(payload, dict):
            raise ValueError(f"Prompt catalog must be a JSON object: {PROMPTS_PATH}")
        _cache.update(catalog=payload, mtime_ns=mtime_ns)
    return _cache["catalog"]


def prompt_text(key: str) -> str:
    """Raw template text for `key`; KeyError when absent."""
    node: Any = load_catalog()
    for part in key.split("."):
        try:
            node = node[part]
        except (KeyError, TypeError):
            raise KeyError(f"Prompt key not found: {key}") from None
    if isinstance(node, list) and all(isinstance(line, str) for line in node):
        return "\n".join(node)
    if isinstance(node, str):
        return node
    raise TypeError(f"Prompt '{key}' is a group, not a template")


def has_prompt(key: str) -> bool:
    try:
        prompt_text(key)
    except (KeyError, TypeError):
        return False
    return True


def render_prompt(key: str, **values: Any) -> str:
    template = Template(prompt_text(key))
    try:
        return template.substitute(values)
    except KeyError as exc:
        raise KeyError(f"Missing template value '{exc.args[0]}' for prompt '{key}'") from exc


def render_named(group: str, name: str | None, *, default: str = "default") -> str:
    """Render `group.name`, or `group.<default>` when the name is unknown."""
    if name and has_prompt(f"{group}.{name}"):
        return render_prompt(f"{group}.{name}")
    return render_prompt(f"{group}.{default}")


def clear_prompt_cache() -> None:
    _cache.update(catalog=None, mtime_ns=None)
