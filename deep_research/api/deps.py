from __future__ import annotations

from deep_research.config import ResearchConfig, default_config


def get_config() -> ResearchConfig:
    """Research policy for one request, read from the process settings."""
    return default_config()
