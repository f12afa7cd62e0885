from __future__ import annotations

from dataclasses import FrozenInstanceError

import pytest

from deep_research.config import ResearchConfig, Settings


def test_from_settings_normalizes_values():
    source = Settings(
        _env_file=None,
        mock_mode=True,
        default_provider=" Anthropic ",
        tavily_api_key="  key  ",
        parallel_search_limit=0,
        request_timeout_seconds=0,
        anthropic_fallback_model="claude-small",
    )

    config = ResearchConfig.from_settings(source)

    assert config.mock_mode is True
    assert config.default_provider == "anthropic"
    assert config.tavily_api_key == "key"
    assert config.parallel_search_limit == 1
    assert config.request_timeout_seconds == 1.0
    assert config.anthropic_models.fallback == "claude-small"


def test_config_is_immutable():
    config = ResearchConfig()
    with pytest.raises(FrozenInstanceError):
        config.mock_mode = True


def test_cors_origin_list_splits_and_strips():
    source = Settings(_env_file=None, cors_origins="http://a.test, http://b.test")
    assert source.cors_origin_list == ["http://a.test", "http://b.test"]
