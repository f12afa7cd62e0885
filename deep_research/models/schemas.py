from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field, field_validator

from deep_research.models.research import ResearchOptions

Mode = Literal["default", "academic", "technical", "news", "auto"]
DetailLevelName = Literal["brief", "standard", "comprehensive"]


# --- Requests ---


class ProviderFields(BaseModel):
    language: str = "en-US"
    provider: str | None = None
    model: str | None = None


class QueryItem(BaseModel):
    query: str = Field(min_length=1)
    research_goal: str = ""


class ResearchRequest(ProviderFields):
    query: str = "General research topic"
    search_backend: str | None = None
    max_iterations: int = Field(default=2, ge=1, le=10)
    max_results: int = Field(default=5, ge=1, le=20)
    mode: Mode = "default"
    detail_level: DetailLevelName = "standard"
    requirement: str = ""
    suggestion: str = ""
    parallel_search: bool = False
    timeout_seconds: float | None = Field(default=None, gt=0)

    @field_validator("query")
    @classmethod
    def _default_blank_query(cls, value: str) -> str:
        return value.strip() or "General research topic"

    def to_options(self) -> ResearchOptions:
        return ResearchOptions(
            max_results_per_query=self.max_results,
            requirement=self.requirement,
            detail_level=self.detail_level,
            report_style=self.mode,
            prompt_type=self.mode,
            suggestion=self.suggestion,
            parallel_search=self.parallel_search,
            timeout_seconds=self.timeout_seconds,
        )


class StartRequest(ProviderFields):
    topic: str = Field(min_length=1)
    mode: Mode = "default"
    detail_level: DetailLevelName = "standard"


class SearchRequest(ProviderFields):
    queries: list[QueryItem]
    search_backend: str | None = None
    parallel_search: bool = False
    max_results: int = Field(default=5, ge=1, le=20)


class ReviewRequest(ProviderFields):
    topic: str = Field(min_length=1)
    learnings: list[str]
    suggestion: str = ""


class ReportRequest(ProviderFields):
    topic: str = Field(min_length=1)
    learnings: list[str]
    requirement: str = ""
    mode: Mode = "default"
    detail_level: DetailLevelName = "standard"


# --- Responses ---


class QueriesResponse(BaseModel):
    queries: list[QueryItem]
    fallback: bool = False


class SourceItem(BaseModel):
    title: str
    url: str
    content: str
    score: float = 0.0


class QueryResultItem(BaseModel):
    query: str
    research_goal: str = ""
    sources: list[SourceItem]
    learnings: list[str]


class SearchResponse(BaseModel):
    results: list[QueryResultItem]
    learnings: list[str]


class ReportResponse(BaseModel):
    report: str
