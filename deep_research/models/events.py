from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class EventType(str, Enum):
    QUERIES_GENERATED = "queries_generated"
    ITERATION_STARTED = "iteration_started"
    AGENT_STARTED = "agent_started"
    AGENT_COMPLETED = "agent_completed"
    SEARCH_RESULT = "search_result"
    REVIEW_COMPLETED = "review_completed"
    SYNTHESIS_STARTED = "synthesis_started"
    RESEARCH_COMPLETE = "research_complete"
    ERROR = "error"


@dataclass
class SSEEvent:
    event: EventType
    data: dict[str, Any] = field(default_factory=dict)

    def format(self) -> str:
        return f"event: {self.event.value}\ndata: {json.dumps(self.data)}\n\n"
