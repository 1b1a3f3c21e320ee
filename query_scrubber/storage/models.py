"""
Data models for storage layer.

Defines the query records, project configuration and metering entities.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Optional


@dataclass(frozen=True)
class QueryRecord:
    """One logged prompt/response interaction of a project.

    Only ``id``, ``prompt`` and ``response`` are ever shown to the model;
    the remaining fields describe the row in the store.
    """
    id: str
    prompt: Optional[str] = None
    response: Optional[str] = None
    processed: bool = False
    project_id: Optional[str] = None
    created_at: Optional[datetime] = None

    def to_payload(self) -> Dict[str, Optional[str]]:
        """Fields sent to the model, in serialization order."""
        return {"id": self.id, "prompt": self.prompt, "response": self.response}


@dataclass(frozen=True)
class ProjectConfig:
    """Per-project settings relevant to the job."""
    project_id: str
    byo_openai_key: Optional[str] = None


@dataclass(frozen=True)
class LLMUsageEvent:
    """Immutable metering record of tokens spent on behalf of a project.

    Append-only events that create an auditable ledger of AI usage.
    Once written, these records must never be modified.
    """
    timestamp: datetime
    project_id: str
    source: str
    model: str
    prompt_tokens: int
    completion_tokens: int
    total_tokens: int
    estimated_cost: float
    request_id: Optional[str] = None
