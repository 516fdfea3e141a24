"""Job data models."""
from __future__ import annotations

import enum
from datetime import datetime, timezone
from typing import Dict, List, Optional

from pydantic import BaseModel, Field


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class JobStatus(str, enum.Enum):
    queued = "queued"
    processing = "processing"
    completed = "completed"
    failed = "failed"
    cancelled = "cancelled"


ACTIVE_STATUSES = (JobStatus.queued, JobStatus.processing)


class ScenarioInput(BaseModel):
    """One image scenario a job evaluates."""

    model_config = {"frozen": True}

    id: int
    text: str
    expected: str
    image: str


class ScenarioResult(BaseModel):
    """Outcome of evaluating one scenario."""

    id: int
    text: str
    expected: str
    ai_label: str
    normalized_label: str
    is_correct: bool


class ProcessorOutput(BaseModel):
    """Raw and normalised label returned by a provider processor."""

    ai_label: str
    normalized_label: str


class QueueJob(BaseModel):
    """In-memory representation of one moderation test run."""

    id: str
    email: str
    provider: str
    model: str
    moderation_instructions: str
    scenarios: List[ScenarioInput] = Field(default_factory=list)
    status: JobStatus = JobStatus.queued
    queue_position: int = 0
    created_at: str = Field(default_factory=utc_now)
    started_at: Optional[str] = None
    completed_at: Optional[str] = None
    current_scenario: Optional[int] = None
    results: List[ScenarioResult] = Field(default_factory=list)
    error: Optional[str] = None

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    @property
    def score(self) -> int:
        return sum(1 for r in self.results if r.is_correct)


class ProviderConfig(BaseModel):
    """Runtime tunables for one AI provider."""

    name: str
    max_concurrent: int = 1
    cooldown_ms: int = 0
    is_enabled: bool = True
    timeout_seconds: Optional[float] = None


class ProviderStats(BaseModel):
    queued: int = 0
    processing: int = 0
    active_workers: int = 0
    max_workers: int = 0
    is_enabled: bool = True
    is_paused: bool = False


class QueueStats(BaseModel):
    """Point-in-time queue counters, overall and per provider."""

    total_queued: int = 0
    total_processing: int = 0
    total_completed: int = 0
    total_failed: int = 0
    total_cancelled: int = 0
    providers: Dict[str, ProviderStats] = Field(default_factory=dict)
