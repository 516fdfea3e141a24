"""In-memory multi-provider job queue for moderation test runs."""
from .errors import (
    AdmissionError,
    DuplicateSubmissionError,
    ProviderUnavailableError,
    QueueFullError,
    TemplateError,
    UnknownProviderError,
)
from .events import EventBus, QueueEventHandlers
from .manager import QueueManager
from .models import JobStatus, QueueJob, QueueStats, ScenarioInput, ScenarioResult
from .registry import ProviderRegistry
from .store import ScoreStore

__all__ = [
    "AdmissionError",
    "DuplicateSubmissionError",
    "EventBus",
    "JobStatus",
    "ProviderRegistry",
    "ProviderUnavailableError",
    "QueueEventHandlers",
    "QueueFullError",
    "QueueJob",
    "QueueManager",
    "QueueStats",
    "ScenarioInput",
    "ScenarioResult",
    "ScoreStore",
    "TemplateError",
    "UnknownProviderError",
]
