"""Singleton dependency providers for FastAPI ``Depends()``."""
from __future__ import annotations

from functools import lru_cache

from ..config import ApiSettings, RuntimeConfig


@lru_cache
def get_settings() -> ApiSettings:
    return ApiSettings()


# Lazy singletons: initialised at first call rather than import time
# so the event loop is already running when async resources are needed.

_queue_manager = None
_event_bus = None
_score_store = None
_score_recorder = None


def get_queue_manager():
    """Return the process-wide ``QueueManager``."""
    global _queue_manager
    if _queue_manager is None:
        from ...config import DEFAULT_PROMPT_TEMPLATE
        from ..jobs.manager import QueueManager

        _queue_manager = QueueManager(prompt_template=DEFAULT_PROMPT_TEMPLATE)
        _queue_manager.set_event_handlers(get_event_bus().handlers())
    return _queue_manager


def get_event_bus():
    """Return the singleton ``EventBus`` the queue publishes to."""
    global _event_bus
    if _event_bus is None:
        from ..jobs.events import EventBus

        _event_bus = EventBus()
    return _event_bus


def get_score_store():
    """Return the singleton ``ScoreStore``."""
    global _score_store
    if _score_store is None:
        from ..jobs.store import ScoreStore

        _score_store = ScoreStore(get_settings().store_db_path)
    return _score_store


def get_score_recorder():
    """Return the singleton ``ScoreRecorder`` (attached to the bus on creation)."""
    global _score_recorder
    if _score_recorder is None:
        from ..services.score_recorder import ScoreRecorder

        _score_recorder = ScoreRecorder(get_score_store())
        _score_recorder.attach(get_event_bus())
    return _score_recorder


def get_runtime_config() -> RuntimeConfig:
    return RuntimeConfig(get_queue_manager())


def reset_providers() -> None:
    """Drop every singleton (test isolation)."""
    global _queue_manager, _event_bus, _score_store, _score_recorder
    _queue_manager = None
    _event_bus = None
    _score_store = None
    _score_recorder = None
    get_settings.cache_clear()
