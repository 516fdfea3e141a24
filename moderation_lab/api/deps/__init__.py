"""Dependency injection providers."""
from .auth import require_auth
from .providers import (
    get_event_bus,
    get_queue_manager,
    get_runtime_config,
    get_score_recorder,
    get_score_store,
    get_settings,
)

__all__ = [
    "get_event_bus",
    "get_queue_manager",
    "get_runtime_config",
    "get_score_recorder",
    "get_score_store",
    "get_settings",
    "require_auth",
]
