"""Runtime-adjustable configuration for the API layer."""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Dict, Optional, Set

from pydantic_settings import BaseSettings

if TYPE_CHECKING:
    from .jobs.manager import QueueManager

logger = logging.getLogger(__name__)

# Provider fields that may be patched at runtime from the teacher dashboard.
_ADJUSTABLE_KEYS: Set[str] = {
    "max_concurrent",
    "cooldown_ms",
    "is_enabled",
    "timeout_seconds",
}

_KEY_TYPES: Dict[str, type] = {
    "max_concurrent": int,
    "cooldown_ms": int,
    "is_enabled": bool,
    "timeout_seconds": float,
}


class ApiSettings(BaseSettings):
    """Immutable settings loaded from environment / .env file."""

    host: str = "0.0.0.0"
    port: int = 8000
    cors_origins: str = "http://localhost:5173,http://localhost:8000"
    store_db_path: str = "moderation_lab.db"
    log_level: Optional[str] = None

    model_config = {"env_prefix": "MODLAB_API_"}


class RuntimeConfig:
    """Get/patch view over the queue's provider configs.

    Restricts patches to the adjustable whitelist and coerces values before
    the provider registry validates them.
    """

    def __init__(self, manager: "QueueManager") -> None:
        self._manager = manager

    def get_adjustable(self) -> Dict[str, Dict[str, Any]]:
        """Return the adjustable fields of every provider."""
        out: Dict[str, Dict[str, Any]] = {}
        for name in self._manager.providers:
            cfg = self._manager.get_provider_config(name)
            out[name] = {key: getattr(cfg, key) for key in sorted(_ADJUSTABLE_KEYS)}
        return out

    def patch(self, provider: str, updates: Dict[str, Any]) -> Dict[str, Any]:
        """Apply validated updates to *provider* and return its new state.

        Raises ``KeyError`` for unknown providers or keys and ``ValueError``
        for values that cannot be coerced or fail validation.
        """
        if provider not in self._manager.providers:
            raise KeyError(f"Unknown provider: {provider}")
        bad = set(updates) - _ADJUSTABLE_KEYS
        if bad:
            raise KeyError(f"Keys not adjustable: {sorted(bad)}")
        coerced: Dict[str, Any] = {}
        for key, value in updates.items():
            target_type = _KEY_TYPES[key]
            if value is None:
                coerced[key] = None
                continue
            try:
                if target_type is bool:
                    if isinstance(value, str):
                        coerced[key] = value.lower() in ("true", "1", "yes")
                    else:
                        coerced[key] = bool(value)
                else:
                    coerced[key] = target_type(value)
            except (TypeError, ValueError) as exc:
                raise ValueError(f"Cannot coerce {key}={value!r} to {target_type.__name__}") from exc
        cfg = self._manager.update_provider_config(provider, **coerced)
        logger.info("RuntimeConfig patched %s: %r", provider, coerced)
        return cfg.model_dump()
