"""Per-provider configuration store consumed by the queue manager."""
from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Mapping, Optional

from ...config import PROVIDER_DEFAULTS
from .models import ProviderConfig

logger = logging.getLogger(__name__)

# Semantic validators: field -> (validator_fn, human-readable description).
PROVIDER_VALIDATORS: Dict[str, tuple[Callable[[Any], bool], str]] = {
    "max_concurrent": (
        lambda v: 1 <= v <= 20,
        "Must be between 1 and 20",
    ),
    "cooldown_ms": (
        lambda v: 0 <= v <= 60_000,
        "Must be between 0 and 60000",
    ),
    "timeout_seconds": (
        lambda v: v is None or v > 0,
        "Must be positive, or null to disable",
    ),
    "is_enabled": (
        lambda v: isinstance(v, bool),
        "Must be a boolean",
    ),
}


class ProviderRegistry:
    """Maps provider name to its ``ProviderConfig``.

    Pure storage: no scheduling behaviour lives here.
    """

    def __init__(self, defaults: Optional[Mapping[str, Mapping[str, Any]]] = None) -> None:
        source = PROVIDER_DEFAULTS if defaults is None else defaults
        self._configs: Dict[str, ProviderConfig] = {
            name: ProviderConfig(name=name, **dict(values)) for name, values in source.items()
        }

    def names(self) -> List[str]:
        return list(self._configs)

    def __contains__(self, name: object) -> bool:
        return name in self._configs

    def get(self, name: str) -> Optional[ProviderConfig]:
        return self._configs.get(name)

    def all(self) -> Dict[str, ProviderConfig]:
        return dict(self._configs)

    def update(self, name: str, **changes: Any) -> ProviderConfig:
        """Apply validated changes to one provider and return the new config.

        Raises ``KeyError`` for an unknown provider or field and
        ``ValueError`` when a value fails validation.
        """
        current = self._configs.get(name)
        if current is None:
            raise KeyError(f"Unknown provider: {name}")
        bad = set(changes) - set(PROVIDER_VALIDATORS)
        if bad:
            raise KeyError(f"Fields not adjustable: {sorted(bad)}")
        for key, value in changes.items():
            check_fn, description = PROVIDER_VALIDATORS[key]
            try:
                ok = check_fn(value)
            except TypeError:
                ok = False
            if not ok:
                raise ValueError(f"Invalid value for {name}.{key}: {value!r}. {description}")
        updated = current.model_copy(update=changes)
        self._configs[name] = updated
        logger.info("Provider %s config updated: %s", name, changes)
        return updated
