"""
Provider processors: one AI moderation call per scenario.

Each processor turns (scenario, rendered prompt, model) into a raw label and
its normalised category.  Processors are built through a small name-keyed
factory registry so tests and deployments can swap implementations.
"""
from __future__ import annotations

import asyncio
import base64
import logging
import os
from pathlib import Path
from typing import Callable, Dict, List, Optional, Protocol

from ...config import (
    DEFAULT_PROVIDER,
    MODERATION_LABELS,
    PROVIDER_API_KEY_ENV,
    SCENARIO_IMAGE_DIR,
    UNKNOWN_LABEL,
)
from .errors import ProviderUnavailableError
from .models import ProcessorOutput, ScenarioInput

logger = logging.getLogger(__name__)


class ProviderProcessor(Protocol):
    """Minimal interface the queue expects from a provider backend."""

    name: str

    async def process_scenario(
        self, scenario: ScenarioInput, prompt: str, model: str
    ) -> ProcessorOutput:
        """Classify one scenario and return the raw and normalised labels."""
        ...


def normalize_label(ai_label: str) -> str:
    """Map free text onto a moderation label by substring match.

    The first label in ``MODERATION_LABELS`` found anywhere in the text wins;
    text matching none of them maps to ``Unknown``.
    """
    for label in MODERATION_LABELS:
        if label in ai_label:
            return label
    return UNKNOWN_LABEL


def provider_for_model(model: str) -> str:
    """Resolve the provider that serves *model*.

    Every model string maps to a provider: ``claude*`` goes to Anthropic and
    anything else falls back to the default provider, unrecognised names
    included.
    """
    if model.startswith("claude"):
        return "anthropic"
    if not model.startswith(("gpt", "o1", "o3", "o4", "chatgpt")):
        logger.debug("Model %r not recognised, routing to %s", model, DEFAULT_PROVIDER)
    return DEFAULT_PROVIDER


async def load_image_base64(image_name: str, image_dir: Optional[Path] = None) -> str:
    """Read a scenario image off the event loop and return it base64-encoded."""
    path = Path(image_dir or SCENARIO_IMAGE_DIR) / image_name
    data = await asyncio.to_thread(path.read_bytes)
    return base64.b64encode(data).decode("ascii")


def _require_api_key(provider: str, api_key: Optional[str]) -> str:
    key = api_key or os.environ.get(PROVIDER_API_KEY_ENV[provider], "")
    if not key:
        raise ProviderUnavailableError(
            f"{provider} API key not configured ({PROVIDER_API_KEY_ENV[provider]})"
        )
    return key


class OpenAIProcessor:
    """Vision classification through the OpenAI chat completions API."""

    name = "openai"

    def __init__(
        self,
        api_key: Optional[str] = None,
        image_dir: Optional[Path] = None,
        client=None,
    ) -> None:
        if client is None:
            from openai import AsyncOpenAI

            client = AsyncOpenAI(api_key=_require_api_key(self.name, api_key))
        self._client = client
        self._image_dir = image_dir

    async def process_scenario(
        self, scenario: ScenarioInput, prompt: str, model: str
    ) -> ProcessorOutput:
        image_b64 = await load_image_base64(scenario.image, self._image_dir)
        response = await self._client.chat.completions.create(
            model=model,
            messages=[
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": prompt},
                        {
                            "type": "image_url",
                            "image_url": {
                                "url": f"data:image/png;base64,{image_b64}",
                                "detail": "low",
                            },
                        },
                    ],
                }
            ],
            max_tokens=20,
            temperature=0,
        )
        content = None
        if response.choices:
            content = response.choices[0].message.content
        ai_label = (content or "").strip() or UNKNOWN_LABEL
        return ProcessorOutput(ai_label=ai_label, normalized_label=normalize_label(ai_label))


class AnthropicProcessor:
    """Vision classification through the Anthropic messages API."""

    name = "anthropic"

    def __init__(
        self,
        api_key: Optional[str] = None,
        image_dir: Optional[Path] = None,
        client=None,
    ) -> None:
        if client is None:
            from anthropic import AsyncAnthropic

            client = AsyncAnthropic(api_key=_require_api_key(self.name, api_key))
        self._client = client
        self._image_dir = image_dir

    async def process_scenario(
        self, scenario: ScenarioInput, prompt: str, model: str
    ) -> ProcessorOutput:
        image_b64 = await load_image_base64(scenario.image, self._image_dir)
        response = await self._client.messages.create(
            model=model,
            max_tokens=50,
            messages=[
                {
                    "role": "user",
                    "content": [
                        {
                            "type": "image",
                            "source": {
                                "type": "base64",
                                "media_type": "image/png",
                                "data": image_b64,
                            },
                        },
                        {"type": "text", "text": prompt},
                    ],
                }
            ],
        )
        text = ""
        if response.content:
            text = getattr(response.content[0], "text", "") or ""
        ai_label = text.strip() or UNKNOWN_LABEL
        return ProcessorOutput(ai_label=ai_label, normalized_label=normalize_label(ai_label))


# ── Factory registry ─────────────────────────────────────────────────

ProcessorFactory = Callable[..., ProviderProcessor]


def _openai_factory(**kwargs) -> ProviderProcessor:
    return OpenAIProcessor(**kwargs)


def _anthropic_factory(**kwargs) -> ProviderProcessor:
    return AnthropicProcessor(**kwargs)


_REGISTRY: Dict[str, ProcessorFactory] = {
    "openai": _openai_factory,
    "anthropic": _anthropic_factory,
}


def get_processor(name: str, **kwargs) -> ProviderProcessor:
    """Construct a registered processor by provider name.

    Raises ``ValueError`` for unknown names and ``ProviderUnavailableError``
    when the provider's credentials are missing.
    """
    key = str(name).lower().strip()
    if key not in _REGISTRY:
        available = ", ".join(sorted(_REGISTRY.keys()))
        raise ValueError(f"Unknown provider '{name}'. Available: {available}")
    return _REGISTRY[key](**kwargs)


def list_processors() -> List[str]:
    """Return the provider names with a registered processor factory."""
    return sorted(_REGISTRY.keys())


def register_processor(name: str, factory: ProcessorFactory) -> None:
    """Register or override a processor factory under a normalized key."""
    key = str(name).lower().strip()
    if not key:
        raise ValueError("Provider name cannot be empty.")
    _REGISTRY[key] = factory
