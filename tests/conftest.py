"""Shared test fixtures for the moderation_lab test suite."""
from __future__ import annotations

import asyncio

import pytest

from moderation_lab.api.jobs.models import ProcessorOutput, ScenarioInput
from moderation_lab.api.jobs.providers import normalize_label

# Fast provider settings: no cooldown, short timeouts.
TEST_PROVIDERS = {
    "openai": {"max_concurrent": 2, "cooldown_ms": 0, "is_enabled": True, "timeout_seconds": 5.0},
    "anthropic": {"max_concurrent": 1, "cooldown_ms": 0, "is_enabled": True, "timeout_seconds": 5.0},
}

TEST_TEMPLATE = "Rules: {{STUDENT_PROMPT}}"


def pytest_sessionfinish(session, exitstatus):
    """Spawn a watchdog that force-exits if the process hangs at shutdown.

    aiosqlite runs each connection on a worker thread; a connection left
    open by a failing test can keep the interpreter alive.  This watchdog
    ensures pytest exits within a few seconds of test completion.
    """
    import os
    import threading
    import time

    def _watchdog():
        time.sleep(5)
        os._exit(exitstatus)

    t = threading.Thread(target=_watchdog, daemon=True)
    t.start()


# ── Fake provider ────────────────────────────────────────────────────


class FakeProcessor:
    """In-process stand-in for an AI provider.

    Answers each scenario with its expected label unless *answer* says
    otherwise.  With ``gated=True`` every call blocks until ``gate`` is set,
    which keeps jobs in ``processing`` for as long as a test needs.
    """

    def __init__(self, name="openai", answer=None, gated=False, fail=False, delay=0.0):
        self.name = name
        self.answer = answer
        self.gate = asyncio.Event() if gated else None
        self.fail = fail
        self.delay = delay
        self.calls = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def process_scenario(self, scenario, prompt, model):
        self.calls.append((scenario.id, prompt, model))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.gate is not None:
                await self.gate.wait()
            if self.delay:
                await asyncio.sleep(self.delay)
            if self.fail:
                raise RuntimeError("provider unavailable")
            if callable(self.answer):
                label = self.answer(scenario)
            else:
                label = self.answer or scenario.expected
            return ProcessorOutput(ai_label=label, normalized_label=normalize_label(label))
        finally:
            self.in_flight -= 1


async def _wait_until(predicate, timeout=2.0, interval=0.01):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError(f"condition not met within {timeout:.1f}s")
        await asyncio.sleep(interval)


@pytest.fixture
def wait_until():
    """Poll a predicate on the event loop until it holds."""
    return _wait_until


# ── Queue fixtures ───────────────────────────────────────────────────


@pytest.fixture
def scenarios():
    return [
        ScenarioInput(id=1, text="A dog on a rug.", expected="Allowed", image="scenario_1.png"),
        ScenarioInput(id=2, text="Puppies for sale.", expected="Prohibited", image="scenario_2.png"),
        ScenarioInput(id=3, text="A dog at the vet.", expected="Disturbing", image="scenario_3.png"),
    ]


@pytest.fixture
def registry():
    from moderation_lab.api.jobs.registry import ProviderRegistry

    return ProviderRegistry(TEST_PROVIDERS)


@pytest.fixture
def processor():
    return FakeProcessor(gated=True)


@pytest.fixture
async def manager(registry, processor):
    from moderation_lab.api.jobs.manager import QueueManager

    m = QueueManager(registry=registry, prompt_template=TEST_TEMPLATE)
    m.register_processor("openai", processor)
    yield m
    await m.shutdown()


# ── API fixtures ─────────────────────────────────────────────────────


@pytest.fixture
async def app(processor):
    """Create a test FastAPI app wired to a fake provider and an in-memory store."""
    import moderation_lab.api.deps.auth as _auth
    import moderation_lab.api.deps.providers as _prov
    from moderation_lab.api.config import ApiSettings
    from moderation_lab.api.jobs import EventBus, ProviderRegistry, QueueManager, ScoreStore
    from moderation_lab.api.main import create_app
    from moderation_lab.config import DEFAULT_PROMPT_TEMPLATE

    # Disable auth for tests so dashboard endpoints are accessible
    _orig_auth_enabled = _auth.TEACHER_AUTH_ENABLED
    _auth.TEACHER_AUTH_ENABLED = False

    _prov.reset_providers()
    settings = ApiSettings(store_db_path=":memory:")

    store = ScoreStore(settings.store_db_path)
    await store.initialize()
    bus = EventBus()
    queue = QueueManager(
        registry=ProviderRegistry(TEST_PROVIDERS),
        prompt_template=DEFAULT_PROMPT_TEMPLATE,
    )
    queue.set_event_handlers(bus.handlers())
    queue.register_processor("openai", processor)

    # Inject into the provider module
    _prov._score_store = store
    _prov._event_bus = bus
    _prov._queue_manager = queue
    recorder = _prov.get_score_recorder()

    application = create_app(settings)
    yield application

    # Cleanup
    await queue.shutdown()
    await recorder.drain()
    await store.close()
    _auth.TEACHER_AUTH_ENABLED = _orig_auth_enabled
    _prov.reset_providers()


@pytest.fixture
async def client(app):
    """Async HTTP client bound to the test app."""
    from httpx import ASGITransport, AsyncClient

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://testserver",
    ) as ac:
        yield ac
