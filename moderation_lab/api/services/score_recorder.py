"""Persists finished test runs: best score, prompt count and prompt history."""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Optional, Set

from ..jobs.events import JOB_COMPLETED, EventBus
from ..jobs.store import PromptVersionRecord, ScoreStore

logger = logging.getLogger(__name__)


class ScoreRecorder:
    """Listens on the event bus and writes completed jobs to the store.

    Listeners are synchronous, so each write runs as a background task; the
    recorder keeps references until the tasks finish.
    """

    def __init__(self, store: ScoreStore) -> None:
        self._store = store
        self._pending: Set[asyncio.Task] = set()
        self._lock = asyncio.Lock()

    def attach(self, bus: EventBus) -> None:
        bus.add_listener(self.on_event)

    def detach(self, bus: EventBus) -> None:
        bus.remove_listener(self.on_event)

    def on_event(self, event: Dict[str, Any]) -> None:
        if event.get("event") != JOB_COMPLETED:
            return
        job = event.get("job") or {}
        task = asyncio.get_running_loop().create_task(
            self.record(
                email=job["email"],
                instructions=job["moderation_instructions"],
                score=int(event.get("score", 0)),
            )
        )
        self._pending.add(task)
        task.add_done_callback(self._on_done)

    def _on_done(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Failed to record score: %s", exc, exc_info=exc)

    async def record(self, email: str, instructions: str, score: int) -> Optional[PromptVersionRecord]:
        """Store one completed run for *email*.

        Runs are recorded one at a time so version numbers stay unique.
        """
        async with self._lock:
            student = await self._store.get_or_create_student(email)
            improved = await self._store.update_student_score(email, score)
            await self._store.increment_prompt_count(email)
            version = await self._store.save_prompt_version(student.id, instructions, score)
        if version is None:
            logger.info("Prompt history for %s is full; version not saved", email)
        logger.info("Recorded score %d for %s%s", score, email, " (new best)" if improved else "")
        return version

    async def drain(self) -> None:
        """Wait for in-flight writes (used on shutdown and in tests)."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
