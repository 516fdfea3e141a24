"""Queue event contract and the in-process broadcast bus.

``QueueEventHandlers`` is the callback set the ``QueueManager`` fires on each
lifecycle transition.  The manager holds exactly one handler set; ``EventBus``
provides one that fans every event out to any number of SSE subscribers and
synchronous listeners.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, fields
from typing import Any, AsyncGenerator, Callable, Dict, List, Optional

from .models import QueueJob, QueueStats

logger = logging.getLogger(__name__)

JOB_QUEUED = "job_queued"
JOB_STARTED = "job_started"
JOB_PROGRESS = "job_progress"
JOB_COMPLETED = "job_completed"
JOB_FAILED = "job_failed"
JOB_CANCELLED = "job_cancelled"
STATS_UPDATED = "stats_updated"

TERMINAL_EVENTS = (JOB_COMPLETED, JOB_FAILED, JOB_CANCELLED)


@dataclass
class QueueEventHandlers:
    """Optional callbacks, one per queue lifecycle event."""

    on_job_queued: Optional[Callable[[QueueJob], None]] = None
    on_job_started: Optional[Callable[[QueueJob], None]] = None
    on_job_progress: Optional[Callable[[QueueJob, int, int], None]] = None
    on_job_completed: Optional[Callable[[QueueJob], None]] = None
    on_job_failed: Optional[Callable[[QueueJob, str], None]] = None
    on_job_cancelled: Optional[Callable[[QueueJob], None]] = None
    on_stats_updated: Optional[Callable[[QueueStats], None]] = None

    @classmethod
    def field_names(cls) -> List[str]:
        return [f.name for f in fields(cls)]


def _job_payload(job: QueueJob) -> Dict[str, Any]:
    return job.model_dump(mode="json")


class EventBus:
    """Broadcasts queue events as plain dicts.

    Subscribers receive events through an ``asyncio.Queue``; a per-job
    subscription only sees that job's events and ends after its terminal
    event.  Listeners are called synchronously for every event.
    """

    def __init__(self) -> None:
        self._subscribers: Dict[Optional[str], List[asyncio.Queue]] = {}
        self._listeners: List[Callable[[Dict[str, Any]], None]] = []

    # ── Handler set for the queue manager ────────────────────────────

    def handlers(self) -> QueueEventHandlers:
        return QueueEventHandlers(
            on_job_queued=lambda job: self.publish(
                {"event": JOB_QUEUED, "job_id": job.id, "job": _job_payload(job)}
            ),
            on_job_started=lambda job: self.publish(
                {"event": JOB_STARTED, "job_id": job.id, "job": _job_payload(job)}
            ),
            on_job_progress=lambda job, current, total: self.publish(
                {"event": JOB_PROGRESS, "job_id": job.id, "current": current, "total": total}
            ),
            on_job_completed=lambda job: self.publish(
                {
                    "event": JOB_COMPLETED,
                    "job_id": job.id,
                    "job": _job_payload(job),
                    "results": [r.model_dump() for r in job.results],
                    "score": job.score,
                    "total": len(job.scenarios),
                }
            ),
            on_job_failed=lambda job, error: self.publish(
                {"event": JOB_FAILED, "job_id": job.id, "job": _job_payload(job), "error": error}
            ),
            on_job_cancelled=lambda job: self.publish(
                {"event": JOB_CANCELLED, "job_id": job.id, "job": _job_payload(job)}
            ),
            on_stats_updated=lambda stats: self.publish(
                {"event": STATS_UPDATED, "stats": stats.model_dump()}
            ),
        )

    # ── Fan-out ──────────────────────────────────────────────────────

    def publish(self, event: Dict[str, Any]) -> None:
        job_id = event.get("job_id")
        targets = list(self._subscribers.get(None, []))
        if job_id is not None:
            targets.extend(self._subscribers.get(job_id, []))
        for q in targets:
            q.put_nowait(event)
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:  # noqa: BLE001
                logger.exception("Event listener failed on %s", event.get("event"))

    def add_listener(self, listener: Callable[[Dict[str, Any]], None]) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: Callable[[Dict[str, Any]], None]) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def subscriber_count(self, job_id: Optional[str] = None) -> int:
        return len(self._subscribers.get(job_id, []))

    async def subscribe(
        self,
        job_id: Optional[str] = None,
        initial: Optional[Dict[str, Any]] = None,
    ) -> AsyncGenerator[Dict[str, Any], None]:
        """Yield events for *job_id* (or every event when ``None``).

        *initial* is yielded first, typically the job's current status.  If it
        already describes a finished job the stream ends right after it.
        """
        queue: asyncio.Queue = asyncio.Queue()
        self._subscribers.setdefault(job_id, []).append(queue)
        try:
            if initial is not None:
                yield initial
                if job_id is not None and initial.get("event") in TERMINAL_EVENTS:
                    return

            while True:
                event = await queue.get()
                yield event
                if job_id is not None and event.get("event") in TERMINAL_EVENTS:
                    break
        finally:
            subs = self._subscribers.get(job_id, [])
            if queue in subs:
                subs.remove(queue)
            if not subs:
                self._subscribers.pop(job_id, None)
