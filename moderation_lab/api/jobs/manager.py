"""Multi-provider job queue with per-provider FIFO dispatch and bounded workers.

All bookkeeping runs on the event loop between awaits, so the job table, the
FIFOs and the worker counters need no locking.  A worker only yields while
awaiting a provider call or the inter-scenario cooldown.
"""
from __future__ import annotations

import asyncio
import logging
import time
import uuid
from typing import Any, Dict, List, Optional, Sequence, Union

from ...config import CANCELLED_REASON, ERROR_LABEL, MAX_QUEUE_SIZE, PROMPT_PLACEHOLDER
from .errors import (
    AdmissionError,
    DuplicateSubmissionError,
    ProviderUnavailableError,
    QueueFullError,
    TemplateError,
    UnknownProviderError,
)
from .events import QueueEventHandlers
from .models import (
    JobStatus,
    ProviderConfig,
    ProviderStats,
    QueueJob,
    QueueStats,
    ScenarioInput,
    ScenarioResult,
    utc_now,
)
from .providers import ProviderProcessor, get_processor, provider_for_model
from .registry import ProviderRegistry

logger = logging.getLogger(__name__)


def _new_job_id() -> str:
    return f"{int(time.time() * 1000)}-{uuid.uuid4().hex[:9]}"


class QueueManager:
    """Owns the job table, the provider FIFOs and the worker counters.

    ``enqueue``, ``cancel_job`` and the pause/resume calls are synchronous and
    must run on the event loop; workers run as ``asyncio`` tasks.
    """

    def __init__(
        self,
        registry: Optional[ProviderRegistry] = None,
        max_queue_size: int = MAX_QUEUE_SIZE,
        prompt_template: str = "",
    ) -> None:
        self._registry = registry if registry is not None else ProviderRegistry()
        self._max_queue_size = max_queue_size
        self._prompt_template = prompt_template
        self._jobs: Dict[str, QueueJob] = {}
        self._queues: Dict[str, List[str]] = {}
        self._paused: Dict[str, bool] = {}
        self._active_workers: Dict[str, int] = {}
        self._processors: Dict[str, ProviderProcessor] = {}
        self._tasks: Dict[str, asyncio.Task] = {}
        self._events = QueueEventHandlers()
        self._cancelled_count = 0
        self._closed = False

        for name in self._registry.names():
            self._queues[name] = []
            self._paused[name] = False
            self._active_workers[name] = 0

    # ── Setup ────────────────────────────────────────────────────────

    def initialize(self) -> None:
        """Build a processor for every provider that does not have one yet.

        A provider whose processor cannot be built (e.g. no API key) stays
        without one; its jobs fail when a worker picks them up.
        """
        for name in self._registry.names():
            if name in self._processors:
                continue
            try:
                self._processors[name] = get_processor(name)
            except (ProviderUnavailableError, ValueError) as exc:
                logger.warning("%s processor not available: %s", name, exc)

    def register_processor(self, provider: str, processor: ProviderProcessor) -> None:
        if provider not in self._queues:
            raise UnknownProviderError(f"Unknown provider: {provider}")
        self._processors[provider] = processor

    def set_event_handlers(
        self, handlers: Optional[QueueEventHandlers] = None, **callbacks: Any
    ) -> None:
        """Merge callbacks into the current handler set.

        Accepts a ``QueueEventHandlers`` and/or keyword callbacks named after
        its fields; fields left as ``None`` keep their current handler.
        """
        updates: Dict[str, Any] = {}
        if handlers is not None:
            for name in QueueEventHandlers.field_names():
                value = getattr(handlers, name)
                if value is not None:
                    updates[name] = value
        unknown = set(callbacks) - set(QueueEventHandlers.field_names())
        if unknown:
            raise TypeError(f"Unknown event handlers: {sorted(unknown)}")
        updates.update({k: v for k, v in callbacks.items() if v is not None})
        for name, value in updates.items():
            setattr(self._events, name, value)

    @property
    def prompt_template(self) -> str:
        return self._prompt_template

    def set_prompt_template(self, template: str) -> None:
        self._prompt_template = template

    def render_prompt(self, instructions: str) -> str:
        template = self._prompt_template
        if not template:
            raise TemplateError("Prompt template is not configured")
        if PROMPT_PLACEHOLDER not in template:
            raise TemplateError(f"Prompt template is missing the {PROMPT_PLACEHOLDER} placeholder")
        return template.replace(PROMPT_PLACEHOLDER, instructions, 1)

    # ── Provider config & pause control ──────────────────────────────

    @property
    def providers(self) -> List[str]:
        return list(self._queues)

    @property
    def available_providers(self) -> List[str]:
        """Providers that currently have a processor to run jobs."""
        return [name for name in self._queues if name in self._processors]

    def get_provider_config(self, provider: str) -> Optional[ProviderConfig]:
        return self._registry.get(provider)

    def update_provider_config(self, provider: str, **changes: Any) -> ProviderConfig:
        """Update a provider's tunables; a raised limit is used right away."""
        config = self._registry.update(provider, **changes)
        self._emit_stats()
        self.process_queue(provider)
        return config

    def _require_provider(self, provider: str) -> None:
        if provider not in self._queues:
            raise UnknownProviderError(f"Unknown provider: {provider}")

    def pause_provider(self, provider: str) -> None:
        """Stop dispatching new jobs for *provider*; running jobs finish."""
        self._require_provider(provider)
        self._paused[provider] = True
        logger.info("Provider %s paused", provider)
        self._emit_stats()

    def resume_provider(self, provider: str) -> None:
        self._require_provider(provider)
        self._paused[provider] = False
        logger.info("Provider %s resumed", provider)
        self.process_queue(provider)
        self._emit_stats()

    def pause_all(self) -> None:
        for provider in self._queues:
            self._paused[provider] = True
        logger.info("All providers paused")
        self._emit_stats()

    def resume_all(self) -> None:
        for provider in self._queues:
            self._paused[provider] = False
            self.process_queue(provider)
        logger.info("All providers resumed")
        self._emit_stats()

    def pause(self, provider: Optional[str] = None) -> None:
        if provider is None:
            self.pause_all()
        else:
            self.pause_provider(provider)

    def resume(self, provider: Optional[str] = None) -> None:
        if provider is None:
            self.resume_all()
        else:
            self.resume_provider(provider)

    def is_provider_paused(self, provider: str) -> bool:
        return self._paused.get(provider, False)

    # ── Admission ────────────────────────────────────────────────────

    def enqueue(
        self,
        email: str,
        model: str,
        moderation_instructions: str,
        scenarios: Sequence[Union[ScenarioInput, Dict[str, Any]]],
    ) -> Union[QueueJob, AdmissionError]:
        """Admit a job and dispatch it if a worker slot is free.

        Returns the new job, or an ``AdmissionError`` describing why nothing
        was created.  Admission errors are returned, never raised.
        """
        provider = provider_for_model(model)
        queue = self._queues.get(provider)
        if queue is None:
            return UnknownProviderError(f"Unknown provider for model: {model}")

        if self.get_job_by_email(email) is not None:
            logger.info("Rejected submission from %s: already queued", email)
            return DuplicateSubmissionError(
                "You already have a test in the queue. Please wait for it to complete."
            )

        active = sum(1 for j in self._jobs.values() if j.is_active)
        if active >= self._max_queue_size:
            logger.warning("Rejected submission from %s: queue full (%d)", email, active)
            return QueueFullError(
                "The queue is currently full. Please try again in a few minutes."
            )

        job = QueueJob(
            id=_new_job_id(),
            email=email,
            provider=provider,
            model=model,
            moderation_instructions=moderation_instructions,
            scenarios=[
                s if isinstance(s, ScenarioInput) else ScenarioInput(**s) for s in scenarios
            ],
            queue_position=len(queue) + 1,
        )
        self._jobs[job.id] = job
        queue.append(job.id)
        self._update_queue_positions(provider)
        logger.info(
            "Job %s queued for %s on %s (%s), position %d",
            job.id, email, provider, model, job.queue_position,
        )
        self._emit("on_job_queued", job)
        self._emit_stats()

        self.process_queue(provider)
        return job

    # ── Dispatch ─────────────────────────────────────────────────────

    def process_queue(self, provider: str) -> None:
        """Start a worker for the earliest queued job if capacity allows.

        Safe to call redundantly: it does nothing when the provider is paused
        or disabled, at capacity, or has no queued job.
        """
        if self._closed or self._paused.get(provider, False):
            return
        config = self._registry.get(provider)
        if config is None or not config.is_enabled:
            return
        if self._active_workers.get(provider, 0) >= config.max_concurrent:
            return
        queue = self._queues.get(provider)
        if not queue:
            return

        next_job_id = None
        for job_id in queue:
            job = self._jobs.get(job_id)
            if job is not None and job.status == JobStatus.queued:
                next_job_id = job_id
                break
        if next_job_id is None:
            return

        loop = asyncio.get_running_loop()
        self._start_worker(provider, next_job_id, loop)

        if self._active_workers.get(provider, 0) < config.max_concurrent:
            loop.call_soon(self.process_queue, provider)

    def _start_worker(self, provider: str, job_id: str, loop: asyncio.AbstractEventLoop) -> None:
        job = self._jobs[job_id]
        self._active_workers[provider] = self._active_workers.get(provider, 0) + 1

        job.status = JobStatus.processing
        job.started_at = utc_now()
        job.results = []
        job.current_scenario = None
        logger.info("Job %s started on %s", job.id, provider, extra={"job_id": job.id, "provider": provider})
        self._emit("on_job_started", job)
        self._emit_stats()

        self._tasks[job.id] = loop.create_task(self._run_job(provider, job))

    async def _run_job(self, provider: str, job: QueueJob) -> None:
        try:
            processor = self._processors.get(provider)
            if processor is None:
                raise ProviderUnavailableError(f"No processor available for provider '{provider}'")
            prompt = self.render_prompt(job.moderation_instructions)

            total = len(job.scenarios)
            for index, scenario in enumerate(job.scenarios, start=1):
                job.current_scenario = index
                self._emit("on_job_progress", job, index, total)

                config = self._registry.get(provider)
                job.results.append(
                    await self._evaluate(processor, scenario, prompt, job, config.timeout_seconds)
                )

                if config.cooldown_ms > 0 and index < total:
                    await asyncio.sleep(config.cooldown_ms / 1000.0)

            job.status = JobStatus.completed
            job.completed_at = utc_now()
            self._remove_from_queue(provider, job.id)
            logger.info("Job %s completed: %d/%d correct", job.id, job.score, total, extra={"job_id": job.id})
            self._emit("on_job_completed", job)
        except Exception as exc:
            job.status = JobStatus.failed
            job.error = str(exc) or exc.__class__.__name__
            job.completed_at = utc_now()
            self._remove_from_queue(provider, job.id)
            if isinstance(exc, (ProviderUnavailableError, TemplateError)):
                logger.warning("Job %s failed: %s", job.id, job.error, extra={"job_id": job.id})
            else:
                logger.error("Job %s failed: %s", job.id, job.error, exc_info=True, extra={"job_id": job.id})
            self._emit("on_job_failed", job, job.error)
        finally:
            self._active_workers[provider] = max(0, self._active_workers.get(provider, 0) - 1)
            self._tasks.pop(job.id, None)
            self._emit_stats()
            asyncio.get_running_loop().call_soon(self.process_queue, provider)

    async def _evaluate(
        self,
        processor: ProviderProcessor,
        scenario: ScenarioInput,
        prompt: str,
        job: QueueJob,
        timeout: Optional[float],
    ) -> ScenarioResult:
        """Run one scenario; any error becomes an ``Error`` result."""
        try:
            output = await asyncio.wait_for(
                processor.process_scenario(scenario, prompt, job.model), timeout=timeout
            )
        except Exception as exc:
            logger.warning(
                "Error processing scenario %s of job %s: %s",
                scenario.id, job.id, str(exc) or exc.__class__.__name__,
            )
            return ScenarioResult(
                id=scenario.id,
                text=scenario.text,
                expected=scenario.expected,
                ai_label=ERROR_LABEL,
                normalized_label=ERROR_LABEL,
                is_correct=False,
            )
        return ScenarioResult(
            id=scenario.id,
            text=scenario.text,
            expected=scenario.expected,
            ai_label=output.ai_label,
            normalized_label=output.normalized_label,
            is_correct=output.normalized_label == scenario.expected,
        )

    def _remove_from_queue(self, provider: str, job_id: str) -> None:
        queue = self._queues.get(provider)
        if queue is None:
            return
        if job_id in queue:
            queue.remove(job_id)
        self._update_queue_positions(provider)

    def _update_queue_positions(self, provider: str) -> None:
        # Jobs leave the FIFO only when they finish, so in-flight jobs ahead
        # of a queued job count towards its position.
        for index, job_id in enumerate(self._queues.get(provider, []), start=1):
            job = self._jobs.get(job_id)
            if job is not None and job.status == JobStatus.queued:
                job.queue_position = index

    # ── Cancellation ─────────────────────────────────────────────────

    def cancel_job(self, job_id: str) -> bool:
        """Cancel a queued job. Jobs already processing cannot be cancelled."""
        job = self._jobs.get(job_id)
        if job is None or job.status != JobStatus.queued:
            return False

        job.status = JobStatus.cancelled
        job.error = CANCELLED_REASON
        job.completed_at = utc_now()
        self._remove_from_queue(job.provider, job_id)
        self._cancelled_count += 1
        logger.info("Job %s cancelled", job_id)
        self._emit("on_job_cancelled", job)
        del self._jobs[job_id]
        self._emit_stats()
        return True

    def clear_completed_jobs(self) -> int:
        """Drop finished jobs from the table and return how many were removed."""
        finished = [jid for jid, j in self._jobs.items() if not j.is_active]
        for job_id in finished:
            del self._jobs[job_id]
        if finished:
            logger.info("Cleared %d finished jobs", len(finished))
        self._emit_stats()
        return len(finished)

    # ── Introspection ────────────────────────────────────────────────

    def get_job(self, job_id: str) -> Optional[QueueJob]:
        return self._jobs.get(job_id)

    def get_job_by_email(self, email: str) -> Optional[QueueJob]:
        """Return the submitter's queued or processing job, if any."""
        for job in self._jobs.values():
            if job.email == email and job.is_active:
                return job
        return None

    def get_queued_jobs(self) -> List[QueueJob]:
        """Active jobs ordered by creation time, oldest first."""
        active = [j for j in self._jobs.values() if j.is_active]
        return sorted(active, key=lambda j: j.created_at)

    def get_stats(self) -> QueueStats:
        jobs = list(self._jobs.values())

        def _count(status: JobStatus, provider: Optional[str] = None) -> int:
            return sum(
                1 for j in jobs
                if j.status == status and (provider is None or j.provider == provider)
            )

        stats = QueueStats(
            total_queued=_count(JobStatus.queued),
            total_processing=_count(JobStatus.processing),
            total_completed=_count(JobStatus.completed),
            total_failed=_count(JobStatus.failed),
            total_cancelled=self._cancelled_count,
        )
        for name, config in self._registry.all().items():
            stats.providers[name] = ProviderStats(
                queued=_count(JobStatus.queued, name),
                processing=_count(JobStatus.processing, name),
                active_workers=self._active_workers.get(name, 0),
                max_workers=config.max_concurrent,
                is_enabled=config.is_enabled,
                is_paused=self._paused.get(name, False),
            )
        return stats

    # ── Shutdown ─────────────────────────────────────────────────────

    async def shutdown(self) -> None:
        """Stop dispatching and cancel in-flight workers."""
        self._closed = True
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        logger.info("Queue manager stopped (%d workers cancelled)", len(tasks))

    # ── Events ───────────────────────────────────────────────────────

    def _emit(self, name: str, *args: Any) -> None:
        handler = getattr(self._events, name)
        if handler is None:
            return
        try:
            handler(*args)
        except Exception:  # noqa: BLE001
            logger.exception("Event handler %s failed", name)

    def _emit_stats(self) -> None:
        if self._events.on_stats_updated is not None:
            self._emit("on_stats_updated", self.get_stats())
