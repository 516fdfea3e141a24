"""Student-facing queue endpoints: submit, poll, stream, cancel."""
from __future__ import annotations

import json
from typing import Any, Dict, List

from fastapi import APIRouter, Depends, HTTPException
from sse_starlette.sse import EventSourceResponse

from ...config import DEFAULT_SCENARIOS
from ..deps.providers import get_event_bus, get_queue_manager
from ..errors import JobNotFoundError
from ..jobs.errors import AdmissionError
from ..jobs.events import EventBus
from ..jobs.manager import QueueManager
from ..jobs.models import QueueJob, ScenarioInput
from ..schemas.envelope import ApiResponse
from ..schemas.queue import CancelByEmailRequest, SubmitTestRequest, normalize_email

router = APIRouter(prefix="/api/queue", tags=["queue"])


def _not_found(job_id: str) -> None:
    """Raise JobNotFoundError to be handled by the global error handler."""
    raise JobNotFoundError(f"Job '{job_id}' not found")


def _scenarios() -> List[ScenarioInput]:
    return [ScenarioInput(**s) for s in DEFAULT_SCENARIOS]


def status_event(job: QueueJob) -> Dict[str, Any]:
    return {"event": "status", "job_id": job.id, "job": job.model_dump(mode="json")}


@router.get("/scenarios")
async def list_scenarios() -> ApiResponse:
    return ApiResponse.success([{"id": s.id, "text": s.text} for s in _scenarios()])


@router.post("/submit")
async def submit_test(
    req: SubmitTestRequest,
    manager: QueueManager = Depends(get_queue_manager),
) -> ApiResponse:
    result = manager.enqueue(req.email, req.model, req.instructions, _scenarios())
    if isinstance(result, AdmissionError):
        raise result
    return ApiResponse.for_job(result)


@router.get("/status")
async def queue_status(
    email: str,
    manager: QueueManager = Depends(get_queue_manager),
) -> ApiResponse:
    """Return the caller's active job, or ``null`` when nothing is queued."""
    try:
        email = normalize_email(email)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    job = manager.get_job_by_email(email)
    if job is None:
        return ApiResponse.success(None)
    return ApiResponse.for_job(job)


@router.get("/jobs/{job_id}")
async def get_job(
    job_id: str,
    manager: QueueManager = Depends(get_queue_manager),
) -> ApiResponse:
    job = manager.get_job(job_id)
    if job is None:
        _not_found(job_id)
    return ApiResponse.for_job(job)


@router.get("/jobs/{job_id}/events")
async def job_events(
    job_id: str,
    manager: QueueManager = Depends(get_queue_manager),
    bus: EventBus = Depends(get_event_bus),
):
    if manager.get_job(job_id) is None:
        _not_found(job_id)

    async def _generate():
        job = manager.get_job(job_id)
        if job is None or not job.is_active:
            if job is not None:
                yield {"event": "status", "data": json.dumps(status_event(job))}
            return
        async for event in bus.subscribe(job_id, initial=status_event(job)):
            yield {"event": event.get("event", "message"), "data": json.dumps(event)}

    return EventSourceResponse(_generate())


@router.post("/cancel")
async def cancel_own_job(
    req: CancelByEmailRequest,
    manager: QueueManager = Depends(get_queue_manager),
) -> ApiResponse:
    """Withdraw the caller's queued job; a running job cannot be withdrawn."""
    job = manager.get_job_by_email(req.email)
    if job is None:
        raise JobNotFoundError(f"No active job for {req.email}")
    return ApiResponse.success({"job_id": job.id, "cancelled": manager.cancel_job(job.id)})
