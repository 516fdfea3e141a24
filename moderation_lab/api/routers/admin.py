"""Teacher dashboard endpoints: queue control, provider tuning, prompt template."""
from __future__ import annotations

import json
from typing import Optional

from fastapi import APIRouter, Depends
from sse_starlette.sse import EventSourceResponse

from ..config import RuntimeConfig
from ..deps.auth import require_auth
from ..deps.providers import (
    get_event_bus,
    get_queue_manager,
    get_runtime_config,
    get_score_store,
)
from ..errors import ConfigValidationError, JobNotFoundError, ProviderNotFoundError
from ..jobs.events import STATS_UPDATED, EventBus
from ..jobs.manager import QueueManager
from ..jobs.store import ScoreStore
from ..schemas.envelope import ApiResponse
from ..schemas.queue import PromptTemplateRequest, ProviderConfigPatch

router = APIRouter(prefix="/api/admin", tags=["admin"], dependencies=[Depends(require_auth)])


def _check_provider(manager: QueueManager, provider: Optional[str]) -> None:
    if provider is not None and provider not in manager.providers:
        raise ProviderNotFoundError(f"Unknown provider '{provider}'")


# ── Queue ────────────────────────────────────────────────────────────


@router.get("/queue/stats")
async def queue_stats(manager: QueueManager = Depends(get_queue_manager)) -> ApiResponse:
    return ApiResponse.success(manager.get_stats().model_dump())


@router.get("/queue/jobs")
async def queued_jobs(manager: QueueManager = Depends(get_queue_manager)) -> ApiResponse:
    return ApiResponse.success([j.model_dump(mode="json") for j in manager.get_queued_jobs()])


@router.get("/queue/events")
async def queue_events(
    manager: QueueManager = Depends(get_queue_manager),
    bus: EventBus = Depends(get_event_bus),
):
    """Stream every queue event, starting with the current stats."""

    async def _generate():
        initial = {"event": STATS_UPDATED, "stats": manager.get_stats().model_dump()}
        async for event in bus.subscribe(None, initial=initial):
            yield {"event": event.get("event", "message"), "data": json.dumps(event)}

    return EventSourceResponse(_generate())


@router.post("/queue/jobs/{job_id}/cancel")
async def cancel_job(
    job_id: str,
    manager: QueueManager = Depends(get_queue_manager),
) -> ApiResponse:
    if manager.get_job(job_id) is None:
        raise JobNotFoundError(f"Job '{job_id}' not found")
    return ApiResponse.success({"job_id": job_id, "cancelled": manager.cancel_job(job_id)})


@router.post("/queue/pause")
async def pause_queue(
    provider: Optional[str] = None,
    manager: QueueManager = Depends(get_queue_manager),
) -> ApiResponse:
    _check_provider(manager, provider)
    manager.pause(provider)
    return ApiResponse.success(manager.get_stats().model_dump())


@router.post("/queue/resume")
async def resume_queue(
    provider: Optional[str] = None,
    manager: QueueManager = Depends(get_queue_manager),
) -> ApiResponse:
    _check_provider(manager, provider)
    manager.resume(provider)
    return ApiResponse.success(manager.get_stats().model_dump())


@router.post("/queue/clear")
async def clear_finished(manager: QueueManager = Depends(get_queue_manager)) -> ApiResponse:
    return ApiResponse.success({"cleared": manager.clear_completed_jobs()})


# ── Providers ────────────────────────────────────────────────────────


@router.get("/providers")
async def list_providers(
    manager: QueueManager = Depends(get_queue_manager),
    rc: RuntimeConfig = Depends(get_runtime_config),
) -> ApiResponse:
    data = rc.get_adjustable()
    for name, entry in data.items():
        entry["available"] = name in manager.available_providers
        entry["paused"] = manager.is_provider_paused(name)
    return ApiResponse.success(data)


@router.patch("/providers/{name}")
async def patch_provider(
    name: str,
    req: ProviderConfigPatch,
    manager: QueueManager = Depends(get_queue_manager),
    rc: RuntimeConfig = Depends(get_runtime_config),
) -> ApiResponse:
    _check_provider(manager, name)
    updates = req.model_dump(exclude_unset=True)
    if not updates:
        raise ConfigValidationError("No fields to update")
    try:
        return ApiResponse.success(rc.patch(name, updates))
    except (KeyError, ValueError) as exc:
        raise ConfigValidationError(str(exc)) from exc


# ── Prompt template ──────────────────────────────────────────────────


@router.get("/template")
async def get_template(manager: QueueManager = Depends(get_queue_manager)) -> ApiResponse:
    return ApiResponse.success({"template": manager.prompt_template})


@router.put("/template")
async def put_template(
    req: PromptTemplateRequest,
    manager: QueueManager = Depends(get_queue_manager),
    store: ScoreStore = Depends(get_score_store),
) -> ApiResponse:
    """Replace the shared template; jobs already running keep their prompt."""
    await store.set_prompt_template(req.template)
    manager.set_prompt_template(req.template)
    return ApiResponse.success({"template": manager.prompt_template})
