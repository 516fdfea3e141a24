"""Liveness endpoint."""
from __future__ import annotations

from fastapi import APIRouter, Depends

from ..deps.providers import get_queue_manager
from ..jobs.manager import QueueManager
from ..schemas.envelope import ApiResponse

router = APIRouter(tags=["health"])


@router.get("/api/health")
async def health(manager: QueueManager = Depends(get_queue_manager)) -> ApiResponse:
    stats = manager.get_stats()
    missing = [p for p in manager.providers if p not in manager.available_providers]
    warnings = [f"No processor for provider '{p}'" for p in missing]
    return ApiResponse.success(
        {
            "status": "ok" if not missing else "degraded",
            "providers": manager.available_providers,
            "queued": stats.total_queued,
            "processing": stats.total_processing,
        },
        warnings=warnings,
    )
