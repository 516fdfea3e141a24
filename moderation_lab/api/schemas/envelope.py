"""Response envelope shared by every route.

Successful calls carry their payload in ``data``; failures carry a message in
``error`` plus a stable ``code`` the browser client can switch on (e.g.
``duplicate_submission`` to show "you already have a run queued").
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Generic, List, Optional, TypeVar

from pydantic import BaseModel, Field

if TYPE_CHECKING:
    from ..jobs.models import QueueJob

T = TypeVar("T")


class ResponseMeta(BaseModel):
    """Queue context returned alongside the payload."""

    generated_at: str = Field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    warnings: List[str] = Field(default_factory=list)
    provider: Optional[str] = None
    queue_position: Optional[int] = None
    job_status: Optional[str] = None


class ApiResponse(BaseModel, Generic[T]):
    ok: bool = True
    data: Optional[T] = None
    error: Optional[str] = None
    code: Optional[str] = None
    meta: ResponseMeta = Field(default_factory=ResponseMeta)

    @classmethod
    def success(cls, data: Any, *, meta: Optional[ResponseMeta] = None, **meta_kwargs) -> "ApiResponse":
        if meta is None:
            meta = ResponseMeta(**meta_kwargs)
        return cls(ok=True, data=data, meta=meta)

    @classmethod
    def for_job(cls, job: "QueueJob", **meta_kwargs) -> "ApiResponse":
        """Wrap a job, filling provider, status and position into ``meta``."""
        meta = ResponseMeta(
            provider=job.provider,
            job_status=job.status.value,
            queue_position=job.queue_position if job.is_active else None,
            **meta_kwargs,
        )
        return cls(ok=True, data=job.model_dump(mode="json"), meta=meta)

    @classmethod
    def fail(
        cls,
        error: str,
        *,
        code: Optional[str] = None,
        warnings: Optional[List[str]] = None,
    ) -> "ApiResponse":
        return cls(ok=False, error=error, code=code, meta=ResponseMeta(warnings=warnings or []))
