"""Shared-token guard for the teacher dashboard.

Students never authenticate.  Every ``/api/admin`` route depends on
``require_auth``, which accepts the token from ``MODLAB_TEACHER_TOKEN`` as
either ``Authorization: Bearer <token>`` or ``X-API-Key: <token>``.
Setting ``MODLAB_TEACHER_AUTH_ENABLED=false`` opens the dashboard for a
single-machine classroom run.
"""
from __future__ import annotations

import logging
import os
import secrets
from typing import Optional

from fastapi import HTTPException, Request

logger = logging.getLogger(__name__)

_TRUTHY = ("true", "1", "yes")

TEACHER_AUTH_ENABLED: bool = os.environ.get("MODLAB_TEACHER_AUTH_ENABLED", "true").lower() in _TRUTHY
TEACHER_TOKEN: str = os.environ.get("MODLAB_TEACHER_TOKEN", "")


def _presented_token(request: Request) -> Optional[str]:
    scheme, _, credentials = request.headers.get("Authorization", "").partition(" ")
    if scheme.lower() == "bearer" and credentials.strip():
        return credentials.strip()
    return request.headers.get("X-API-Key", "").strip() or None


async def require_auth(request: Request) -> None:
    if not TEACHER_AUTH_ENABLED:
        return

    if not TEACHER_TOKEN:
        logger.warning(
            "MODLAB_TEACHER_TOKEN is empty; rejecting dashboard request to %s", request.url.path
        )
        raise HTTPException(status_code=401, detail="Teacher token not configured")

    token = _presented_token(request)
    if token is None or not secrets.compare_digest(token.encode(), TEACHER_TOKEN.encode()):
        logger.info("Rejected dashboard request to %s", request.url.path)
        raise HTTPException(
            status_code=401,
            detail="Invalid or missing teacher token",
            headers={"WWW-Authenticate": "Bearer"},
        )
