"""Leaderboard and per-student prompt history."""
from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from ..deps.providers import get_score_store
from ..errors import StudentNotFoundError
from ..jobs.store import ScoreStore
from ..schemas.envelope import ApiResponse
from ..schemas.queue import normalize_email

router = APIRouter(prefix="/api/students", tags=["students"])


@router.get("/leaderboard")
async def leaderboard(
    limit: int = 50,
    store: ScoreStore = Depends(get_score_store),
) -> ApiResponse:
    students = await store.list_students(limit=limit)
    return ApiResponse.success([
        {"email": s.email, "highest_score": s.highest_score, "prompt_count": s.prompt_count}
        for s in students
    ])


@router.get("/{email}/history")
async def student_history(
    email: str,
    store: ScoreStore = Depends(get_score_store),
) -> ApiResponse:
    try:
        email = normalize_email(email)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    student = await store.get_student(email)
    if student is None:
        raise StudentNotFoundError(f"No history for {email}")
    versions = await store.get_prompt_versions(student.id)
    return ApiResponse.success({
        "student": student.model_dump(),
        "versions": [v.model_dump() for v in versions],
    })
