"""Request schemas for queue and teacher-dashboard endpoints."""
from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field, field_validator

from ...config import DEFAULT_MODEL


def normalize_email(value: str) -> str:
    """Trim and lower-case an email, rejecting obviously malformed ones."""
    email = value.strip().lower()
    if not email:
        raise ValueError("Email is required")
    if len(email) > 255:
        raise ValueError("Email too long")
    parts = email.split("@")
    if len(parts) != 2 or not parts[0] or not parts[1] or "." not in parts[1]:
        raise ValueError("Invalid email format")
    return email


class SubmitTestRequest(BaseModel):
    """Request body for POST /api/queue/submit."""

    email: str
    instructions: str = Field(min_length=1, max_length=10_000)
    model: str = DEFAULT_MODEL

    @field_validator("email")
    @classmethod
    def _email(cls, v: str) -> str:
        return normalize_email(v)

    @field_validator("instructions")
    @classmethod
    def _instructions(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Instructions are required")
        return v


class CancelByEmailRequest(BaseModel):
    """Request body for POST /api/queue/cancel."""

    email: str

    @field_validator("email")
    @classmethod
    def _email(cls, v: str) -> str:
        return normalize_email(v)


class PromptTemplateRequest(BaseModel):
    """Request body for PUT /api/admin/template."""

    template: str = Field(min_length=10, max_length=20_000)


class ProviderConfigPatch(BaseModel):
    """Partial update for PATCH /api/admin/providers/{name}."""

    max_concurrent: Optional[int] = Field(default=None, ge=1, le=20)
    cooldown_ms: Optional[int] = Field(default=None, ge=0, le=60_000)
    is_enabled: Optional[bool] = None
    timeout_seconds: Optional[float] = Field(default=None, gt=0)
