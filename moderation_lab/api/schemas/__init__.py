"""Pydantic schemas for API request/response models."""
from .envelope import ApiResponse, ResponseMeta
from .queue import (
    CancelByEmailRequest,
    ProviderConfigPatch,
    PromptTemplateRequest,
    SubmitTestRequest,
)

__all__ = [
    "ApiResponse",
    "CancelByEmailRequest",
    "PromptTemplateRequest",
    "ProviderConfigPatch",
    "ResponseMeta",
    "SubmitTestRequest",
]
