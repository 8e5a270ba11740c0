"""Engine configuration value object with validation."""

from __future__ import annotations

from pydantic import BaseModel, Field, field_validator

from ...config import (
    DEFAULT_REQUEST_TIMEOUT_S,
    GEMINI_API_BASE,
    GEMINI_MODEL_ID,
    RETRY_CONFIG,
)


class EngineConfig(BaseModel):
    """Service and dispatch settings for the processing engine."""

    model_config = {"validate_assignment": False, "protected_namespaces": ()}

    # Service
    model_id: str = GEMINI_MODEL_ID
    api_base: str = GEMINI_API_BASE
    request_timeout_s: float = Field(default=DEFAULT_REQUEST_TIMEOUT_S, gt=0)

    # Retry
    max_retries: int = Field(default=RETRY_CONFIG.max_retries, ge=0, le=20)
    base_delay_s: float = Field(default=RETRY_CONFIG.base_delay_s, ge=0)
    max_jitter_s: float = Field(default=RETRY_CONFIG.max_jitter_s, ge=0)

    # Dispatch
    max_concurrency: int | None = Field(default=None, ge=1)
    attempt_timeout_s: float | None = Field(default=None, gt=0)

    @field_validator('api_base')
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        """Normalise the base URL so paths can be appended."""
        return v.rstrip('/')


__all__ = ['EngineConfig']
