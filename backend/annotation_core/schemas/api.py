"""
Annotation Core - API Request/Response Schemas
===============================================

What:  Pydantic models defining the HTTP contract of the service.
How:   FastAPI validates request bodies against these models (422 on failure)
       and serializes responses through them. Domain payloads use camelCase
       on the wire; the error and health envelopes keep snake_case.
Who:   Used by the route handlers in annotation_core.routes.
"""

import base64
import binascii
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from annotation_core.schemas.annotation import (
    Annotation,
    CamelModel,
    ProcessingOptions,
    ProcessingResult,
)
from annotation_core.schemas.provider import ProviderAttempt, ProviderConfig, Vendor


# ══════════════════════════════════════════════════════════════════════════
# Request Models
# ══════════════════════════════════════════════════════════════════════════


class ProcessRequest(CamelModel):
    """
    What:  Body of POST /api/annotations/process.
    Who:   Callers that already hold raw provider output and only need scoring.
    """
    annotations: List[Annotation] = Field(description="Raw annotations to validate")
    options: Optional[ProcessingOptions] = Field(
        default=None, description="Per-batch switches; omitted fields use server defaults"
    )


class AnalyzeRequest(CamelModel):
    """
    What:  Body of POST /api/analyze.
    How:   The image travels as base64 (a `data:` URL prefix is accepted and
           stripped). Provider config defaults to the server's configured
           primary and fallback vendor.
    """
    image: str = Field(description="Base64-encoded screenshot")
    mime_type: str = Field(default="image/png", description="Image content type")
    prompt: str = Field(min_length=1, description="Rendered analysis prompt")
    provider: Optional[ProviderConfig] = Field(
        default=None, description="Vendor/model selection and fallback vendor"
    )
    options: Optional[ProcessingOptions] = Field(
        default=None, description="Processing switches for the returned annotations"
    )

    @field_validator("image")
    @classmethod
    def validate_image(cls, v: str) -> str:
        """Rejects empty or non-base64 payloads before any provider is called."""
        payload = v.split(",", 1)[1] if v.startswith("data:") and "," in v else v
        payload = payload.strip()
        if not payload:
            raise ValueError("image must not be empty")
        try:
            base64.b64decode(payload, validate=True)
        except (binascii.Error, ValueError):
            raise ValueError("image must be valid base64")
        return payload

    def image_bytes(self) -> bytes:
        return base64.b64decode(self.image)


# ══════════════════════════════════════════════════════════════════════════
# Response Models
# ══════════════════════════════════════════════════════════════════════════


class AnalyzeResponse(CamelModel):
    """
    What:  Provider orchestration outcome plus the processed annotations.
    Why both: the caller needs to know which vendor/model answered (and
          whether the answer is a degraded placeholder) alongside the
          filtered, scored batch.
    """
    provider: Vendor
    model: str
    used_fallback: bool = False
    degraded: bool = False
    attempts: List[ProviderAttempt] = Field(default_factory=list)
    result: ProcessingResult


class ErrorResponse(BaseModel):
    """
    Standardized error response format for all API errors.

    Example:
        {
            "error": "provider_auth_error",
            "message": "Invalid API key",
            "details": {"provider": "anthropic"},
            "request_id": "550e8400-e29b-41d4-a716-446655440000"
        }
    """
    error: str = Field(description="Machine-readable error code")
    message: str = Field(description="Human-readable error description")
    details: Optional[dict] = Field(default=None, description="Additional error context")
    request_id: Optional[str] = Field(default=None, description="Request correlation ID")


class HealthResponse(BaseModel):
    """Service status, per-vendor reachability, and circuit-breaker state."""
    status: str = Field(description="Overall service status: healthy, degraded")
    version: str = Field(description="Application version")
    providers: Dict[str, str] = Field(
        default_factory=dict,
        description="Per-vendor status: available, unavailable, circuit_open",
    )
    circuit_breaker: Dict[str, object] = Field(
        default_factory=dict, description="Breaker state, failure count, and limits"
    )
    uptime_seconds: float = Field(description="Seconds since service started")
