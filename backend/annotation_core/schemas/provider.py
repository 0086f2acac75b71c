"""
Annotation Core - Provider Schemas
===================================

What:  Vendor tags, per-call provider configuration, and the result of one
       orchestrated analysis call (including the attempt trace).
Who:   Built by routes or library callers, consumed by ProviderOrchestrator.
"""

from enum import Enum
from typing import List, Optional, Union

from pydantic import Field, field_validator

from annotation_core.schemas.annotation import Annotation, CamelModel


class Vendor(str, Enum):
    """AI inference vendors the orchestrator can route to."""
    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    GOOGLE = "google"

    @classmethod
    def parse(cls, value: Union[str, "Vendor"]) -> "Vendor":
        """Accepts enum members, canonical tags, and the legacy 'claude' tag."""
        if isinstance(value, Vendor):
            return value
        tag = str(value).strip().lower()
        if tag == "claude":
            return cls.ANTHROPIC
        if tag == "gemini":
            return cls.GOOGLE
        return cls(tag)


class ProviderConfig(CamelModel):
    """
    Which vendor (and optionally which model) to call, and where to fall back.

    A fallback equal to the primary vendor is ignored by the orchestrator.
    """
    provider: Vendor
    model: Optional[str] = None
    fallback_provider: Optional[Vendor] = None

    @field_validator("provider", "fallback_provider", mode="before")
    @classmethod
    def normalize_vendor(cls, v):
        if v is None or v == "":
            return None
        return Vendor.parse(v)


class AttemptOutcome(str, Enum):
    SUCCESS = "success"
    AUTH_ERROR = "auth_error"
    MODEL_UNAVAILABLE = "model_unavailable"
    NETWORK_ERROR = "network_error"
    PARSE_ERROR = "parse_error"
    NOT_CONFIGURED = "not_configured"


class ProviderAttempt(CamelModel):
    """One provider call made while serving an analysis request."""
    provider: Vendor
    model: str
    outcome: AttemptOutcome
    duration_ms: float = 0.0
    error: Optional[str] = None


class AnalysisResult(CamelModel):
    """
    Annotations returned by the provider that finally answered.

    degraded=True means the batch is a single diagnostic placeholder emitted
    because every provider response was unparseable.
    """
    annotations: List[Annotation] = Field(default_factory=list)
    provider: Vendor
    model: str
    used_fallback: bool = False
    degraded: bool = False
    attempts: List[ProviderAttempt] = Field(default_factory=list)
