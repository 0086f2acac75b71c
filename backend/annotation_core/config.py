"""
Annotation Core - Application Configuration
============================================

What:  Centralized configuration using Pydantic Settings.
How:   Values come from environment variables (or a .env file), are validated on
       import, and are exposed through the `settings` singleton.
Who:   Services read their defaults from here; tests construct their own
       services with explicit values instead of patching this object.

Every numeric threshold below is an empirically chosen default, not a contract.
Each one can be overridden per deployment through its environment variable.
"""

from typing import Dict, List, Optional

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Attributes are grouped by the pipeline stage that consumes them.
    """

    # ── Logging ───────────────────────────────────────────────────────────
    log_level: str = Field(default="INFO")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Ensures log level is a valid Python logging level name."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        upper = v.upper()
        if upper not in valid_levels:
            raise ValueError(f"Invalid log_level '{v}'. Must be one of: {valid_levels}")
        return upper

    # ── Server ────────────────────────────────────────────────────────────
    # Comma-separated browser origins allowed to call the API.
    cors_origins: str = Field(default="http://localhost:3000")

    @property
    def cors_origins_list(self) -> List[str]:
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    # ── Confidence Thresholds ─────────────────────────────────────────────
    # Standard path: plain annotations must reach this confidence to survive.
    standard_confidence_threshold: float = Field(default=0.7, ge=0.0, le=1.0)

    # Research path: annotations with detected research backing.
    research_confidence_threshold: float = Field(default=0.45, ge=0.0, le=1.0)

    # High-quality research path: applies when research quality exceeds
    # high_quality_research_score.
    high_quality_research_threshold: float = Field(default=0.3, ge=0.0, le=1.0)
    high_quality_research_score: float = Field(default=0.7, ge=0.0, le=1.0)

    # Confidence added per unit of research quality (boost = factor × quality).
    research_confidence_boost: float = Field(default=0.3, ge=0.0, le=1.0)

    # ── Processing Defaults ───────────────────────────────────────────────
    # Defaults for ProcessingOptions when a caller does not send them.
    enable_validation: bool = Field(default=True)
    enable_filtering: bool = Field(default=True)
    min_confidence_threshold: float = Field(default=0.6, ge=0.0, le=1.0)
    max_invalid_annotations: int = Field(default=3, ge=0, le=100)
    log_validation_details: bool = Field(default=False)

    # Thread pool size for per-annotation validation. 1 = run inline.
    validation_workers: int = Field(default=1, ge=1, le=32)

    # Optional JSON file overriding the built-in phrase tables.
    phrase_tables_path: Optional[str] = Field(default=None)

    # ── Provider Orchestration ────────────────────────────────────────────
    default_provider: str = Field(default="openai")
    default_fallback_provider: Optional[str] = Field(default="anthropic")

    # Upper bound for a single provider call, including upload and parsing.
    provider_timeout_seconds: float = Field(default=35.0, gt=0, le=600)

    # Same-model retries for transient network errors (1 = single attempt).
    provider_retry_attempts: int = Field(default=1, ge=1, le=10)
    retry_min_wait: float = Field(default=1.0, ge=0, le=30)
    retry_max_wait: float = Field(default=10.0, ge=0, le=120)

    # Per-vendor ordered model lists, e.g.
    # MODEL_CATALOG='{"anthropic": ["claude-sonnet-4-20250514"]}'.
    # Vendors not listed keep the built-in ordering.
    model_catalog: Dict[str, List[str]] = Field(default_factory=dict)

    # ── Circuit Breaker ───────────────────────────────────────────────────
    # After N consecutive terminal failures, calls fail instantly until a
    # half-open trial succeeds.
    cb_failure_threshold: int = Field(default=3, ge=1, le=20)
    cb_recovery_timeout: int = Field(default=60, ge=0, le=3600)

    # ── Pydantic Settings Config ──────────────────────────────────────────
    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "extra": "ignore",
    }

    @model_validator(mode="after")
    def validate_threshold_order(self) -> "Settings":
        """The research paths must never be stricter than the standard path."""
        if self.research_confidence_threshold > self.standard_confidence_threshold:
            raise ValueError(
                "research_confidence_threshold must not exceed standard_confidence_threshold"
            )
        if self.high_quality_research_threshold > self.research_confidence_threshold:
            raise ValueError(
                "high_quality_research_threshold must not exceed research_confidence_threshold"
            )
        return self


# Singleton instance, imported throughout the application
settings = Settings()
