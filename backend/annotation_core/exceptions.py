"""
Annotation Core - Custom Exception Hierarchy
=============================================

What:  Application-specific exceptions for provider orchestration and configuration.
How:   Each exception carries a message and an optional context dict. Global
       handlers registered in main.py turn them into structured JSON responses.
Who:   Raised by ProviderClient implementations and ProviderOrchestrator;
       caught by the orchestrator (fallback decisions) and by the HTTP handlers.

Exception Hierarchy:
    AnnotationCoreError (base)
    ├── ProviderError
    │   ├── ProviderAuthError               → 502, never retried, no fallback
    │   ├── ProviderModelUnavailableError   → next model of the same vendor
    │   ├── ProviderNetworkError            → vendor fallback (network, 429, timeout)
    │   ├── ProviderResponseParseError      → vendor fallback, then placeholder
    │   ├── ProviderNotConfiguredError      → vendor fallback (no client registered)
    │   └── ProviderFallbackExhaustedError  → 503, primary and fallback both failed
    ├── CircuitBreakerOpenError             → 503, no network attempt made
    └── ConfigurationError                  → 500

Per-annotation problems (out-of-range coordinates, suspicious patterns, missing
evidence, low specificity) are NOT exceptions. They are recorded as
ValidationIssue codes on each ValidationResult and never abort a batch.
"""

from typing import Any, Dict, Optional


class AnnotationCoreError(Exception):
    """
    Base exception for all application errors.

    Attributes:
        message:  Caller-facing error description (safe to return in an API response)
        context:  Additional debug info (logged, returned only where harmless)
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class ProviderError(AnnotationCoreError):
    """
    Base for failures reported by (or about) an AI inference provider.

    `provider` and `model` identify the call that failed; they are copied into
    the context so log lines and error responses can name them.
    """

    def __init__(
        self,
        message: str = "AI provider call failed",
        provider: Optional[str] = None,
        model: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if provider:
            ctx["provider"] = provider
        if model:
            ctx["model"] = model
        super().__init__(message=message, context=ctx)
        self.provider = provider
        self.model = model


class ProviderAuthError(ProviderError):
    """
    Invalid, missing, or expired credential signaled by the provider client.

    Terminal for the whole call: no other model and no fallback vendor is
    tried, and the error reaches the caller unchanged.
    """


class ProviderModelUnavailableError(ProviderError):
    """The requested model does not exist or the key has no access to it."""


class ProviderNetworkError(ProviderError):
    """
    Transient transport-level failure: connection error, HTTP 429/5xx, timeout.

    Attributes:
        retry_after: Seconds suggested by the provider before retrying (if any)
    """

    def __init__(
        self,
        message: str = "AI provider is unreachable",
        provider: Optional[str] = None,
        model: Optional[str] = None,
        retry_after: Optional[int] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if retry_after:
            ctx["retry_after"] = retry_after
        super().__init__(message=message, provider=provider, model=model, context=ctx)
        self.retry_after = retry_after


class ProviderResponseParseError(ProviderError):
    """The provider answered, but the body held no usable annotation array."""


class ProviderNotConfiguredError(ProviderError):
    """No client is registered for the requested vendor."""


class ProviderFallbackExhaustedError(ProviderError):
    """
    Both the primary and the fallback vendor failed.

    Attributes:
        primary_error:  The error that ended the primary vendor's attempts
        fallback_error: The error raised by the single fallback call
    """

    def __init__(
        self,
        primary_error: ProviderError,
        fallback_error: ProviderError,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = (
            f"Both providers failed. Primary ({primary_error.provider}): "
            f"{primary_error.message}. Fallback ({fallback_error.provider}): "
            f"{fallback_error.message}"
        )
        ctx = context or {}
        ctx["primary_error"] = type(primary_error).__name__
        ctx["fallback_error"] = type(fallback_error).__name__
        super().__init__(
            message=message,
            provider=primary_error.provider,
            context=ctx,
        )
        self.primary_error = primary_error
        self.fallback_error = fallback_error


class CircuitBreakerOpenError(AnnotationCoreError):
    """
    Raised when the circuit breaker is OPEN.

    What:    Too many consecutive terminal provider failures.
    When:    After cb_failure_threshold failures (default: 3).
    HTTP:    503 Service Unavailable with a Retry-After header.

    No provider client is called while this error is being raised.
    """

    def __init__(
        self,
        recovery_time: int = 60,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = (
            "AI analysis is temporarily unavailable due to repeated provider failures. "
            f"The service will retry in approximately {recovery_time} seconds."
        )
        ctx = context or {}
        ctx["recovery_time"] = recovery_time
        super().__init__(message=message, context=ctx)
        self.recovery_time = recovery_time


class ConfigurationError(AnnotationCoreError):
    """Invalid phrase tables, model catalog, or other startup configuration."""

    def __init__(
        self,
        message: str = "Invalid configuration",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)
