"""
Annotation Core - Provider Orchestrator
========================================

What:  Calls an AI inference vendor for screenshot annotations, walking the
       vendor's model list and falling back to a second vendor when needed.
How:   One state machine per call, guarded by a shared circuit breaker. Every
       client call is bounded by an asyncio timeout; transient network errors
       may be retried on the same model with tenacity.
Who:   Built once by create_app() with the injected ProviderClient map; called
       by POST /api/analyze.

State Machine:
    INIT ─► breaker check ─(open)─► CircuitBreakerOpenError (no client call)
      │
      ▼
    CALL_PRIMARY(vendor, model)
      ├─ success ...................................► DONE
      ├─ ProviderAuthError .........................► FAILED, raised as-is
      ├─ ProviderModelUnavailableError ─► next model ─► (list exhausted)
      │                                                   │
      └─ network / timeout / parse / not configured ──────┤
                                                          ▼
                           fallback configured and different?
                             ├─ no  ► FAILED (original error)
                             └─ yes ► CALL_FALLBACK (once)
                                        ├─ success ► DONE (used_fallback)
                                        └─ failure ► FAILED
                                           (ProviderFallbackExhaustedError)

    A FAILED call whose chain contains a ProviderResponseParseError returns a
    single diagnostic placeholder annotation (degraded=True) instead of
    raising. It still counts as a breaker failure.

Circuit breaker accounting:
    DONE   → record_success (consecutive-failure counter back to 0)
    FAILED → record_failure (one per call, not per attempt)
"""

import asyncio
import logging
import threading
import time
import uuid
from typing import Callable, Dict, List, Optional, Tuple

from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from annotation_core.config import settings
from annotation_core.exceptions import (
    AnnotationCoreError,
    CircuitBreakerOpenError,
    ProviderAuthError,
    ProviderError,
    ProviderFallbackExhaustedError,
    ProviderModelUnavailableError,
    ProviderNetworkError,
    ProviderNotConfiguredError,
    ProviderResponseParseError,
)
from annotation_core.schemas.annotation import Annotation, Category, Severity
from annotation_core.schemas.provider import (
    AnalysisResult,
    AttemptOutcome,
    ProviderAttempt,
    ProviderConfig,
    Vendor,
)
from annotation_core.services.provider_base import (
    ProviderClient,
    model_catalog as default_model_catalog,
    model_sequence,
)

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Circuit Breaker
# ══════════════════════════════════════════════════════════════════════════

class CircuitBreaker:
    """
    Consecutive-failure circuit breaker shared by all analysis calls.

    State Machine:
        CLOSED (normal operation)
            → On failure: increment failure_count
            → When failure_count >= threshold: transition to OPEN

        OPEN (rejecting all requests)
            → can_execute() raises CircuitBreakerOpenError immediately
            → After recovery_timeout seconds: transition to HALF_OPEN

        HALF_OPEN (testing recovery)
            → Exactly ONE trial request is let through
            → On success: transition to CLOSED (reset failure_count)
            → On failure: transition back to OPEN (reset timer)

    Thread Safety:
        Every state read-modify-write happens under a threading.Lock, so one
        instance may be shared by request handlers and worker threads.
    """

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"

    def __init__(
        self,
        failure_threshold: Optional[int] = None,
        recovery_timeout: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Args:
            failure_threshold: Consecutive failures before opening the circuit
            recovery_timeout:  Seconds to wait before allowing a trial call
            clock:             Monotonic time source (injectable for tests)
        """
        self.failure_threshold = (
            settings.cb_failure_threshold if failure_threshold is None else failure_threshold
        )
        self.recovery_timeout = (
            settings.cb_recovery_timeout if recovery_timeout is None else recovery_timeout
        )
        self.failure_count = 0
        self.state = self.CLOSED
        self.last_failure_time: Optional[float] = None
        self._trial_in_flight = False
        self._clock = clock
        self._lock = threading.Lock()

    def can_execute(self) -> bool:
        """
        Check if a request is allowed through the circuit breaker.

        Returns:
            True if the request can proceed.

        Raises:
            CircuitBreakerOpenError if the circuit is OPEN and the recovery
            timeout hasn't elapsed, or a half-open trial is already running.
        """
        with self._lock:
            if self.state == self.CLOSED:
                return True

            if self.state == self.OPEN:
                elapsed = self._clock() - (self.last_failure_time or 0)
                if elapsed >= self.recovery_timeout:
                    logger.info(
                        "Circuit breaker transitioning to HALF_OPEN after %.1fs", elapsed
                    )
                    self.state = self.HALF_OPEN
                    self._trial_in_flight = True
                    return True
                remaining = max(1, int(self.recovery_timeout - elapsed))
                raise CircuitBreakerOpenError(recovery_time=remaining)

            # HALF_OPEN: only the single trial request may pass.
            if self._trial_in_flight:
                raise CircuitBreakerOpenError(recovery_time=max(1, int(self.recovery_timeout)))
            self._trial_in_flight = True
            return True

    def record_success(self) -> None:
        with self._lock:
            if self.state == self.HALF_OPEN:
                logger.info("Circuit breaker transitioning to CLOSED (provider recovered)")
            self.failure_count = 0
            self.state = self.CLOSED
            self.last_failure_time = None
            self._trial_in_flight = False

    def record_failure(self) -> None:
        with self._lock:
            self.failure_count += 1
            self.last_failure_time = self._clock()
            self._trial_in_flight = False

            if self.state == self.HALF_OPEN:
                logger.warning("Circuit breaker returning to OPEN (trial request failed)")
                self.state = self.OPEN
            elif self.failure_count >= self.failure_threshold and self.state != self.OPEN:
                logger.warning(
                    "Circuit breaker OPENING after %d consecutive failures",
                    self.failure_count,
                )
                self.state = self.OPEN

    def release_trial(self) -> None:
        """
        Give back a half-open trial that ended without an outcome (cancelled).

        The circuit stays HALF_OPEN and the next request becomes the trial.
        """
        with self._lock:
            if self.state == self.HALF_OPEN:
                self._trial_in_flight = False

    def snapshot(self) -> Dict[str, object]:
        """Current state for the health endpoint."""
        with self._lock:
            return {
                "state": self.state,
                "failure_count": self.failure_count,
                "failure_threshold": self.failure_threshold,
                "recovery_timeout": self.recovery_timeout,
            }


# ══════════════════════════════════════════════════════════════════════════
# Provider Orchestrator
# ══════════════════════════════════════════════════════════════════════════

_OUTCOMES = (
    (ProviderAuthError, AttemptOutcome.AUTH_ERROR),
    (ProviderModelUnavailableError, AttemptOutcome.MODEL_UNAVAILABLE),
    (ProviderResponseParseError, AttemptOutcome.PARSE_ERROR),
    (ProviderNotConfiguredError, AttemptOutcome.NOT_CONFIGURED),
)


def _outcome_for(error: ProviderError) -> AttemptOutcome:
    for error_type, outcome in _OUTCOMES:
        if isinstance(error, error_type):
            return outcome
    return AttemptOutcome.NETWORK_ERROR


def placeholder_annotation(error: ProviderError) -> Annotation:
    """Single diagnostic annotation returned when no provider response was parseable."""
    return Annotation(
        x=50,
        y=30,
        category=Category.UX,
        severity=Severity.CRITICAL,
        title="AI analysis failed",
        feedback=(
            f"AI analysis failed: {error.message}. This may be due to provider "
            "configuration issues. Please verify the API key and model, then try again."
        ),
        implementation_effort="low",
        business_impact="high",
    )


class ProviderOrchestrator:
    """
    Vendor-agnostic analysis entry point with model and vendor fallback.

    Architecture:
        - Clients are injected per vendor; a vendor without a client behaves
          like a misconfigured provider (fallback-eligible)
        - The circuit breaker is injected so one instance can be shared and
          inspected by the health endpoint
        - No module-level state: tests build their own orchestrators
    """

    def __init__(
        self,
        clients: Optional[Dict[Vendor, ProviderClient]] = None,
        circuit_breaker: Optional[CircuitBreaker] = None,
        catalog: Optional[Dict[Vendor, List[str]]] = None,
        timeout: Optional[float] = None,
        retry_attempts: Optional[int] = None,
        retry_min_wait: Optional[float] = None,
        retry_max_wait: Optional[float] = None,
    ):
        self.clients: Dict[Vendor, ProviderClient] = {
            Vendor.parse(vendor): client for vendor, client in (clients or {}).items()
        }
        self.circuit_breaker = circuit_breaker or CircuitBreaker()
        self.catalog = catalog or default_model_catalog
        self.timeout = settings.provider_timeout_seconds if timeout is None else timeout
        self.retry_attempts = (
            settings.provider_retry_attempts if retry_attempts is None else retry_attempts
        )
        self.retry_min_wait = settings.retry_min_wait if retry_min_wait is None else retry_min_wait
        self.retry_max_wait = settings.retry_max_wait if retry_max_wait is None else retry_max_wait

        logger.info(
            "ProviderOrchestrator initialized with vendors=%s, timeout=%.0fs, "
            "circuit_breaker(threshold=%d, recovery=%ds)",
            sorted(v.value for v in self.clients),
            self.timeout,
            self.circuit_breaker.failure_threshold,
            self.circuit_breaker.recovery_timeout,
        )

    @staticmethod
    def default_config() -> ProviderConfig:
        return ProviderConfig(
            provider=settings.default_provider,
            fallback_provider=settings.default_fallback_provider,
        )

    async def analyze(
        self,
        image: bytes,
        prompt: str,
        config: Optional[ProviderConfig] = None,
        mime_type: str = "image/png",
    ) -> AnalysisResult:
        """
        Annotate a screenshot with the configured vendor, falling back if needed.

        Flow:
            1. Check circuit breaker → may raise CircuitBreakerOpenError
            2. Walk the primary vendor's models until one answers
            3. On a fallback-eligible failure, call the fallback vendor once
            4. Record success/failure in the circuit breaker

        Returns:
            AnalysisResult with the annotations, the vendor/model that produced
            them, and the ordered attempt trace.

        Raises:
            CircuitBreakerOpenError: Circuit is open; no client was called
            ProviderAuthError: Credential rejected; nothing else was tried
            ProviderFallbackExhaustedError: Primary and fallback both failed
            ProviderError: Primary failed and no usable fallback was configured
        """
        config = config or self.default_config()
        request_id = str(uuid.uuid4())[:8]
        attempts: List[ProviderAttempt] = []

        self.circuit_breaker.can_execute()
        # Read before any await: a half-open state here means this call holds the trial.
        is_trial = self.circuit_breaker.state == CircuitBreaker.HALF_OPEN

        logger.info(
            "[%s] Starting analysis with provider=%s model=%s fallback=%s",
            request_id,
            config.provider.value,
            config.model or "default",
            config.fallback_provider.value if config.fallback_provider else None,
        )

        try:
            return await self._orchestrate(config, image, prompt, mime_type, attempts, request_id)
        except AnnotationCoreError:
            # Provider outcomes were already recorded on the way out.
            raise
        except Exception as e:
            self.circuit_breaker.record_failure()
            logger.error(
                "[%s] Analysis aborted by unexpected error: %s", request_id, str(e), exc_info=True
            )
            raise
        except BaseException:
            if is_trial:
                self.circuit_breaker.release_trial()
            logger.warning("[%s] Analysis cancelled before completion", request_id)
            raise

    async def _orchestrate(
        self,
        config: ProviderConfig,
        image: bytes,
        prompt: str,
        mime_type: str,
        attempts: List[ProviderAttempt],
        request_id: str,
    ) -> AnalysisResult:
        """Primary model walk, then fallback; records the breaker outcome."""
        try:
            annotations, model = await self._walk_models(
                config.provider, config.model, image, prompt, mime_type, attempts, request_id
            )
        except ProviderAuthError as e:
            self.circuit_breaker.record_failure()
            logger.error(
                "[%s] Authentication failed for %s, not falling back: %s",
                request_id,
                config.provider.value,
                e.message,
            )
            raise
        except ProviderError as primary_error:
            return await self._fall_back(
                config, primary_error, image, prompt, mime_type, attempts, request_id
            )

        self.circuit_breaker.record_success()
        return self._done(config.provider, model, annotations, attempts, request_id)

    async def health_check(self) -> Dict[str, bool]:
        """Reachability per registered vendor. A failing probe reports False."""
        results: Dict[str, bool] = {}
        for vendor, client in self.clients.items():
            try:
                results[vendor.value] = bool(
                    await asyncio.wait_for(client.health_check(), timeout=self.timeout)
                )
            except Exception as e:
                logger.warning("Health check failed for %s: %s", vendor.value, str(e))
                results[vendor.value] = False
        return results

    # ── Fallback ──────────────────────────────────────────────────────────

    async def _fall_back(
        self,
        config: ProviderConfig,
        primary_error: ProviderError,
        image: bytes,
        prompt: str,
        mime_type: str,
        attempts: List[ProviderAttempt],
        request_id: str,
    ) -> AnalysisResult:
        fallback = config.fallback_provider
        if fallback is None or fallback == config.provider:
            return self._fail(config, primary_error, None, attempts, request_id)

        logger.warning(
            "[%s] Primary provider %s failed (%s), falling back to %s",
            request_id,
            config.provider.value,
            primary_error.message,
            fallback.value,
        )

        fallback_models = self.catalog.get(fallback, [])
        fallback_model = fallback_models[0] if fallback_models else "unknown"
        try:
            annotations = await self._call_model(
                fallback, fallback_model, image, prompt, mime_type, attempts, request_id
            )
        except ProviderError as fallback_error:
            return self._fail(config, primary_error, fallback_error, attempts, request_id)

        self.circuit_breaker.record_success()
        return self._done(
            fallback, fallback_model, annotations, attempts, request_id, used_fallback=True
        )

    def _fail(
        self,
        config: ProviderConfig,
        primary_error: ProviderError,
        fallback_error: Optional[ProviderError],
        attempts: List[ProviderAttempt],
        request_id: str,
    ) -> AnalysisResult:
        """Terminal failure: record it, then degrade to a placeholder or raise."""
        self.circuit_breaker.record_failure()

        parse_error = next(
            (
                e for e in (primary_error, fallback_error)
                if isinstance(e, ProviderResponseParseError)
            ),
            None,
        )
        if parse_error is not None:
            logger.error(
                "[%s] No parseable provider response, returning placeholder: %s",
                request_id,
                parse_error.message,
            )
            return AnalysisResult(
                annotations=[placeholder_annotation(parse_error)],
                provider=Vendor.parse(parse_error.provider or config.provider),
                model=parse_error.model or (attempts[-1].model if attempts else "unknown"),
                used_fallback=fallback_error is not None,
                degraded=True,
                attempts=attempts,
            )

        if fallback_error is None:
            logger.error(
                "[%s] Provider %s failed with no fallback: %s",
                request_id,
                config.provider.value,
                primary_error.message,
            )
            raise primary_error

        logger.error(
            "[%s] Primary and fallback providers both failed: %s | %s",
            request_id,
            primary_error.message,
            fallback_error.message,
        )
        raise ProviderFallbackExhaustedError(
            primary_error=primary_error,
            fallback_error=fallback_error,
            context={"request_id": request_id, "attempts": len(attempts)},
        )

    def _done(
        self,
        vendor: Vendor,
        model: str,
        annotations: List[Annotation],
        attempts: List[ProviderAttempt],
        request_id: str,
        used_fallback: bool = False,
    ) -> AnalysisResult:
        logger.info(
            "[%s] Analysis completed by %s/%s with %d annotations after %d attempts",
            request_id,
            vendor.value,
            model,
            len(annotations),
            len(attempts),
        )
        return AnalysisResult(
            annotations=annotations,
            provider=vendor,
            model=model,
            used_fallback=used_fallback,
            attempts=attempts,
        )

    # ── Model walk ────────────────────────────────────────────────────────

    async def _walk_models(
        self,
        vendor: Vendor,
        requested: Optional[str],
        image: bytes,
        prompt: str,
        mime_type: str,
        attempts: List[ProviderAttempt],
        request_id: str,
    ) -> Tuple[List[Annotation], str]:
        """Try the vendor's models in order; only model-unavailable errors advance."""
        models = model_sequence(self.catalog, vendor, requested)
        if not models:
            raise ProviderModelUnavailableError(
                message=f"No models configured for {vendor.value}",
                provider=vendor.value,
            )

        last_error: Optional[ProviderModelUnavailableError] = None
        for model in models:
            try:
                annotations = await self._call_model(
                    vendor, model, image, prompt, mime_type, attempts, request_id
                )
                return annotations, model
            except ProviderModelUnavailableError as e:
                logger.warning(
                    "[%s] Model %s/%s unavailable, trying next model: %s",
                    request_id,
                    vendor.value,
                    model,
                    e.message,
                )
                last_error = e

        raise last_error

    async def _call_model(
        self,
        vendor: Vendor,
        model: str,
        image: bytes,
        prompt: str,
        mime_type: str,
        attempts: List[ProviderAttempt],
        request_id: str,
    ) -> List[Annotation]:
        """One model, with same-model retries of transient network errors."""
        retrying = AsyncRetrying(
            retry=retry_if_exception_type(ProviderNetworkError),
            stop=stop_after_attempt(self.retry_attempts),
            wait=wait_exponential_jitter(
                initial=self.retry_min_wait,
                max=self.retry_max_wait,
                jitter=1,
            ),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        annotations: List[Annotation] = []
        async for attempt in retrying:
            with attempt:
                annotations = await self._call_once(
                    vendor, model, image, prompt, mime_type, attempts, request_id
                )
        return annotations

    async def _call_once(
        self,
        vendor: Vendor,
        model: str,
        image: bytes,
        prompt: str,
        mime_type: str,
        attempts: List[ProviderAttempt],
        request_id: str,
    ) -> List[Annotation]:
        """Single timed client call; every failure leaves as a ProviderError."""
        client = self.clients.get(vendor)
        if client is None:
            error = ProviderNotConfiguredError(
                message=f"No client registered for provider '{vendor.value}'",
                provider=vendor.value,
                model=model,
            )
            attempts.append(
                ProviderAttempt(
                    provider=vendor,
                    model=model,
                    outcome=AttemptOutcome.NOT_CONFIGURED,
                    error=error.message,
                )
            )
            raise error

        start_time = time.time()
        try:
            annotations = await asyncio.wait_for(
                client.analyze(image, prompt, model, mime_type=mime_type),
                timeout=self.timeout,
            )
            if isinstance(annotations, (list, tuple)):
                stray = [type(a).__name__ for a in annotations if not isinstance(a, Annotation)]
                got = f"{stray[0]} items" if stray else None
            else:
                got = type(annotations).__name__
            if got is not None:
                raise ProviderResponseParseError(
                    message=f"Provider returned no annotation list (got {got})",
                    provider=vendor.value,
                    model=model,
                )
        except ProviderError as e:
            error = self._attribute(e, vendor, model)
        except asyncio.TimeoutError:
            error = ProviderNetworkError(
                message=f"Provider call timed out after {self.timeout:g}s",
                provider=vendor.value,
                model=model,
            )
        except Exception as e:
            logger.error(
                "[%s] Unexpected error from %s/%s: %s",
                request_id,
                vendor.value,
                model,
                str(e),
                exc_info=True,
            )
            error = ProviderNetworkError(
                message=f"Unexpected provider error: {type(e).__name__}",
                provider=vendor.value,
                model=model,
                context={"error_type": type(e).__name__},
            )
        else:
            duration_ms = (time.time() - start_time) * 1000
            attempts.append(
                ProviderAttempt(
                    provider=vendor,
                    model=model,
                    outcome=AttemptOutcome.SUCCESS,
                    duration_ms=duration_ms,
                )
            )
            logger.info(
                "[%s] %s/%s answered in %.0fms with %d annotations",
                request_id,
                vendor.value,
                model,
                duration_ms,
                len(annotations),
            )
            return list(annotations)

        duration_ms = (time.time() - start_time) * 1000
        attempts.append(
            ProviderAttempt(
                provider=vendor,
                model=model,
                outcome=_outcome_for(error),
                duration_ms=duration_ms,
                error=error.message,
            )
        )
        logger.warning(
            "[%s] %s/%s failed after %.0fms: %s",
            request_id,
            vendor.value,
            model,
            duration_ms,
            error.message,
        )
        raise error

    @staticmethod
    def _attribute(error: ProviderError, vendor: Vendor, model: str) -> ProviderError:
        """Fill in provider/model on errors raised by clients that left them empty."""
        if not error.provider:
            error.provider = vendor.value
            error.context["provider"] = vendor.value
        if not error.model:
            error.model = model
            error.context["model"] = model
        return error
