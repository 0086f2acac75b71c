"""
Annotation Core - Analyze Route
================================

What:  POST /api/analyze sends a screenshot to an AI vendor and returns the
       processed annotations.
How:   ProviderOrchestrator.analyze (model walk, vendor fallback, breaker),
       then ProcessingOrchestrator.process_annotations on the raw output.

Request Flow:
    1. FastAPI validates the body (base64 image, prompt, provider config)
    2. Provider orchestration, bounded by provider_timeout_seconds per call
    3. Processing of the returned annotations (in the threadpool)
    4. 200 with provider/model used, attempt trace, and processing result

Error responses (handled by global exception handlers):
    HTTP 422: Malformed body (FastAPI request validation)
    HTTP 502: Provider rejected the credential (ProviderAuthError)
    HTTP 503: Providers failed or the circuit breaker is open
"""

import logging

from fastapi import APIRouter, Depends
from starlette.concurrency import run_in_threadpool

from annotation_core.dependencies import (
    get_processing_orchestrator,
    get_provider_orchestrator,
)
from annotation_core.schemas.api import AnalyzeRequest, AnalyzeResponse, ErrorResponse
from annotation_core.services.processing_service import ProcessingOrchestrator
from annotation_core.services.provider_service import ProviderOrchestrator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Analyze"])


@router.post(
    "/analyze",
    response_model=AnalyzeResponse,
    responses={
        200: {"description": "Screenshot analyzed", "model": AnalyzeResponse},
        422: {"description": "Malformed request body"},
        502: {"description": "Provider rejected the credential", "model": ErrorResponse},
        503: {"description": "AI providers unavailable", "model": ErrorResponse},
    },
    summary="Analyze a screenshot with an AI provider",
    description=(
        "Calls the configured AI vendor (walking its model list and falling back to a "
        "second vendor on transient failures), then validates and filters the returned "
        "annotations."
    ),
)
async def analyze_screenshot(
    body: AnalyzeRequest,
    providers: ProviderOrchestrator = Depends(get_provider_orchestrator),
    processor: ProcessingOrchestrator = Depends(get_processing_orchestrator),
) -> AnalyzeResponse:
    image = body.image_bytes()
    logger.info(
        "Received analyze request: image=%d bytes, mime=%s, prompt=%d chars",
        len(image),
        body.mime_type,
        len(body.prompt),
    )

    analysis = await providers.analyze(
        image,
        body.prompt,
        config=body.provider,
        mime_type=body.mime_type,
    )
    result = await run_in_threadpool(
        processor.process_annotations, analysis.annotations, body.options
    )

    return AnalyzeResponse(
        provider=analysis.provider,
        model=analysis.model,
        used_fallback=analysis.used_fallback,
        degraded=analysis.degraded,
        attempts=analysis.attempts,
        result=result,
    )
