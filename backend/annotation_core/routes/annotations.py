"""
Annotation Core - Annotation Processing Route
==============================================

What:  POST /api/annotations/process validates, scores and filters a batch of
       annotations the caller already has.
How:   Runs ProcessingOrchestrator.process_annotations in the threadpool
       (the pipeline is CPU-bound and synchronous).
Who:   Callers re-checking stored provider output, and the test suite.

A batch that filtering empties still returns 200, with
status="no_trustworthy_annotations".
"""

import logging

from fastapi import APIRouter, Depends
from starlette.concurrency import run_in_threadpool

from annotation_core.dependencies import get_processing_orchestrator
from annotation_core.schemas.annotation import ProcessingResult
from annotation_core.schemas.api import ErrorResponse, ProcessRequest
from annotation_core.services.processing_service import ProcessingOrchestrator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/annotations", tags=["Annotations"])


@router.post(
    "/process",
    response_model=ProcessingResult,
    responses={
        200: {"description": "Batch processed", "model": ProcessingResult},
        422: {"description": "Malformed request body"},
        500: {"description": "Server configuration error", "model": ErrorResponse},
    },
    summary="Validate and filter a batch of annotations",
    description=(
        "Scores each annotation for coordinate sanity, visual evidence, content "
        "specificity and research backing, then partitions the batch into kept and "
        "filtered annotations. Coordinates and text are never modified."
    ),
)
async def process_annotations(
    body: ProcessRequest,
    processor: ProcessingOrchestrator = Depends(get_processing_orchestrator),
) -> ProcessingResult:
    logger.info("Received process request: %d annotations", len(body.annotations))
    return await run_in_threadpool(
        processor.process_annotations, body.annotations, body.options
    )
