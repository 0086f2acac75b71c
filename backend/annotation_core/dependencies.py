"""
Annotation Core - Request Dependencies
=======================================

What:  FastAPI dependencies handing the per-app service instances to routes.
How:   create_app() stores the orchestrators on app.state; these functions
       read them back for each request via Depends().
Who:   Injected into the route handlers in annotation_core.routes.

Example usage in a route:
    @router.post("/api/analyze")
    async def analyze(
        providers: ProviderOrchestrator = Depends(get_provider_orchestrator),
    ):
        ...
"""

from fastapi import Request

from annotation_core.services.processing_service import ProcessingOrchestrator
from annotation_core.services.provider_service import ProviderOrchestrator


def get_provider_orchestrator(request: Request) -> ProviderOrchestrator:
    return request.app.state.provider_orchestrator


def get_processing_orchestrator(request: Request) -> ProcessingOrchestrator:
    return request.app.state.processing_orchestrator
