"""
Annotation Core - Package Initializer
======================================

What: Quality pipeline and AI-provider orchestration for design-feedback annotations.
Who:  Imported by the FastAPI app (`annotation_core.main`), by pytest, and by any
      caller that wants to validate provider output without the HTTP layer.

Architecture Note:

    ┌─────────────────────────────────────┐
    │           Routes (API Layer)        │  ← HTTP concerns only
    ├─────────────────────────────────────┤
    │   ProviderOrchestrator (services)   │  ← model / vendor fallback, breaker
    ├─────────────────────────────────────┤
    │  ProcessingOrchestrator (services)  │  ← validate → score → filter
    ├─────────────────────────────────────┤
    │       Schemas & Phrase Tables       │  ← pydantic models, tunable data
    └─────────────────────────────────────┘

    Validation never mutates an annotation's coordinates or text. The only
    writes are the validation metadata fields attached to copies.
"""

__version__ = "1.0.0"
