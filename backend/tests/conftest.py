"""
Annotation Core - Test Configuration (conftest.py)
===================================================

What:  Shared pytest fixtures for the entire test suite.
How:   pytest auto-discovers conftest.py and makes fixtures available to all tests.

Fixture Hierarchy:
    Function-scoped (created fresh for each test):
    ├── tables: Built-in phrase tables (no override file)
    ├── processor: ProcessingOrchestrator running inline
    ├── make_annotation: Annotation factory with sane defaults
    ├── make_client: AsyncMock ProviderClient with scripted outcomes
    ├── provider_clients: OpenAI + Anthropic mock clients for the app
    ├── circuit_breaker: Fresh breaker (threshold 3, 60s recovery)
    └── test_client: HTTPX AsyncClient bound to an app built from the above
"""

import os

# Settings are read at import time; pin them before any annotation_core import.
os.environ["LOG_LEVEL"] = "WARNING"
os.environ.pop("PHRASE_TABLES_PATH", None)
os.environ.pop("MODEL_CATALOG", None)

from typing import List
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from annotation_core.schemas.annotation import Annotation
from annotation_core.schemas.provider import Vendor
from annotation_core.services.phrase_tables import DEFAULT_PHRASE_TABLES
from annotation_core.services.processing_service import ProcessingOrchestrator
from annotation_core.services.provider_base import ProviderClient
from annotation_core.services.provider_service import CircuitBreaker


# ══════════════════════════════════════════════════════════════════════════
# Domain Fixtures
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def tables():
    return DEFAULT_PHRASE_TABLES


@pytest.fixture
def processor(tables):
    return ProcessingOrchestrator(tables=tables, workers=1)


@pytest.fixture
def make_annotation():
    """
    Annotation factory.

    Usage:
        def test_x(make_annotation):
            a = make_annotation(x=12, y=80, feedback="The header is cramped")
    """
    counter = {"n": 0}

    def _make(**overrides) -> Annotation:
        counter["n"] += 1
        fields = {
            "id": f"ann-{counter['n']}",
            "x": 30,
            "y": 40,
            "feedback": "The button in the header is misaligned",
        }
        fields.update(overrides)
        return Annotation(**fields)

    return _make


@pytest.fixture
def sample_annotations(make_annotation) -> List[Annotation]:
    """Two plausible annotations a provider might return."""
    return [
        make_annotation(
            x=20,
            y=15,
            title="Low contrast CTA",
            description="I can see the button text has color #999 on white",
        ),
        make_annotation(x=70, y=10, feedback="The navigation links in the header wrap"),
    ]


# ══════════════════════════════════════════════════════════════════════════
# Provider Fixtures
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def make_client():
    """
    Provides a ProviderClient mock whose analyze() plays back `outcomes`.

    Each outcome is either a list of annotations (returned) or an exception
    instance (raised), consumed one per call.
    """

    def _make(*outcomes) -> AsyncMock:
        client = AsyncMock(spec=ProviderClient)
        client.analyze.side_effect = list(outcomes)
        client.health_check.return_value = True
        return client

    return _make


@pytest.fixture
def circuit_breaker():
    return CircuitBreaker(failure_threshold=3, recovery_timeout=60)


@pytest.fixture
def provider_clients(make_client, sample_annotations):
    """OpenAI and Anthropic mocks that answer with sample_annotations by default."""
    openai = make_client()
    openai.analyze.side_effect = None
    openai.analyze.return_value = sample_annotations
    anthropic = make_client()
    anthropic.analyze.side_effect = None
    anthropic.analyze.return_value = sample_annotations
    return {Vendor.OPENAI: openai, Vendor.ANTHROPIC: anthropic}


@pytest_asyncio.fixture
async def test_client(provider_clients, circuit_breaker, processor):
    """
    Provides an async HTTP test client for endpoint testing.

    Usage:
        async def test_health(test_client):
            response = await test_client.get("/health")
            assert response.status_code == 200
    """
    from annotation_core.main import create_app

    app = create_app(
        provider_clients=provider_clients,
        circuit_breaker=circuit_breaker,
        processing_orchestrator=processor,
    )
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
