"""
Annotation Core - API Endpoint Tests
=====================================

What:  HTTP-level tests through the full middleware and exception-handler stack.
How:   httpx AsyncClient over ASGITransport; provider clients are AsyncMocks.

What we test:
    ✅ POST /api/annotations/process: camelCase output, empty-after-filter is 200
    ✅ POST /api/analyze: success, fallback, 422 / 502 / 503 error mapping
    ✅ GET /health: vendor status and circuit breaker state
    ✅ X-Request-ID is echoed (or generated) on every response
"""

import base64

import pytest

from annotation_core.exceptions import ProviderAuthError, ProviderNetworkError
from annotation_core.schemas.provider import Vendor

IMAGE_B64 = base64.b64encode(b"\x89PNG fake screenshot").decode()


def analyze_body(**overrides):
    body = {"image": IMAGE_B64, "prompt": "Review this landing page"}
    body.update(overrides)
    return body


class TestProcessEndpoint:

    @pytest.mark.asyncio
    async def test_process_returns_camel_case_result(self, test_client):
        response = await test_client.post(
            "/api/annotations/process",
            json={
                "annotations": [
                    {
                        "id": "a1",
                        "x": 20,
                        "y": 15,
                        "feedback": "I can see the submit button is visible at the top",
                        "implementationEffort": "low",
                    },
                ]
            },
        )

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert data["metrics"]["totalAnnotations"] == 1
        kept = data["processedAnnotations"][0]
        assert kept["id"] == "a1"
        assert kept["validationPassed"] is True
        assert kept["evidenceLevel"] == "strong"
        assert kept["implementationEffort"] == "low"
        assert kept["x"] == 20

    @pytest.mark.asyncio
    async def test_fully_filtered_batch_is_not_an_error(self, test_client):
        response = await test_client.post(
            "/api/annotations/process",
            json={"annotations": [{"id": "a1", "x": 50, "y": 50,
                                   "feedback": "Consider adding a button"}]},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "no_trustworthy_annotations"
        assert data["processedAnnotations"] == []
        assert data["filterReason"] == {"a1": "Standard content below threshold: 30% < 70%"}

    @pytest.mark.asyncio
    async def test_options_are_honoured(self, test_client):
        response = await test_client.post(
            "/api/annotations/process",
            json={
                "annotations": [{"id": "a1", "x": 50, "y": 50, "feedback": "Make it pop"}],
                "options": {"enableFiltering": False},
            },
        )

        data = response.json()
        assert data["status"] == "ok"
        assert data["processedAnnotations"][0]["validationPassed"] is False

    @pytest.mark.asyncio
    async def test_missing_coordinates_is_422(self, test_client):
        response = await test_client.post(
            "/api/annotations/process", json={"annotations": [{"id": "a1"}]}
        )
        assert response.status_code == 422


class TestAnalyzeEndpoint:

    @pytest.mark.asyncio
    async def test_analyze_success(self, test_client, provider_clients):
        response = await test_client.post("/api/analyze", json=analyze_body())

        assert response.status_code == 200
        data = response.json()
        assert data["provider"] == "openai"
        assert data["usedFallback"] is False
        assert data["degraded"] is False
        assert data["attempts"][0]["outcome"] == "success"
        assert len(data["result"]["processedAnnotations"]) == 2
        assert data["result"]["status"] == "ok"

        call = provider_clients[Vendor.OPENAI].analyze.await_args
        assert call.args[0] == b"\x89PNG fake screenshot"
        assert call.args[1] == "Review this landing page"

    @pytest.mark.asyncio
    async def test_data_url_prefix_is_accepted(self, test_client, provider_clients):
        body = analyze_body(image=f"data:image/png;base64,{IMAGE_B64}")

        response = await test_client.post("/api/analyze", json=body)

        assert response.status_code == 200
        call = provider_clients[Vendor.OPENAI].analyze.await_args
        assert call.args[0] == b"\x89PNG fake screenshot"

    @pytest.mark.asyncio
    async def test_explicit_provider_with_legacy_tag(self, test_client, provider_clients):
        body = analyze_body(provider={"provider": "claude", "model": "claude-3-haiku-20240307"})

        response = await test_client.post("/api/analyze", json=body)

        assert response.status_code == 200
        assert response.json()["provider"] == "anthropic"
        assert response.json()["model"] == "claude-3-haiku-20240307"
        provider_clients[Vendor.OPENAI].analyze.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_fallback_is_reported(self, test_client, provider_clients):
        provider_clients[Vendor.OPENAI].analyze.side_effect = ProviderNetworkError("502 upstream")

        response = await test_client.post("/api/analyze", json=analyze_body())

        assert response.status_code == 200
        data = response.json()
        assert data["provider"] == "anthropic"
        assert data["usedFallback"] is True
        assert [a["outcome"] for a in data["attempts"]] == ["network_error", "success"]

    @pytest.mark.asyncio
    async def test_invalid_base64_is_422(self, test_client, provider_clients):
        response = await test_client.post("/api/analyze", json=analyze_body(image="not base64!!"))

        assert response.status_code == 422
        provider_clients[Vendor.OPENAI].analyze.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_empty_prompt_is_422(self, test_client):
        response = await test_client.post("/api/analyze", json=analyze_body(prompt=""))
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_auth_error_is_502(self, test_client, provider_clients):
        provider_clients[Vendor.OPENAI].analyze.side_effect = ProviderAuthError("Invalid API key")

        response = await test_client.post("/api/analyze", json=analyze_body())

        assert response.status_code == 502
        data = response.json()
        assert data["error"] == "provider_auth_error"
        assert data["message"] == "Invalid API key"
        assert data["details"]["provider"] == "openai"
        provider_clients[Vendor.ANTHROPIC].analyze.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_both_providers_down_is_503(self, test_client, provider_clients):
        provider_clients[Vendor.OPENAI].analyze.side_effect = ProviderNetworkError("down")
        provider_clients[Vendor.ANTHROPIC].analyze.side_effect = ProviderNetworkError("down")

        response = await test_client.post("/api/analyze", json=analyze_body())

        assert response.status_code == 503
        assert response.json()["error"] == "provider_fallback_exhausted"

    @pytest.mark.asyncio
    async def test_open_circuit_is_503_with_retry_after(
        self, test_client, provider_clients, circuit_breaker
    ):
        for _ in range(circuit_breaker.failure_threshold):
            circuit_breaker.record_failure()

        response = await test_client.post("/api/analyze", json=analyze_body())

        assert response.status_code == 503
        assert response.json()["error"] == "service_unavailable"
        assert 1 <= int(response.headers["Retry-After"]) <= 60
        provider_clients[Vendor.OPENAI].analyze.assert_not_awaited()


class TestHealthEndpoint:

    @pytest.mark.asyncio
    async def test_health_returns_200(self, test_client):
        response = await test_client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["providers"] == {"openai": "available", "anthropic": "available"}
        assert data["circuit_breaker"]["state"] == "closed"
        assert data["circuit_breaker"]["failure_threshold"] == 3
        assert "version" in data
        assert "uptime_seconds" in data

    @pytest.mark.asyncio
    async def test_health_unreachable_vendor_is_degraded(self, test_client, provider_clients):
        provider_clients[Vendor.ANTHROPIC].health_check.return_value = False

        data = (await test_client.get("/health")).json()

        assert data["status"] == "degraded"
        assert data["providers"]["anthropic"] == "unavailable"

    @pytest.mark.asyncio
    async def test_health_open_circuit(self, test_client, provider_clients, circuit_breaker):
        for _ in range(circuit_breaker.failure_threshold):
            circuit_breaker.record_failure()

        data = (await test_client.get("/health")).json()

        assert data["status"] == "degraded"
        assert set(data["providers"].values()) == {"circuit_open"}
        provider_clients[Vendor.OPENAI].health_check.assert_not_awaited()


class TestRequestId:

    @pytest.mark.asyncio
    async def test_request_id_is_echoed(self, test_client):
        response = await test_client.get("/health", headers={"X-Request-ID": "abc-123"})
        assert response.headers["X-Request-ID"] == "abc-123"

    @pytest.mark.asyncio
    async def test_request_id_is_generated(self, test_client):
        response = await test_client.get("/health")
        assert len(response.headers["X-Request-ID"]) == 8

    @pytest.mark.asyncio
    async def test_error_body_carries_request_id(self, test_client, provider_clients):
        provider_clients[Vendor.OPENAI].analyze.side_effect = ProviderAuthError("Invalid API key")

        response = await test_client.post(
            "/api/analyze", json=analyze_body(), headers={"X-Request-ID": "req-42"}
        )

        assert response.json()["request_id"] == "req-42"
