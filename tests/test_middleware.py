"""
ZIMMR Backend — Middleware Tests
=================================
"""

import logging
from unittest.mock import patch

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from zimmr.config import settings
from zimmr.middleware.logging import level_for_status
from zimmr.middleware.rate_limit import RateLimitMiddleware
from zimmr.middleware.request_id import RequestIDMiddleware, new_request_id, request_id_var


def build_app() -> FastAPI:
    app = FastAPI()

    @app.get("/ping")
    async def ping():
        return {"request_id": request_id_var.get()}

    @app.get("/health")
    async def health():
        return {"status": "healthy"}

    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(RateLimitMiddleware)
    return app


class TestRateLimit:

    @pytest.mark.asyncio
    async def test_blocks_after_limit(self):
        transport = ASGITransport(app=build_app())
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            with patch.object(settings, "rate_limit_requests", 2):
                assert (await client.get("/ping")).status_code == 200
                assert (await client.get("/ping")).status_code == 200
                response = await client.get("/ping")

        assert response.status_code == 429
        assert response.json()["error"] == "rate_limit_exceeded"
        assert int(response.headers["Retry-After"]) >= 1

    @pytest.mark.asyncio
    async def test_health_is_exempt(self):
        transport = ASGITransport(app=build_app())
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            with patch.object(settings, "rate_limit_requests", 1):
                for _ in range(3):
                    assert (await client.get("/health")).status_code == 200


class TestRequestID:

    @pytest.mark.asyncio
    async def test_generated_id_is_visible_to_handlers(self):
        transport = ASGITransport(app=build_app())
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            response = await client.get("/ping")

        rid = response.headers["X-Request-ID"]
        assert len(rid) == 8
        assert response.json()["request_id"] == rid

    def test_new_ids_differ(self):
        assert new_request_id() != new_request_id()


class TestAccessLogLevel:

    def test_levels(self):
        assert level_for_status(200) == logging.INFO
        assert level_for_status(404) == logging.WARNING
        assert level_for_status(503) == logging.ERROR
