"""
Tests for the request ID middleware.
"""

from fastapi import FastAPI
from fastapi.testclient import TestClient

from app.middleware import RequestIDMiddleware
from sso_gateway.utils.logging import request_id_var


def build_client(trust_incoming_id=False):
    app = FastAPI()
    app.add_middleware(RequestIDMiddleware, trust_incoming_id=trust_incoming_id)

    @app.get("/ping")
    async def ping():
        return {"request_id": request_id_var.get()}

    return TestClient(app)


class TestRequestIDMiddleware:
    def test_generates_id_and_binds_context(self):
        response = build_client().get("/ping")
        request_id = response.headers["X-Request-ID"]
        assert len(request_id) == 36
        assert response.json()["request_id"] == request_id

    def test_ignores_incoming_id_by_default(self):
        response = build_client().get("/ping", headers={"X-Request-ID": "client-chosen"})
        assert response.headers["X-Request-ID"] != "client-chosen"

    def test_trusted_incoming_id(self):
        response = build_client(trust_incoming_id=True).get(
            "/ping", headers={"X-Request-ID": "edge-123"}
        )
        assert response.headers["X-Request-ID"] == "edge-123"
        assert response.json()["request_id"] == "edge-123"
