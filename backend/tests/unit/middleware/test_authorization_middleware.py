"""
Unit tests for AccessGateMiddleware.

Requests go through the full application (TestClient) with the in-memory
access graph behind the decision service.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi import FastAPI, Request
from fastapi.testclient import TestClient

from graphgate.config import Settings
from graphgate.middleware.authorization_middleware import (
    STEP_UP_HEADER,
    AccessGateMiddleware,
    create_authorization_middleware,
)
from graphgate.services.session_store import SessionIdentityResolver, SessionStoreError


@pytest.mark.unit
class TestEnforcement:
    """Decision -> HTTP response."""

    def test_authorized_passes_through(self, app_factory, headers_for) -> None:
        with TestClient(app_factory()) as client:
            response = client.get("/users", headers=headers_for("alice-session"))

        assert response.status_code == 200
        assert response.json() == {"users": ["alice", "bob", "root"]}
        assert STEP_UP_HEADER not in response.headers

    def test_no_session_is_401(self, app_factory, access_graph) -> None:
        with TestClient(app_factory()) as client:
            response = client.get("/users", headers={"X-Forwarded-For": "10.0.0.1"})

        assert response.status_code == 401
        body = response.json()
        assert body["status"] == "REFUSED"
        assert body["reason"] == "no_session"
        assert body["type"] == "authorization_error"
        assert access_graph.read_calls == 0
        assert access_graph.attempts == []

    def test_unknown_session_is_401(self, app_factory, headers_for) -> None:
        with TestClient(app_factory()) as client:
            response = client.get("/users", headers=headers_for("expired-session"))

        assert response.status_code == 401

    def test_no_permission_is_403(self, app_factory, headers_for) -> None:
        with TestClient(app_factory()) as client:
            response = client.delete("/users/bob-id", headers=headers_for("alice-session"))

        assert response.status_code == 403
        assert response.json()["reason"] == "no_permission"

    def test_new_ip_blocked_by_default(self, app_factory, headers_for) -> None:
        with TestClient(app_factory()) as client:
            assert client.get("/users", headers=headers_for("alice-session", "10.0.0.1")).status_code == 200
            assert client.get("/users", headers=headers_for("alice-session", "10.0.0.1")).status_code == 200
            response = client.get("/users", headers=headers_for("alice-session", "10.0.0.2"))

        assert response.status_code == 403
        assert response.json()["status"] == "SUSPICIOUS"
        assert response.json()["reason"] == "new_ip_detected"

    def test_new_ip_step_up_policy(self, app_factory, headers_for) -> None:
        app = app_factory(suspicious_policy="step_up")
        with TestClient(app) as client:
            client.get("/users", headers=headers_for("alice-session", "10.0.0.1"))
            response = client.get("/users", headers=headers_for("alice-session", "10.0.0.2"))

        assert response.status_code == 200
        assert response.headers[STEP_UP_HEADER] == "true"

    def test_admin_everywhere(self, app_factory, headers_for) -> None:
        with TestClient(app_factory()) as client:
            response = client.delete("/users/alice-id", headers=headers_for("root-session"))

        assert response.status_code == 200
        assert response.json() == {"deleted": "alice-id"}

    def test_audit_records_forwarded_address(self, app_factory, access_graph, headers_for) -> None:
        with TestClient(app_factory()) as client:
            client.get("/users", headers={"X-Session-Id": "alice-session", "X-Forwarded-For": "203.0.113.7, 10.0.0.1"})

        attempt = access_graph.attempts_for("alice-id")[0]
        assert attempt.ip_address == "203.0.113.7"
        assert attempt.method == "GET"
        assert attempt.path == "/users"

    def test_trailing_slash_is_canonicalized(self, app_factory, access_graph, headers_for) -> None:
        with TestClient(app_factory()) as client:
            client.get("/users/", headers=headers_for("alice-session"))

        assert access_graph.attempts_for("alice-id")[0].path == "/users"

    def test_transport_peer_address_without_forwarding(self, app_factory, access_graph) -> None:
        with TestClient(app_factory()) as client:
            client.get("/users", headers={"X-Session-Id": "alice-session"})

        assert access_graph.attempts_for("alice-id")[0].ip_address == "testclient"


@pytest.mark.unit
class TestPublicPaths:
    def test_public_path_skips_decision(self, app_factory, access_graph) -> None:
        with TestClient(app_factory()) as client:
            response = client.get("/public/info")

        assert response.status_code == 200
        assert access_graph.read_calls == 0

    def test_health_is_public(self, app_factory) -> None:
        with TestClient(app_factory()) as client:
            response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["graph_store"] == "not_configured"

    def test_custom_public_paths(self, app_factory) -> None:
        settings = Settings(_env_file=None, public_paths=[r"^/users$"])
        with TestClient(app_factory(settings=settings)) as client:
            assert client.get("/users").status_code == 200
            assert client.get("/health").status_code == 401

    def test_public_flag_on_request_state(self) -> None:
        app = FastAPI()
        app.add_middleware(AccessGateMiddleware)

        @app.get("/status")
        async def status_route(request: Request):
            return {"public": request.state.is_public_path}

        with TestClient(app) as client:
            assert client.get("/status").json() == {"public": True}


@pytest.mark.unit
class TestFailSecure:
    def test_session_store_failure_is_500(self, app_factory, access_graph, headers_for) -> None:
        app = app_factory()
        broken = MagicMock()
        broken.get = AsyncMock(side_effect=SessionStoreError("redis down"))
        app.state.identity_resolver = SessionIdentityResolver(broken)

        with TestClient(app) as client:
            response = client.get("/users", headers=headers_for("alice-session"))

        assert response.status_code == 500
        assert response.json()["reason"] == "system_error"
        assert access_graph.attempts == []

    def test_graph_failure_is_500(self, app_factory, access_graph, headers_for) -> None:
        access_graph.fail_reads = True
        with TestClient(app_factory()) as client:
            response = client.get("/users", headers=headers_for("alice-session"))

        assert response.status_code == 500
        assert response.json()["reason"] == "system_error"

    def test_missing_service_fails_closed(self, headers_for) -> None:
        app = FastAPI()
        app.add_middleware(AccessGateMiddleware)

        @app.get("/users")
        async def list_users():
            return {"users": []}

        with TestClient(app) as client:
            response = client.get("/users", headers=headers_for("alice-session"))

        assert response.status_code == 500
        assert response.json()["error"] == "Authorization system error"

    def test_factory(self) -> None:
        middleware = create_authorization_middleware(FastAPI(), public_paths=[r"^/open$"])

        assert middleware._is_public_path("/open")
        assert not middleware._is_public_path("/users")
