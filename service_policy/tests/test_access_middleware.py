"""
Unit tests for AccessControlMiddleware.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi import Depends, FastAPI, Request
from fastapi.testclient import TestClient

from service_policy.app.domain.access_middleware import AccessControlMiddleware
from service_policy.app.policy.models import AccessContext, AccessResult


def build_app(middleware: AccessControlMiddleware) -> FastAPI:
    """Create a small app protected by the middleware."""
    app = FastAPI()

    @app.middleware("http")
    async def fake_authentication(request: Request, call_next):
        user_id = request.headers.get("X-User-ID")
        if user_id:
            request.state.user_info = {
                "user_id": user_id,
                "organization_id": request.headers.get("X-Org-ID"),
            }
        return await call_next(request)

    @app.get("/tournament/{id}")
    async def get_tournament(id: str, access: AccessResult = Depends(middleware.require_permission("read"))):
        return {"id": id, "reason": access.reason}

    @app.get("/payments/{payment_id}")
    async def get_payment(
        payment_id: str,
        access: AccessResult = Depends(middleware.require_permission(
            "read",
            resource_type="payment",
            get_resource_id=lambda request: request.path_params["payment_id"],
            get_context=lambda request: AccessContext(owner_id=request.query_params.get("owner")),
        )),
    ):
        return {"id": payment_id, "decided_by": access.decided_by.value}

    @app.get("/users/{owner}/payments/{id}")
    async def get_user_payment(
        owner: str,
        id: str,
        access: AccessResult = Depends(middleware.require_permission(
            "read", resource_type="payment", owner_param="owner"
        )),
    ):
        return {"id": id, "decided_by": access.decided_by.value}

    return app


class TestAccessControlMiddleware:
    """Test cases for AccessControlMiddleware."""

    @pytest.fixture
    def middleware(self, engine):
        """Create middleware over the test engine."""
        return AccessControlMiddleware(engine)

    @pytest.fixture
    def client(self, middleware):
        """Create test client."""
        return TestClient(build_app(middleware))

    def test_unauthenticated(self, client):
        """Test that requests without identity get 401."""
        response = client.get("/tournament/t1")

        assert response.status_code == 401
        assert response.json()["detail"] == "Authentication required"

    def test_allowed(self, client):
        """Test that an authorized request reaches the route."""
        response = client.get("/tournament/t1", headers={"X-User-ID": "viewer-1"})

        assert response.status_code == 200
        assert response.json() == {
            "id": "t1",
            "reason": "Role-based access granted for roles: viewer",
        }

    def test_denied(self, client):
        """Test that a denied request gets 403 with the reason."""
        response = client.get("/tournament/t1", headers={"X-User-ID": "nobody"})

        assert response.status_code == 403
        assert response.json()["detail"] == {
            "error": "Access denied",
            "reason": "Access denied by default policy",
        }

    def test_explicit_resource_and_context(self, client):
        """Test custom resource type, id and context extraction."""
        allowed = client.get("/payments/p1?owner=payer-1", headers={"X-User-ID": "payer-1"})
        denied = client.get("/payments/p1?owner=payer-2", headers={"X-User-ID": "payer-1"})

        assert allowed.status_code == 200
        assert allowed.json() == {"id": "p1", "decided_by": "ownership"}
        assert denied.status_code == 403

    def test_owner_from_path_parameter(self, client):
        """Test ownership grants with the owner taken from a named path parameter."""
        allowed = client.get("/users/payer-1/payments/p1", headers={"X-User-ID": "payer-1"})
        denied = client.get("/users/payer-2/payments/p1", headers={"X-User-ID": "payer-1"})

        assert allowed.status_code == 200
        assert allowed.json() == {"id": "p1", "decided_by": "ownership"}
        assert denied.status_code == 403

    def test_default_context_has_no_owner(self):
        """Test that without owner_param the default context carries no owner."""
        engine = MagicMock()
        engine.check_access = AsyncMock(return_value=AccessResult(allowed=True, reason="ok"))
        client = TestClient(build_app(AccessControlMiddleware(engine)))

        client.get("/tournament/t1", headers={"X-User-ID": "viewer-1"})

        assert engine.check_access.call_args[0][0].context.owner_id is None

    def test_default_request_mapping(self):
        """Test how an HTTP request is turned into an AccessRequest."""
        engine = MagicMock()
        engine.check_access = AsyncMock(return_value=AccessResult(allowed=True, reason="ok"))
        client = TestClient(build_app(AccessControlMiddleware(engine)))

        response = client.get("/tournament/t1", headers={"X-User-ID": "viewer-1", "X-Org-ID": "org-1"})

        assert response.status_code == 200
        access_request = engine.check_access.call_args[0][0]
        assert access_request.user_id == "viewer-1"
        assert access_request.action == "read"
        assert access_request.resource_type == "tournament"
        assert access_request.resource_id == "t1"
        assert access_request.context.organization_id == "org-1"
        assert access_request.context.get("requesting_user_id") == "viewer-1"

    def test_engine_failure(self):
        """Test that unexpected engine faults fail closed with 500."""
        engine = MagicMock()
        engine.check_access = AsyncMock(side_effect=RuntimeError("engine crashed"))
        client = TestClient(build_app(AccessControlMiddleware(engine)))

        response = client.get("/tournament/t1", headers={"X-User-ID": "viewer-1"})

        assert response.status_code == 500
        assert response.json()["detail"] == "Access control error"
