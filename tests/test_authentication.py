#!/usr/bin/env python3

import base64
from unittest.mock import Mock

import pytest
from starlette.testclient import TestClient
from starlette.applications import Starlette
from starlette.routing import Route
from starlette.middleware import Middleware
from starlette.requests import Request
from starlette.responses import JSONResponse

from auth_middleware import AuthMiddleware, DefaultRejectMiddleware, noauth, orid_access, require_auth
from cli import generate_jwt_secret, create_jwt_token
from identity_client import IdentityClient, IdentityAuthenticationError
from jwt_auth import JWTValidator
from token_cache import InMemoryTokenCache


TEST_SECRET = "sk_dGVzdF9zZWNyZXRfa2V5XzEyMzQ1Njc4OTA"
PROVIDER = "test-provider"


def basic_header(user_id, password):
    credentials = base64.b64encode(f"{user_id}:{password}".encode()).decode()
    return {"Authorization": f"Basic {credentials}"}


def bearer_header(account_id):
    return {"Authorization": f"Bearer {create_jwt_token(TEST_SECRET, account_id, expires_in_days=1)}"}


def build_app(identity_client=None, token_cache=None):
    @noauth
    async def public_endpoint(request: Request):
        return JSONResponse({"message": "Public endpoint - no auth required"})

    @require_auth()
    async def api_endpoint(request: Request):
        return JSONResponse({"accountId": request.state.account_id})

    @require_auth(allow_basic=True)
    @orid_access
    async def state_endpoint(request: Request):
        orid = request.state.orid
        return JSONResponse({"accountId": orid.account_id, "container": orid.resource_id})

    # No decorator - rejected by default
    async def unprotected_endpoint(request: Request):
        return JSONResponse({"message": "This should be rejected"})

    return Starlette(
        routes=[
            Route('/public', public_endpoint, methods=['GET']),
            Route('/api', api_endpoint, methods=['GET']),
            Route('/tf/{orid:path}', state_endpoint, methods=['GET']),
            Route('/unprotected', unprotected_endpoint, methods=['GET']),
        ],
        middleware=[
            Middleware(
                AuthMiddleware,
                jwt_validator=JWTValidator(TEST_SECRET),
                provider_key=PROVIDER,
                system_account_id="1",
                identity_client=identity_client,
                token_cache=token_cache,
            ),
            Middleware(DefaultRejectMiddleware),
        ],
    )


class TestDefaultReject:
    """Endpoints must opt in or out of authentication explicitly"""

    def setup_method(self):
        self.client = TestClient(build_app())

    def test_public_endpoint(self):
        response = self.client.get("/public")

        assert response.status_code == 200

    def test_unprotected_endpoint_rejected(self):
        response = self.client.get("/unprotected")

        assert response.status_code == 401
        assert "explicit authentication" in response.json()["error"]

    def test_missing_token(self):
        response = self.client.get("/api")

        assert response.status_code == 401
        assert response.json()["error"] == "Authentication required"

    def test_bearer_token(self):
        response = self.client.get("/api", headers=bearer_header("1001"))

        assert response.status_code == 200
        assert response.json() == {"accountId": "1001"}

    def test_legacy_token_header(self):
        token = create_jwt_token(TEST_SECRET, "1001")

        response = self.client.get("/api", headers={"token": token})

        assert response.status_code == 200

    def test_invalid_token(self):
        response = self.client.get("/api", headers={"Authorization": "Bearer garbage"})

        assert response.status_code == 401
        assert response.json()["error"] == "Authentication failed: Invalid token"

    def test_token_signed_with_other_secret(self):
        token = create_jwt_token(generate_jwt_secret(), "1001")

        response = self.client.get("/api", headers={"Authorization": f"Bearer {token}"})

        assert response.status_code == 401

    def test_basic_not_accepted_without_opt_in(self):
        response = self.client.get("/api", headers=basic_header("alice", "pw"))

        assert response.status_code == 401
        assert response.json()["error"] == "Authentication required"


class TestOridAccess:
    """Test account scoping of ORID addressed endpoints"""

    def setup_method(self):
        self.client = TestClient(build_app())

    def test_own_account(self):
        response = self.client.get(
            f"/tf/orid:1:{PROVIDER}:::1001:fs:infra", headers=bearer_header("1001")
        )

        assert response.status_code == 200
        assert response.json() == {"accountId": "1001", "container": "infra"}

    def test_other_account(self):
        response = self.client.get(
            f"/tf/orid:1:{PROVIDER}:::1002:fs:infra", headers=bearer_header("1001")
        )

        assert response.status_code == 403
        assert response.json()["error"] == "Insufficient privilege for request"

    def test_system_account_reaches_every_account(self):
        response = self.client.get(
            f"/tf/orid:1:{PROVIDER}:::1002:fs:infra", headers=bearer_header("1")
        )

        assert response.status_code == 200

    def test_unparseable_orid(self):
        response = self.client.get("/tf/not-an-orid", headers=bearer_header("1001"))

        assert response.status_code == 400
        assert response.text == "Resource not understood"

    def test_foreign_provider(self):
        response = self.client.get(
            "/tf/orid:1:other-provider:::1001:fs:infra", headers=bearer_header("1001")
        )

        assert response.status_code == 400
        assert response.json()["error"] == "Invalid orid in request"

    def test_foreign_service(self):
        response = self.client.get(
            f"/tf/orid:1:{PROVIDER}:::1001:qs:infra", headers=bearer_header("1001")
        )

        assert response.status_code == 400


class TestBasicAuthentication:
    """Test basic credentials exchanged through the identity service"""

    def setup_method(self):
        self.identity_client = Mock(spec=IdentityClient)
        self.identity_client.authenticate.return_value = create_jwt_token(TEST_SECRET, "1001")
        self.token_cache = InMemoryTokenCache()
        self.client = TestClient(build_app(self.identity_client, self.token_cache))
        self.url = f"/tf/orid:1:{PROVIDER}:::1001:fs:infra"

    def test_exchange(self):
        response = self.client.get(self.url, headers=basic_header("alice", "secret"))

        assert response.status_code == 200
        self.identity_client.authenticate.assert_called_once_with("1001", "alice", "secret")

    def test_token_is_cached(self):
        self.client.get(self.url, headers=basic_header("alice", "secret"))
        response = self.client.get(self.url, headers=basic_header("alice", "secret"))

        assert response.status_code == 200
        assert self.identity_client.authenticate.call_count == 1
        assert self.token_cache.get("1001|alice") is not None

    def test_rejected_credentials(self):
        self.identity_client.authenticate.side_effect = IdentityAuthenticationError("bad password")

        response = self.client.get(self.url, headers=basic_header("alice", "wrong"))

        assert response.status_code == 401
        assert response.json()["error"] == "Authentication failed: bad password"
        assert self.token_cache.get("1001|alice") is None

    def test_malformed_credentials(self):
        response = self.client.get(self.url, headers={"Authorization": "Basic !!!"})

        assert response.status_code == 401
        assert response.json()["error"] == "Authentication failed: Malformed basic credentials"
        self.identity_client.authenticate.assert_not_called()

    def test_missing_account_id(self):
        response = self.client.get(
            f"/tf/orid:1:{PROVIDER}::::fs:infra", headers=basic_header("alice", "secret")
        )

        assert response.status_code == 403
        assert response.text == "Please include account id in request"

    def test_unparseable_orid(self):
        response = self.client.get("/tf/garbage", headers=basic_header("alice", "secret"))

        assert response.status_code == 400
        assert response.text == "Resource not understood"

    def test_without_identity_service(self):
        client = TestClient(build_app())

        response = client.get(self.url, headers=basic_header("alice", "secret"))

        assert response.status_code == 401


class TestSecrets:
    def test_secret_generation(self):
        secret = generate_jwt_secret()

        assert secret.startswith("sk_")
        assert "=" not in secret
        assert generate_jwt_secret() != secret

    def test_generated_secret_round_trip(self):
        secret = generate_jwt_secret()
        token = create_jwt_token(secret, "77", user_id="bob")

        is_valid, payload, error = JWTValidator(secret).validate_token(token)

        assert is_valid
        assert payload["accountId"] == "77"
        assert payload["userId"] == "bob"


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
