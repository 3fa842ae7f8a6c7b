"""
Integration tests for the salt service HTTP surface.
"""

from unittest.mock import MagicMock

import jwt
import pytest

from suitter.config import get_config
from suitter.factory import create_app

ORACLE_SALT = "298425862164995226741827086525030590252"


def _app_with(**overrides):
    cfg = get_config()
    cfg.update(overrides)
    flask_app = create_app(cfg)
    flask_app.config.update({"TESTING": True})
    return flask_app


class TestSaltEndpoint:
    """Test POST /api/zklogin/salt."""

    def test_returns_salt_for_subject(self, client, make_token):
        response = client.post("/api/zklogin/salt", json={"jwt": make_token(sub="user123")})

        assert response.status_code == 200
        assert response.get_json() == {"salt": ORACLE_SALT}

    def test_salt_is_stable_across_requests(self, client, make_token):
        first = client.post("/api/zklogin/salt", json={"jwt": make_token(sub="user123", aud="app")})
        second = client.post("/api/zklogin/salt", json={"jwt": make_token(sub="user123", aud="other")})

        assert first.get_json()["salt"] == second.get_json()["salt"]

    @pytest.mark.parametrize("body", [{}, {"jwt": ""}, {"jwt": 42}, {"token": "x"}])
    def test_missing_token(self, client, body):
        response = client.post("/api/zklogin/salt", json=body)

        assert response.status_code == 400
        assert response.get_json() == {"error": "JWT token is required"}

    def test_non_json_body(self, client):
        response = client.post("/api/zklogin/salt", data="jwt=abc", content_type="text/plain")

        assert response.status_code == 400

    def test_unparseable_token(self, client):
        response = client.post("/api/zklogin/salt", json={"jwt": "not-a-jwt"})

        assert response.status_code == 400
        assert response.get_json()["error"].startswith("Invalid JWT")

    def test_missing_secret_is_server_error(self, make_token):
        flask_app = _app_with(SALT_SECRET=None)

        response = flask_app.test_client().post("/api/zklogin/salt", json={"jwt": make_token()})

        assert response.status_code == 500
        assert response.get_json() == {"error": "Failed to obtain salt"}

    def test_get_not_allowed(self, client):
        response = client.get("/api/zklogin/salt")

        assert response.status_code == 405
        assert response.get_json()["error"] == "method_not_allowed"


class TestSaltTokenVerification:
    """Test the optional provider-signature check."""

    def test_rejected_token_is_unauthorized(self, app, client, make_token):
        verifier = MagicMock()
        verifier.verify.side_effect = jwt.InvalidSignatureError("Signature verification failed")
        app.extensions["salt_token_verifier"] = verifier

        response = client.post("/api/zklogin/salt", json={"jwt": make_token()})

        assert response.status_code == 401
        assert "salt" not in response.get_json()

    def test_unreachable_signing_keys_are_server_error(self, app, client, make_token):
        verifier = MagicMock()
        verifier.verify.side_effect = jwt.PyJWKClientConnectionError("Fail to fetch data from the url")
        app.extensions["salt_token_verifier"] = verifier

        response = client.post("/api/zklogin/salt", json={"jwt": make_token()})

        assert response.status_code == 500
        assert response.get_json() == {"error": "Failed to obtain salt"}

    def test_verified_token_gets_salt(self, app, client, make_token):
        verifier = MagicMock()
        app.extensions["salt_token_verifier"] = verifier
        token = make_token()

        response = client.post("/api/zklogin/salt", json={"jwt": token})

        assert response.status_code == 200
        verifier.verify.assert_called_once_with(token)

    def test_factory_installs_verifier_when_enabled(self):
        flask_app = _app_with(SALT_VERIFY_JWT=True, SALT_ALLOWED_AUDIENCES=["app"])

        assert flask_app.extensions["salt_token_verifier"].audiences == ["app"]


class TestRateLimiting:
    def test_salt_endpoint_is_rate_limited(self, make_token):
        flask_app = _app_with(RATE_LIMIT_ENABLED=True, SALT_RATE_LIMIT="2 per minute")
        test_client = flask_app.test_client()
        token = make_token()

        statuses = [test_client.post("/api/zklogin/salt", json={"jwt": token}).status_code for _ in range(3)]

        assert statuses == [200, 200, 429]


class TestHealthEndpoints:
    """Test health check endpoints."""

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        data = response.get_json()
        assert data["status"] == "healthy"
        assert data["network"] == "testnet"
        assert data["version"] == "1.0.0"
        assert "timestamp" in data

    def test_liveness(self, client):
        assert client.get("/health/live").get_json() == {"status": "alive"}

    def test_ready_with_secret(self, client):
        assert client.get("/health/ready").status_code == 200

    def test_not_ready_without_secret(self):
        flask_app = _app_with(SALT_SECRET=None)

        response = flask_app.test_client().get("/health/ready")

        assert response.status_code == 503
        assert response.get_json()["status"] == "not_ready"


class TestResponseHeaders:
    def test_cors_wildcard(self, client):
        response = client.get("/health")

        assert response.headers["Access-Control-Allow-Origin"] == "*"

    def test_cors_allow_list(self, make_token):
        flask_app = _app_with(CORS_ORIGINS="http://localhost:5173")
        test_client = flask_app.test_client()

        allowed = test_client.get("/health", headers={"Origin": "http://localhost:5173"})
        denied = test_client.get("/health", headers={"Origin": "http://evil.example"})

        assert allowed.headers["Access-Control-Allow-Origin"] == "http://localhost:5173"
        assert "Access-Control-Allow-Origin" not in denied.headers

    def test_security_headers(self, client):
        response = client.get("/health")

        assert response.headers["X-Frame-Options"] == "DENY"
        assert "Content-Security-Policy" in response.headers

    def test_unknown_route_is_json_404(self, client):
        response = client.get("/nope")

        assert response.status_code == 404
        assert response.get_json()["error"] == "not_found"
