"""
Pytest configuration and shared fixtures for Suitter zkLogin tests.
"""

import os
from unittest.mock import MagicMock

import pytest

# Set test environment before importing app
os.environ["FLASK_ENV"] = "testing"
os.environ["FLASK_SECRET_KEY"] = "test-secret-key-for-testing-only"
os.environ["SALT_SECRET"] = "test"
os.environ["GOOGLE_CLIENT_ID"] = "app"
os.environ["REDIRECT_URI"] = "http://localhost:5173/auth/callback"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["SALT_VERIFY_JWT"] = "false"
os.environ["CORS_ORIGINS"] = "*"

# Import app after setting environment
import sys

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

# HS256 key for fabricating provider tokens; signatures are never checked client-side.
PROVIDER_SIGNING_KEY = "test-provider-signing-key-0123456789abcdef"

SAMPLE_PROOF = {
    "proofPoints": {
        "a": ["1", "2", "1"],
        "b": [["3", "4"], ["5", "6"], ["1", "0"]],
        "c": ["7", "8", "1"],
    },
    "issBase64Details": {"value": "wiaXNzIjoiaHR0cHM6Ly9hY2NvdW50cy5nb29nbGUuY29tIiw", "indexMod4": 1},
    "headerBase64": "eyJhbGciOiJSUzI1NiIsImtpZCI6InRlc3QifQ",
}


@pytest.fixture
def app():
    """Create and configure a test Flask application instance."""
    from suitter.config import get_config
    from suitter.factory import create_app

    flask_app = create_app(get_config())
    flask_app.config.update({"TESTING": True})

    with flask_app.app_context():
        yield flask_app


@pytest.fixture
def client(app):
    """Create a test client for the Flask application."""
    return app.test_client()


@pytest.fixture
def make_token():
    """Build identity tokens shaped like the provider's."""
    import jwt

    def _make(sub="user123", aud="app", nonce=None, **extra):
        payload = {"iss": "https://accounts.google.com", "sub": sub, "aud": aud, "email": "user@example.com"}
        if nonce is not None:
            payload["nonce"] = nonce
        payload.update(extra)
        return jwt.encode(payload, PROVIDER_SIGNING_KEY, algorithm="HS256")

    return _make


@pytest.fixture
def sample_proof():
    """Provide a proof artifact shaped like the proving service's response."""
    import copy

    return copy.deepcopy(SAMPLE_PROOF)


@pytest.fixture
def mock_ledger():
    """Mock ledger fullnode reporting epoch 100."""
    ledger = MagicMock()
    ledger.get_current_epoch.return_value = 100
    ledger.execute_transaction_block.return_value = {"digest": "tx-digest", "effects": {"status": {"status": "success"}}}
    return ledger


@pytest.fixture
def mock_salt_service():
    """Salt service that derives salts locally with the test secret."""
    from suitter.zklogin.salt import get_salt

    service = MagicMock()
    service.get_salt.side_effect = lambda token: get_salt(token, "test")
    return service


@pytest.fixture
def mock_prover(sample_proof):
    """Mock proving service returning the sample proof."""
    from suitter.zklogin.prover import ProofArtifact

    prover = MagicMock()
    prover.get_proof.return_value = ProofArtifact(sample_proof)
    return prover


@pytest.fixture
def mock_audit_logger():
    """Mock audit logger for testing."""
    return MagicMock()


@pytest.fixture
def browser_storage():
    """Storage shared by every store in a test, like one browser profile."""
    return {}


@pytest.fixture
def session_store(browser_storage):
    from suitter.zklogin.session import MemorySessionStore

    return MemorySessionStore(storage=browser_storage)


@pytest.fixture
def provider():
    from suitter.zklogin.exchange import IdentityProvider

    return IdentityProvider(client_id="app", redirect_uri="http://localhost:5173/auth/callback")


@pytest.fixture
def flow(session_store, mock_ledger, mock_salt_service, mock_prover, provider, mock_audit_logger):
    """Login flow wired to in-memory storage and mocked services."""
    from suitter.zklogin.flow import ZkLoginFlow

    return ZkLoginFlow(
        store=session_store,
        ledger=mock_ledger,
        salt_service=mock_salt_service,
        prover=mock_prover,
        provider=provider,
        navigate=MagicMock(),
        replace_url=MagicMock(),
        audit=mock_audit_logger,
    )


# Pytest configuration hooks
def pytest_configure(config):
    """Configure pytest with custom settings."""
    config.addinivalue_line("markers", "unit: module-level tests")
    config.addinivalue_line("markers", "integration: HTTP endpoint tests")
    config.addinivalue_line("markers", "slow: tests that take a long time to run")


def pytest_collection_modifyitems(config, items):
    """Modify test collection to add markers automatically."""
    for item in items:
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)

        if "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)
