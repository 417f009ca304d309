# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Shorty contributors

"""Pytest configuration for auth service tests."""

import sys
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

# Add the service directory to path so `app` and `main` import
sys.path.insert(0, str(Path(__file__).parent.parent))

from app.config import AuthConfig  # noqa: E402
from app.database import create_db_engine, create_session_factory, init_db  # noqa: E402
from app.service import OIDCService  # noqa: E402
from shorty_logging import SilentLogger  # noqa: E402
from shorty_metrics import NoOpMetricsCollector  # noqa: E402
from shorty_oidc import Account, ProviderRegistry  # noqa: E402

from tests.fixtures import FakeIdentityProvider, mock_identity_providers  # noqa: E402

TEST_JWT_SECRET = "auth-test-secret-key-at-least-32-chars"


@pytest.fixture
def engine():
    """In-memory SQLite database with the schema created."""
    engine = create_db_engine("sqlite://")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


@pytest.fixture
def auth_config():
    return AuthConfig(
        base_url="https://sho.rt",
        database_url="sqlite://",
        jwt_secret=TEST_JWT_SECRET,
    )


@pytest.fixture
def metrics():
    return NoOpMetricsCollector()


@pytest.fixture
def registry_logger():
    return SilentLogger(name="auth.registry")


@pytest.fixture
def service(auth_config, session_factory, metrics, registry_logger):
    """An OIDCService over the in-memory database with no providers loaded."""
    registry = ProviderRegistry(
        redirect_uri=auth_config.redirect_uri,
        leeway=auth_config.oidc_clock_skew_seconds,
        logger=registry_logger,
    )
    return OIDCService(
        config=auth_config,
        session_factory=session_factory,
        registry=registry,
        metrics=metrics,
    )


@pytest.fixture
def idp():
    return FakeIdentityProvider()


@pytest.fixture
def add_provider(service):
    """Create a provider row (and its runtime client) through the service.

    Usage:
        row = add_provider(idp, slug="acme", auto_provision=False)
    """

    def _add(idp, slug="acme", **overrides):
        fields = {
            "name": slug.capitalize(),
            "slug": slug,
            "issuer": idp.issuer,
            "client_id": idp.client_id,
            "client_secret": "client-secret",
        }
        fields.update(overrides)
        with mock_identity_providers(idp):
            row, _ = service.create_provider(**fields)
        return row

    return _add


@pytest.fixture
def client(service):
    """Test client bound to ``service``; the lifespan is not run."""
    import main

    main.auth_service = service
    yield TestClient(main.app)
    main.auth_service = None


def _mint(service, **account_fields):
    return service.jwt_manager.mint_token(Account(**account_fields))


@pytest.fixture
def admin_token(service):
    return _mint(service, id=1, email="admin@example.com", name="Admin", system_role="admin")


@pytest.fixture
def user_token(service):
    return _mint(service, id=2, email="user@example.com", name="User", system_role="user")


@pytest.fixture
def admin_headers(admin_token):
    return {"Authorization": f"Bearer {admin_token}"}
