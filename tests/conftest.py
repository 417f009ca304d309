# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Shorty contributors

"""Pytest configuration for the shorty library tests."""

import pytest
from shorty_logging import SilentLogger
from shorty_oidc import OIDCProvider

from tests.fixtures import FakeIdentityProvider, mock_identity_providers

REDIRECT_URI = "https://sho.rt/oidc/callback"


@pytest.fixture
def idp():
    """A fake identity provider with a fresh signing key."""
    return FakeIdentityProvider()


@pytest.fixture
def silent_logger():
    return SilentLogger(name="test")


@pytest.fixture
def discovered_provider(idp):
    """An OIDCProvider for ``idp`` that has completed discovery."""
    provider = OIDCProvider(
        provider_id=1,
        issuer=idp.issuer,
        client_id=idp.client_id,
        client_secret="client-secret",
        redirect_uri=REDIRECT_URI,
    )
    with mock_identity_providers(idp):
        provider.discover()
    return provider
