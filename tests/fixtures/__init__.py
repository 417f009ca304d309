# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Shorty contributors

"""Shared test helpers for exercising the OIDC flow without a network.

Usage:
    from tests.fixtures import FakeIdentityProvider, mock_identity_providers

    idp = FakeIdentityProvider(issuer="https://idp.example.com")
    with mock_identity_providers(idp):
        provider.discover()
"""

from .oidc_fixtures import (  # noqa: F401
    FakeIdentityProvider,
    json_response,
    mock_identity_providers,
    parse_authorization_url,
)

__all__ = [
    "FakeIdentityProvider",
    "json_response",
    "mock_identity_providers",
    "parse_authorization_url",
]
