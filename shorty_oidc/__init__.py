# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Shorty contributors

"""Shorty OIDC library.

Dynamically configured OpenID Connect providers, round-trip state handling,
ID token verification and session credential minting.

Example:
    >>> from shorty_oidc import ProviderRegistry, StateCodec, new_nonce
    >>> registry = ProviderRegistry(redirect_uri="https://sho.rt/oidc/callback")
    >>> registry.load(configs)
    >>> provider = registry.get(1)
    >>> nonce = new_nonce()
    >>> state = StateCodec().encode(1, "", nonce)
    >>> url = provider.get_authorization_url(state, nonce)
"""

__version__ = "0.1.0"

from .exceptions import (
    AuthenticationError,
    MissingIDTokenError,
    NonceMismatchError,
    OIDCError,
    ProviderError,
    StateError,
    TokenVerificationError,
)
from .jwt_manager import JWTManager
from .models import DEFAULT_SCOPES, Account, IDTokenClaims, ProviderSettings
from .oidc_provider import OIDCProvider, ProviderMetadata
from .registry import ProviderRegistry
from .state import AuthState, StateCodec, new_nonce, verify_nonce

__all__ = [
    "__version__",
    "Account",
    "AuthState",
    "AuthenticationError",
    "DEFAULT_SCOPES",
    "IDTokenClaims",
    "JWTManager",
    "MissingIDTokenError",
    "NonceMismatchError",
    "OIDCError",
    "OIDCProvider",
    "ProviderError",
    "ProviderMetadata",
    "ProviderRegistry",
    "ProviderSettings",
    "StateCodec",
    "StateError",
    "TokenVerificationError",
    "new_nonce",
    "verify_nonce",
]
