# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Shorty contributors

"""Exceptions raised by the OIDC protocol layer.

The hierarchy separates configuration problems (a provider that cannot be
reached or is misconfigured), malformed client input (state, nonce) and
upstream protocol failures (code exchange, ID-token verification) so callers
can map each family to a different response.
"""


class OIDCError(Exception):
    """Base class for all OIDC protocol errors."""
    pass


class ProviderError(OIDCError):
    """Raised when an identity provider is unreachable or misconfigured.

    Covers discovery failures, issuer mismatches and transport errors while
    talking to the provider's endpoints.
    """
    pass


class AuthenticationError(OIDCError):
    """Raised when the provider rejects or mangles an authentication exchange."""
    pass


class MissingIDTokenError(AuthenticationError):
    """Raised when a token response does not carry an ID token."""
    pass


class TokenVerificationError(AuthenticationError):
    """Raised when an ID token fails signature, issuer, audience or expiry checks."""
    pass


class StateError(OIDCError):
    """Raised when a round-trip state value cannot be decoded."""
    pass


class NonceMismatchError(OIDCError):
    """Raised when the ID token nonce does not match the one bound into the state."""
    pass
