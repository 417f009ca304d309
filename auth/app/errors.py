# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Shorty contributors

"""Service and policy errors raised by the auth service.

Each error carries the HTTP status it maps to.
"""


class AuthServiceError(Exception):
    """Base class for auth service errors."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidCallbackError(AuthServiceError):
    """The callback request is malformed or cannot be matched to a login."""
    status_code = 400


class ProviderNotFoundError(AuthServiceError):
    """No (enabled) provider exists for the requested slug or ID."""
    status_code = 404


class ProviderUnavailableError(AuthServiceError):
    """The provider exists but has no initialized runtime client."""
    status_code = 503


class ProvisioningDisabledError(AuthServiceError):
    """The identity is unknown and the provider does not auto-provision accounts."""
    status_code = 403


class AccountDeactivatedError(AuthServiceError):
    """The resolved account has been deactivated."""
    status_code = 403


class IdentityPersistenceError(AuthServiceError):
    """Linking or provisioning could not be committed."""
    status_code = 500


class ProviderConflictError(AuthServiceError):
    """A provider with the same slug or name already exists."""
    status_code = 409


class UpstreamAuthenticationError(AuthServiceError):
    """The identity provider's token exchange or ID token could not be used."""
    status_code = 500
