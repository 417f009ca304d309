# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Shorty contributors

"""Identity models shared by the OIDC flow and the session issuer."""

from dataclasses import dataclass
from typing import Any, List

from pydantic import BaseModel, ConfigDict

DEFAULT_SCOPES = ["openid", "profile", "email"]


@dataclass(frozen=True)
class ProviderSettings:
    """Snapshot of a provider's administrative configuration.

    This is what the registry needs to build a runtime provider; it is
    detached from any database session so it can cross thread boundaries.

    Attributes:
        id: Provider identifier (primary key of the provider row)
        slug: URL-safe unique identifier used by clients
        issuer: OIDC issuer URL
        client_id: OAuth client ID
        client_secret: OAuth client secret
        scopes: Space-separated scope string as stored by administrators
        enabled: Whether the provider may be used for logins
        auto_provision: Whether first-time identities may create accounts
    """
    id: int
    slug: str
    issuer: str
    client_id: str
    client_secret: str
    scopes: str = ""
    enabled: bool = True
    auto_provision: bool = True

    @property
    def scope_list(self) -> List[str]:
        """Scopes as a list, falling back to ``openid profile email``."""
        return self.scopes.split() or list(DEFAULT_SCOPES)


class IDTokenClaims(BaseModel):
    """The subset of ID token claims the login flow consumes.

    Unknown claims are ignored. ``email`` is optional here; the callback
    processor enforces that it is present.
    """

    model_config = ConfigDict(extra="ignore", frozen=True)

    sub: str
    email: str = ""
    email_verified: bool = False
    name: str = ""
    given_name: str = ""
    family_name: str = ""
    nonce: str = ""

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "IDTokenClaims":
        """Build claims from a verified ID token payload.

        Null values are treated as absent.
        """
        return cls.model_validate({k: v for k, v in payload.items() if v is not None})


@dataclass
class Account:
    """A local account as seen by the session issuer and API responses.

    Attributes:
        id: Local user ID
        email: Primary email address
        name: Display name
        system_role: "user" or "admin"
        active: False when the account has been deactivated
        has_password: Whether the account can also log in with a password
    """
    id: int
    email: str
    name: str
    system_role: str = "user"
    active: bool = True
    has_password: bool = False

    def to_dict(self) -> dict:
        """Public account summary returned to clients."""
        return {
            "id": self.id,
            "email": self.email,
            "name": self.name,
            "system_role": self.system_role,
            "has_password": self.has_password,
        }
