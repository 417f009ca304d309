# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Shorty contributors

"""Request and response bodies for the OIDC endpoints."""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

import httpx
from pydantic import BaseModel, Field, field_validator

SLUG_PATTERN = r"^[A-Za-z0-9][A-Za-z0-9_-]*$"


def _validate_issuer(value: str) -> str:
    try:
        url = httpx.URL(value)
    except httpx.InvalidURL as e:
        raise ValueError(f"issuer is not a valid URL: {e}") from e
    if url.scheme not in ("http", "https") or not url.host:
        raise ValueError("issuer must be an absolute http(s) URL")
    return value


class AuthURLRequest(BaseModel):
    return_url: str = ""


class CreateProviderRequest(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    slug: str = Field(min_length=1, max_length=64, pattern=SLUG_PATTERN)
    issuer: str
    client_id: str = Field(min_length=1)
    client_secret: str = Field(min_length=1)
    scopes: str = ""
    enabled: bool = True
    auto_provision: bool = True

    @field_validator("issuer")
    @classmethod
    def issuer_is_http_url(cls, value: str) -> str:
        return _validate_issuer(value)


class UpdateProviderRequest(BaseModel):
    """Partial update; omitted or null fields are left unchanged."""

    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    issuer: Optional[str] = None
    client_id: Optional[str] = Field(default=None, min_length=1)
    client_secret: Optional[str] = Field(default=None, min_length=1)
    scopes: Optional[str] = None
    enabled: Optional[bool] = None
    auto_provision: Optional[bool] = None

    @field_validator("issuer")
    @classmethod
    def issuer_is_http_url(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        return _validate_issuer(value)

    def changes(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)


def to_rfc3339(value: Optional[datetime]) -> Optional[str]:
    """Format a timestamp as RFC 3339 in UTC; naive values are taken as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def public_provider_view(provider) -> Dict[str, Any]:
    return {
        "id": provider.id,
        "name": provider.name,
        "slug": provider.slug,
        "enabled": provider.enabled,
    }


def admin_provider_view(provider) -> Dict[str, Any]:
    """Administrative view of a provider row. The client secret is never included."""
    return {
        "id": provider.id,
        "name": provider.name,
        "slug": provider.slug,
        "issuer": provider.issuer,
        "client_id": provider.client_id,
        "scopes": provider.scopes,
        "enabled": provider.enabled,
        "auto_provision": provider.auto_provision,
        "created_at": to_rfc3339(provider.created_at),
    }
