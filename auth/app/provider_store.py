# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Shorty contributors

"""Persistence for administrator-managed OIDC provider configurations."""

from typing import Any, Dict, List, Optional

from shorty_logging import create_logger
from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from .errors import ProviderConflictError, ProviderNotFoundError
from .models import OIDCIdentity, OIDCProviderConfig

logger = create_logger(logger_type="stdout", level="INFO", name="auth.provider_store")

UPDATABLE_FIELDS = (
    "name",
    "issuer",
    "client_id",
    "client_secret",
    "scopes",
    "enabled",
    "auto_provision",
)


class ProviderStore:
    """CRUD for OIDC provider rows.

    Every method runs in its own short transaction and returns detached rows.
    """

    def __init__(self, session_factory: sessionmaker[Session]):
        self._session_factory = session_factory

    def list_all(self) -> List[OIDCProviderConfig]:
        with self._session_factory() as session:
            return list(session.scalars(select(OIDCProviderConfig).order_by(OIDCProviderConfig.id)))

    def list_enabled(self) -> List[OIDCProviderConfig]:
        with self._session_factory() as session:
            stmt = (
                select(OIDCProviderConfig)
                .where(OIDCProviderConfig.enabled.is_(True))
                .order_by(OIDCProviderConfig.id)
            )
            return list(session.scalars(stmt))

    def get(self, provider_id: int) -> Optional[OIDCProviderConfig]:
        with self._session_factory() as session:
            return session.get(OIDCProviderConfig, provider_id)

    def get_enabled_by_slug(self, slug: str) -> Optional[OIDCProviderConfig]:
        with self._session_factory() as session:
            stmt = select(OIDCProviderConfig).where(
                OIDCProviderConfig.slug == slug,
                OIDCProviderConfig.enabled.is_(True),
            )
            return session.scalars(stmt).first()

    def create(
        self,
        name: str,
        slug: str,
        issuer: str,
        client_id: str,
        client_secret: str,
        scopes: str = "",
        enabled: bool = True,
        auto_provision: bool = True,
    ) -> OIDCProviderConfig:
        """Insert a provider row.

        Raises:
            ProviderConflictError: If the slug or name is already taken
        """
        provider = OIDCProviderConfig(
            name=name,
            slug=slug,
            issuer=issuer,
            client_id=client_id,
            client_secret=client_secret,
            scopes=scopes or "openid profile email",
            enabled=enabled,
            auto_provision=auto_provision,
        )
        try:
            with self._session_factory() as session, session.begin():
                session.add(provider)
        except IntegrityError as e:
            raise ProviderConflictError(
                f"A provider with slug '{slug}' or name '{name}' already exists"
            ) from e

        logger.info("OIDC provider created", provider_id=provider.id, slug=slug)
        return provider

    def update(self, provider_id: int, changes: Dict[str, Any]) -> OIDCProviderConfig:
        """Apply a partial update.

        Args:
            provider_id: Provider to update
            changes: Field values keyed by name; only UPDATABLE_FIELDS are applied

        Raises:
            ProviderNotFoundError: If the provider does not exist
            ProviderConflictError: If a renamed provider collides with another
        """
        try:
            with self._session_factory() as session, session.begin():
                provider = session.get(OIDCProviderConfig, provider_id)
                if provider is None:
                    raise ProviderNotFoundError("Provider not found")

                for field_name in UPDATABLE_FIELDS:
                    if field_name in changes:
                        setattr(provider, field_name, changes[field_name])
        except IntegrityError as e:
            raise ProviderConflictError("A provider with that name already exists") from e

        logger.info(
            "OIDC provider updated",
            provider_id=provider_id,
            fields=sorted(k for k in changes if k in UPDATABLE_FIELDS),
        )
        return provider

    def delete(self, provider_id: int) -> None:
        """Delete a provider and every identity link created through it.

        Raises:
            ProviderNotFoundError: If the provider does not exist
        """
        with self._session_factory() as session, session.begin():
            provider = session.get(OIDCProviderConfig, provider_id)
            if provider is None:
                raise ProviderNotFoundError("Provider not found")

            result = session.execute(
                delete(OIDCIdentity).where(OIDCIdentity.provider_id == provider_id)
            )
            session.delete(provider)

        logger.info(
            "OIDC provider deleted",
            provider_id=provider_id,
            identities_removed=result.rowcount,
        )
