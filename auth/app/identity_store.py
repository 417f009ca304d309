# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Shorty contributors

"""Identity resolution: map a verified provider identity to a local account.

Resolution order, first match wins:

1. An existing link for (provider, subject) returns its user.
2. A user with the same email gets a new link to this provider.
3. Otherwise a new account is provisioned, if the provider allows it,
   together with its link and a personal group the user administers. The
   account, link, group and membership are written in one transaction.

A unique-constraint violation means a concurrent first login for the same
subject or email won the race; the lookup is run once more, which then finds
the winner's rows.
"""

import enum
from dataclasses import dataclass

from shorty_logging import create_logger
from shorty_oidc import ProviderSettings
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from .errors import IdentityPersistenceError, ProvisioningDisabledError
from .models import Group, GroupMembership, OIDCIdentity, User

logger = create_logger(logger_type="stdout", level="INFO", name="auth.identity_store")


class ResolutionOutcome(str, enum.Enum):
    EXISTING = "existing"
    LINKED = "linked"
    PROVISIONED = "provisioned"


@dataclass
class Resolution:
    user: User
    outcome: ResolutionOutcome


def display_name_for(email: str, name: str = "", given_name: str = "", family_name: str = "") -> str:
    """Pick a display name: ``name``, then given + family name, then the email local part."""
    if name:
        return name
    full_name = f"{given_name} {family_name}".strip()
    if full_name:
        return full_name
    return email.split("@", 1)[0]


class IdentityStore:
    """Resolves provider identities to local users."""

    def __init__(self, session_factory: sessionmaker[Session]):
        self._session_factory = session_factory

    def resolve(
        self,
        provider: ProviderSettings,
        subject: str,
        email: str,
        name: str = "",
        given_name: str = "",
        family_name: str = "",
    ) -> Resolution:
        """Find, link or provision the local user for a provider identity.

        Raises:
            ProvisioningDisabledError: If no account matches and the provider
                does not auto-provision
            IdentityPersistenceError: If the database writes fail
        """
        for attempt in (1, 2):
            try:
                resolution = self._resolve_once(provider, subject, email, name, given_name, family_name)
            except IntegrityError as e:
                if attempt == 1:
                    logger.info(
                        "Concurrent login created the same identity; retrying lookup",
                        provider_id=provider.id,
                    )
                    continue
                raise IdentityPersistenceError("Failed to link identity") from e
            except SQLAlchemyError as e:
                raise IdentityPersistenceError("Failed to resolve identity") from e

            if resolution.outcome is not ResolutionOutcome.EXISTING:
                logger.info(
                    "Identity resolved",
                    outcome=resolution.outcome.value,
                    user_id=resolution.user.id,
                    provider_id=provider.id,
                )
            return resolution

        raise IdentityPersistenceError("Failed to resolve identity")

    def _resolve_once(
        self,
        provider: ProviderSettings,
        subject: str,
        email: str,
        name: str,
        given_name: str,
        family_name: str,
    ) -> Resolution:
        with self._session_factory() as session, session.begin():
            link = session.scalars(
                select(OIDCIdentity).where(
                    OIDCIdentity.provider_id == provider.id,
                    OIDCIdentity.subject == subject,
                )
            ).first()
            if link is not None:
                user = session.get(User, link.user_id)
                if user is not None:
                    return Resolution(user, ResolutionOutcome.EXISTING)

            user = session.scalars(select(User).where(User.email == email)).first()
            if user is not None:
                session.add(OIDCIdentity(
                    user_id=user.id,
                    provider_id=provider.id,
                    subject=subject,
                    email=email,
                ))
                return Resolution(user, ResolutionOutcome.LINKED)

            if not provider.auto_provision:
                raise ProvisioningDisabledError(
                    "No account exists for this identity and the provider does not provision accounts"
                )

            user = self._provision(session, provider, subject, email, name, given_name, family_name)
            return Resolution(user, ResolutionOutcome.PROVISIONED)

    @staticmethod
    def _provision(
        session: Session,
        provider: ProviderSettings,
        subject: str,
        email: str,
        name: str,
        given_name: str,
        family_name: str,
    ) -> User:
        display_name = display_name_for(email, name, given_name, family_name)

        user = User(
            email=email,
            name=display_name,
            given_name=given_name,
            family_name=family_name,
            password_hash="",
            system_role="user",
            active=True,
        )
        group = Group(
            name=f"{display_name}'s Links",
            description=f"Personal links for {display_name}",
        )
        session.add_all([user, group])
        session.flush()

        session.add_all([
            OIDCIdentity(user_id=user.id, provider_id=provider.id, subject=subject, email=email),
            GroupMembership(user_id=user.id, group_id=group.id, role="admin"),
        ])
        return user
