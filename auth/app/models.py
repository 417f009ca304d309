# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Shorty contributors

"""ORM models for the rows the OIDC login flow reads and writes."""

from datetime import datetime, timezone

from shorty_oidc import Account, ProviderSettings
from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from .database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    name = Column(String(255), nullable=False, default="")
    given_name = Column(String(255), nullable=False, default="")
    family_name = Column(String(255), nullable=False, default="")
    # Empty for accounts that can only log in through an identity provider
    password_hash = Column(String(255), nullable=False, default="")
    system_role = Column(String(32), nullable=False, default="user")
    active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    identities = relationship(
        "OIDCIdentity",
        back_populates="user",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    memberships = relationship(
        "GroupMembership",
        back_populates="user",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def to_account(self) -> Account:
        return Account(
            id=self.id,
            email=self.email,
            name=self.name,
            system_role=self.system_role,
            active=self.active,
            has_password=bool(self.password_hash),
        )


class Group(Base):
    __tablename__ = "groups"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    description = Column(String(1024), nullable=False, default="")

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    memberships = relationship(
        "GroupMembership",
        back_populates="group",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class GroupMembership(Base):
    __tablename__ = "group_memberships"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    group_id = Column(Integer, ForeignKey("groups.id", ondelete="CASCADE"), nullable=False, index=True)
    # "admin" or "member"
    role = Column(String(32), nullable=False, default="member")

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        UniqueConstraint("user_id", "group_id", name="uq_group_membership_user_group"),
    )

    user = relationship("User", back_populates="memberships")
    group = relationship("Group", back_populates="memberships")


class OIDCProviderConfig(Base):
    """An administrator-configured identity provider."""

    __tablename__ = "oidc_providers"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), unique=True, nullable=False)
    slug = Column(String(64), unique=True, nullable=False, index=True)
    issuer = Column(String(1024), nullable=False)
    client_id = Column(String(255), nullable=False)
    client_secret = Column(String(1024), nullable=False)
    scopes = Column(String(1024), nullable=False, default="openid profile email")
    enabled = Column(Boolean, nullable=False, default=True)
    auto_provision = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    identities = relationship("OIDCIdentity", back_populates="provider", passive_deletes=True)

    def to_settings(self) -> ProviderSettings:
        return ProviderSettings(
            id=self.id,
            slug=self.slug,
            issuer=self.issuer,
            client_id=self.client_id,
            client_secret=self.client_secret,
            scopes=self.scopes or "",
            enabled=self.enabled,
            auto_provision=self.auto_provision,
        )


class OIDCIdentity(Base):
    """Link between a local user and a subject at one identity provider.

    (provider_id, subject) is unique: a provider subject maps to at most one
    local user.
    """

    __tablename__ = "oidc_identities"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    provider_id = Column(
        Integer,
        ForeignKey("oidc_providers.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    subject = Column(String(255), nullable=False)
    email = Column(String(255), nullable=False, default="")

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        UniqueConstraint("provider_id", "subject", name="uq_oidc_identity_provider_subject"),
    )

    user = relationship("User", back_populates="identities")
    provider = relationship("OIDCProviderConfig", back_populates="identities")
