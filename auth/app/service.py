# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Shorty contributors

"""OIDC login service.

Coordinates the provider registry, the provider and identity stores and the
session issuer: it starts authorization-code logins, processes callbacks and
applies administrative provider changes to the registry.
"""

import enum
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import httpx
from pydantic import ValidationError
from shorty_logging import create_logger
from shorty_metrics import MetricsCollector, NoOpMetricsCollector
from shorty_oidc import (
    Account,
    AuthenticationError,
    IDTokenClaims,
    JWTManager,
    MissingIDTokenError,
    NonceMismatchError,
    ProviderError,
    ProviderRegistry,
    StateCodec,
    StateError,
    TokenVerificationError,
    new_nonce,
    verify_nonce,
)
from sqlalchemy.orm import Session, sessionmaker

from .config import AuthConfig
from .errors import (
    AccountDeactivatedError,
    AuthServiceError,
    InvalidCallbackError,
    ProviderNotFoundError,
    ProviderUnavailableError,
    UpstreamAuthenticationError,
)
from .identity_store import IdentityStore, ResolutionOutcome
from .models import OIDCProviderConfig
from .provider_store import ProviderStore
from .schemas import public_provider_view

logger = create_logger(logger_type="stdout", level="INFO", name="auth.service")


class CallbackStage(str, enum.Enum):
    """Progress of a single callback; the last stage reached is reported on failure."""
    RECEIVED = "received"
    STATE_DECODED = "state_decoded"
    PROVIDER_RESOLVED = "provider_resolved"
    CODE_EXCHANGED = "code_exchanged"
    TOKEN_VERIFIED = "token_verified"
    NONCE_CHECKED = "nonce_checked"
    CLAIMS_EXTRACTED = "claims_extracted"
    IDENTITY_RESOLVED = "identity_resolved"
    DONE = "done"


@dataclass
class CallbackResult:
    """Outcome of a successful callback.

    Attributes:
        token: Session JWT
        account: The logged-in account
        redirect_url: Where to send the user agent, if the login asked for it
    """
    token: str
    account: Account
    redirect_url: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"token": self.token, "user": self.account.to_dict()}


def append_token(return_url: str, token: str) -> str:
    """Add ``token`` to a return URL, keeping its existing query parameters."""
    try:
        return str(httpx.URL(return_url).copy_add_param("token", token))
    except httpx.InvalidURL as e:
        raise InvalidCallbackError("Invalid return URL") from e


class OIDCService:
    """OIDC login and provider administration.

    Attributes:
        config: Auth service configuration
        providers: Provider configuration store
        identities: Identity resolution store
        registry: Runtime providers by provider ID
        jwt_manager: Session issuer
        stats: Service statistics
    """

    def __init__(
        self,
        config: AuthConfig,
        session_factory: sessionmaker[Session],
        registry: Optional[ProviderRegistry] = None,
        jwt_manager: Optional[JWTManager] = None,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.config = config
        self.providers = ProviderStore(session_factory)
        self.identities = IdentityStore(session_factory)
        self.registry = registry or ProviderRegistry(
            redirect_uri=config.redirect_uri,
            discovery_timeout=config.oidc_discovery_timeout,
            http_timeout=config.oidc_http_timeout,
            leeway=config.oidc_clock_skew_seconds,
            logger=create_logger(logger_type="stdout", level="INFO", name="auth.registry"),
        )
        self.jwt_manager = jwt_manager or self._create_jwt_manager(config)
        self.metrics = metrics or NoOpMetricsCollector()
        self.state_codec = StateCodec()

        self.stats = {
            "logins_total": 0,
            "callbacks_failed": 0,
            "auth_urls_issued": 0,
            "accounts_provisioned": 0,
            "identities_linked": 0,
            "provider_init_failures": 0,
        }
        self._stats_lock = threading.Lock()
        self._ready = False

    @staticmethod
    def _create_jwt_manager(config: AuthConfig) -> JWTManager:
        return JWTManager(
            issuer=config.jwt_issuer,
            algorithm=config.jwt_algorithm,
            secret_key=config.jwt_secret,
            private_key_path=Path(config.jwt_private_key_path) if config.jwt_private_key_path else None,
            public_key_path=Path(config.jwt_public_key_path) if config.jwt_public_key_path else None,
            key_id=config.jwt_key_id,
            default_expiry=config.jwt_default_expiry,
        )

    def initialize(self) -> Dict[int, str]:
        """Load every enabled provider into the registry.

        Providers that fail to initialize are skipped.

        Returns:
            Mapping of provider ID to failure message
        """
        logger.info("Loading OIDC providers...")
        failures = self.registry.load(row.to_settings() for row in self.providers.list_enabled())
        for _ in failures:
            self._record_init_failure()

        self._ready = True
        logger.info(
            "OIDC service initialized",
            providers_loaded=len(self.registry),
            providers_failed=len(failures),
        )
        return failures

    def is_ready(self) -> bool:
        return self._ready

    def get_stats(self) -> Dict[str, Any]:
        with self._stats_lock:
            stats = dict(self.stats)
        stats["providers_loaded"] = len(self.registry)
        return stats

    def _count(self, stat: str) -> None:
        # Handlers run concurrently in the threadpool
        with self._stats_lock:
            self.stats[stat] += 1

    def _record_init_failure(self) -> None:
        self._count("provider_init_failures")
        self.metrics.increment("oidc_provider_init_failed_total")

    def list_public_providers(self) -> List[Dict[str, Any]]:
        return [public_provider_view(row) for row in self.providers.list_enabled()]

    def create_authorization_url(self, slug: str, return_url: str = "") -> str:
        """Start a login with the provider identified by ``slug``.

        Raises:
            ProviderNotFoundError: If no enabled provider has this slug
            ProviderUnavailableError: If the provider is not initialized
        """
        row = self.providers.get_enabled_by_slug(slug)
        if row is None:
            raise ProviderNotFoundError("Provider not found")

        provider = self.registry.get(row.id)
        if provider is None:
            raise ProviderUnavailableError("Provider not configured")

        nonce = new_nonce()
        state = self.state_codec.encode(row.id, return_url or "", nonce)
        try:
            auth_url = provider.get_authorization_url(state, nonce)
        except ProviderError as e:
            raise ProviderUnavailableError("Provider not configured") from e

        self._count("auth_urls_issued")
        self.metrics.increment("oidc_auth_url_issued_total", tags={"provider": row.slug})
        logger.info("Issued authorization URL", provider_id=row.id, slug=row.slug)
        return auth_url

    def handle_callback(
        self,
        state: Optional[str],
        code: Optional[str] = None,
        error: Optional[str] = None,
        error_description: Optional[str] = None,
    ) -> CallbackResult:
        """Complete a login from the provider's redirect back to us.

        Args:
            state: Round-trip state produced by create_authorization_url
            code: Authorization code, absent when the provider reports an error
            error: OAuth error code
            error_description: Human-readable OAuth error description

        Returns:
            CallbackResult with the session token

        Raises:
            AuthServiceError: A subclass describing the failed stage
        """
        stage = CallbackStage.RECEIVED
        try:
            try:
                auth_state = self.state_codec.decode(state)
            except StateError as e:
                raise InvalidCallbackError("Invalid state parameter") from e
            stage = CallbackStage.STATE_DECODED

            provider = self.registry.get(auth_state.provider_id)
            if provider is None:
                raise InvalidCallbackError("Unknown provider")
            stage = CallbackStage.PROVIDER_RESOLVED

            if not code:
                reason = error_description or error or "no authorization code returned"
                raise InvalidCallbackError(f"Authentication failed: {reason}")

            try:
                token_response = provider.exchange_code_for_token(code)
            except (AuthenticationError, ProviderError) as e:
                raise UpstreamAuthenticationError("Failed to exchange token") from e
            stage = CallbackStage.CODE_EXCHANGED

            try:
                id_token = provider.extract_id_token(token_response)
            except MissingIDTokenError as e:
                raise UpstreamAuthenticationError("No ID token in response") from e

            try:
                payload = provider.verify_id_token(id_token)
            except (TokenVerificationError, ProviderError) as e:
                raise UpstreamAuthenticationError("Failed to verify ID token") from e
            stage = CallbackStage.TOKEN_VERIFIED

            try:
                verify_nonce(auth_state.nonce, payload.get("nonce"))
            except NonceMismatchError as e:
                raise InvalidCallbackError("Invalid nonce") from e
            stage = CallbackStage.NONCE_CHECKED

            try:
                claims = IDTokenClaims.from_payload(payload)
            except ValidationError as e:
                raise UpstreamAuthenticationError("Failed to parse claims") from e
            if not claims.email:
                raise InvalidCallbackError("Email not provided by identity provider")
            stage = CallbackStage.CLAIMS_EXTRACTED

            row = self.providers.get(auth_state.provider_id)
            if row is None:
                raise InvalidCallbackError("Unknown provider")

            resolution = self.identities.resolve(
                row.to_settings(),
                subject=claims.sub,
                email=claims.email,
                name=claims.name,
                given_name=claims.given_name,
                family_name=claims.family_name,
            )
            stage = CallbackStage.IDENTITY_RESOLVED
            self._record_resolution(resolution.outcome, row)

            account = resolution.user.to_account()
            if not account.active:
                raise AccountDeactivatedError("User account is deactivated")

            token = self.jwt_manager.mint_token(account)
            redirect_url = append_token(auth_state.return_url, token) if auth_state.return_url else None
            stage = CallbackStage.DONE
        except AuthServiceError as e:
            self._record_callback_failure(stage, e.message)
            raise
        except Exception as e:
            self._record_callback_failure(stage, type(e).__name__)
            raise

        self._count("logins_total")
        self.metrics.increment("oidc_callback_success_total", tags={"provider": row.slug})
        logger.info("OIDC login completed", user_id=account.id, provider_id=row.id)
        return CallbackResult(token=token, account=account, redirect_url=redirect_url)

    def _record_callback_failure(self, stage: CallbackStage, reason: str) -> None:
        self._count("callbacks_failed")
        self.metrics.increment("oidc_callback_failed_total", tags={"stage": stage.value})
        logger.warning("OIDC callback failed", stage=stage.value, reason=reason)

    def _record_resolution(self, outcome: ResolutionOutcome, row: OIDCProviderConfig) -> None:
        if outcome is ResolutionOutcome.PROVISIONED:
            self._count("accounts_provisioned")
            self.metrics.increment("oidc_accounts_provisioned_total", tags={"provider": row.slug})
        if outcome in (ResolutionOutcome.PROVISIONED, ResolutionOutcome.LINKED):
            self._count("identities_linked")
            self.metrics.increment("oidc_identity_links_created_total", tags={"provider": row.slug})

    def validate_session_token(self, token: str) -> Dict[str, Any]:
        """Decode a session JWT issued by this service.

        Raises:
            jwt.InvalidTokenError: If the token is invalid or expired
        """
        return self.jwt_manager.validate_token(token, max_skew_seconds=self.config.oidc_clock_skew_seconds)

    def list_providers_admin(self) -> List[OIDCProviderConfig]:
        return self.providers.list_all()

    def create_provider(self, **fields: Any) -> Tuple[OIDCProviderConfig, Optional[str]]:
        """Create a provider and initialize it if enabled.

        Returns:
            The new row and, if initialization failed, a warning message

        Raises:
            ProviderConflictError: If the slug or name is taken
        """
        row = self.providers.create(**fields)
        failure = self._apply_to_registry(row)
        warning = f"Provider created but failed to initialize: {failure}" if failure else None
        return row, warning

    def update_provider(
        self, provider_id: int, changes: Dict[str, Any]
    ) -> Tuple[OIDCProviderConfig, Optional[str]]:
        """Update a provider and rebuild (or drop) its runtime client.

        Raises:
            ProviderNotFoundError: If the provider does not exist
        """
        row = self.providers.update(provider_id, changes)
        failure = self._apply_to_registry(row)
        warning = f"Provider updated but failed to initialize: {failure}" if failure else None
        return row, warning

    def delete_provider(self, provider_id: int) -> None:
        """Delete a provider and its identity links.

        Raises:
            ProviderNotFoundError: If the provider does not exist
        """
        if self.providers.get(provider_id) is None:
            raise ProviderNotFoundError("Provider not found")

        self.registry.remove(provider_id)
        self.providers.delete(provider_id)

    def _apply_to_registry(self, row: OIDCProviderConfig) -> Optional[str]:
        try:
            self.registry.upsert(row.to_settings())
        except ProviderError as e:
            self._record_init_failure()
            logger.warning(
                "OIDC provider failed to initialize",
                provider_id=row.id,
                slug=row.slug,
                error=str(e),
            )
            return str(e)
        return None
