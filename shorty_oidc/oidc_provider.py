# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Shorty contributors

"""Runtime OIDC provider: discovery, authorization URL, code exchange and
ID token verification for one configured identity provider.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import httpx
import jwt

from .exceptions import (
    AuthenticationError,
    MissingIDTokenError,
    ProviderError,
    TokenVerificationError,
)
from .models import DEFAULT_SCOPES

SUPPORTED_SIGNING_ALGORITHMS = (
    "RS256", "RS384", "RS512",
    "PS256", "PS384", "PS512",
    "ES256", "ES384", "ES512",
)

# JWK "kty" each signing algorithm family verifies with
ALGORITHM_KEY_TYPES = {"RS": "RSA", "PS": "RSA", "ES": "EC"}


@dataclass(frozen=True)
class ProviderMetadata:
    """Endpoints and capabilities taken from a discovery document."""
    issuer: str
    authorization_endpoint: str
    token_endpoint: str
    jwks_uri: str
    signing_algorithms: tuple[str, ...] = ("RS256",)


class OIDCProvider:
    """A discovered OIDC identity provider bound to one OAuth client.

    Attributes:
        provider_id: ID of the provider configuration this was built from
        issuer: Configured issuer URL
        client_id: OAuth client ID
        client_secret: OAuth client secret
        redirect_uri: Callback URL registered with the provider
        scopes: OAuth scopes to request
        timeout: Timeout for token and JWKS requests, in seconds
        discovery_timeout: Timeout for the discovery request, in seconds
        leeway: Clock skew tolerance for ID token time claims, in seconds
    """

    def __init__(
        self,
        provider_id: int,
        issuer: str,
        client_id: str,
        client_secret: str,
        redirect_uri: str,
        scopes: Optional[List[str]] = None,
        timeout: float = 10.0,
        discovery_timeout: float = 10.0,
        leeway: int = 60,
    ):
        self.provider_id = provider_id
        self.issuer = issuer
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self.scopes = scopes or list(DEFAULT_SCOPES)
        self.timeout = timeout
        self.discovery_timeout = discovery_timeout
        self.leeway = leeway

        # Populated by discover() and _load_jwks()
        self._metadata: Optional[ProviderMetadata] = None
        self._jwks: Optional[jwt.PyJWKSet] = None

    @property
    def discovery_url(self) -> str:
        return f"{self.issuer.rstrip('/')}/.well-known/openid-configuration"

    @property
    def metadata(self) -> ProviderMetadata:
        if self._metadata is None:
            self.discover()
        return self._metadata

    @property
    def is_discovered(self) -> bool:
        return self._metadata is not None

    def discover(self) -> ProviderMetadata:
        """Fetch and validate the provider's discovery document.

        Returns:
            Parsed provider metadata

        Raises:
            ProviderError: If the document cannot be fetched or parsed, lacks
                a required endpoint, or names a different issuer
        """
        try:
            response = httpx.get(self.discovery_url, timeout=self.discovery_timeout)
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise ProviderError(f"OIDC discovery failed for {self.issuer}: {e}") from e
        except ValueError as e:
            raise ProviderError(f"OIDC discovery document for {self.issuer} is not valid JSON") from e

        if not isinstance(data, dict):
            raise ProviderError(f"OIDC discovery document for {self.issuer} is not a JSON object")

        missing = [
            name for name in ("issuer", "authorization_endpoint", "token_endpoint", "jwks_uri")
            if not isinstance(data.get(name), str) or not data.get(name)
        ]
        if missing:
            raise ProviderError(
                f"OIDC discovery document for {self.issuer} is missing: {', '.join(missing)}"
            )

        if data["issuer"].rstrip("/") != self.issuer.rstrip("/"):
            raise ProviderError(
                f"Issuer mismatch: configured {self.issuer}, provider reports {data['issuer']}"
            )

        advertised = data.get("id_token_signing_alg_values_supported") or []
        if not isinstance(advertised, list) or not all(isinstance(a, str) for a in advertised):
            raise ProviderError(
                f"OIDC discovery document for {self.issuer} has a malformed "
                "id_token_signing_alg_values_supported"
            )
        algorithms = tuple(a for a in advertised if a in SUPPORTED_SIGNING_ALGORITHMS) or ("RS256",)

        self._metadata = ProviderMetadata(
            issuer=data["issuer"],
            authorization_endpoint=data["authorization_endpoint"],
            token_endpoint=data["token_endpoint"],
            jwks_uri=data["jwks_uri"],
            signing_algorithms=algorithms,
        )
        self._jwks = None
        return self._metadata

    def get_authorization_url(self, state: str, nonce: str) -> str:
        """Build the URL that sends the user agent to the provider's login page.

        Args:
            state: Encoded round-trip state
            nonce: Nonce the provider must echo in the ID token

        Returns:
            Absolute authorization URL
        """
        params = {
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "response_type": "code",
            "scope": " ".join(self.scopes),
            "state": state,
            "nonce": nonce,
        }
        return str(httpx.URL(self.metadata.authorization_endpoint).copy_merge_params(params))

    def exchange_code_for_token(self, code: str) -> Dict[str, Any]:
        """Exchange an authorization code for the provider's token response.

        Args:
            code: Authorization code from the callback

        Returns:
            Token response (access_token, id_token, ...)

        Raises:
            AuthenticationError: If the token endpoint rejects the exchange or
                returns something other than a JSON object
            ProviderError: If the token endpoint cannot be reached
        """
        try:
            response = httpx.post(
                self.metadata.token_endpoint,
                data={
                    "grant_type": "authorization_code",
                    "code": code,
                    "redirect_uri": self.redirect_uri,
                    "client_id": self.client_id,
                    "client_secret": self.client_secret,
                },
                headers={"Accept": "application/json"},
                timeout=self.timeout,
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise AuthenticationError(
                f"Token exchange failed with status {e.response.status_code}"
            ) from e
        except httpx.HTTPError as e:
            raise ProviderError(f"Token endpoint unavailable: {e}") from e

        try:
            payload = response.json()
        except ValueError as e:
            raise AuthenticationError("Token endpoint returned a non-JSON response") from e

        if not isinstance(payload, dict):
            raise AuthenticationError("Token endpoint returned an unexpected response")
        return payload

    @staticmethod
    def extract_id_token(token_response: Dict[str, Any]) -> str:
        """Return the raw ID token from a token response.

        Raises:
            MissingIDTokenError: If the response has no usable ``id_token``
        """
        id_token = token_response.get("id_token")
        if not isinstance(id_token, str) or not id_token:
            raise MissingIDTokenError("No ID token in response")
        return id_token

    def verify_id_token(self, id_token: str) -> Dict[str, Any]:
        """Verify an ID token's signature and standard claims.

        The signing key is chosen by ``kid`` from the provider's JWKS. An
        unknown ``kid`` triggers one JWKS refresh to pick up rotated keys.
        Tokens without a ``kid`` are tried against every signing key of the
        type their ``alg`` needs.

        Args:
            id_token: Raw ID token

        Returns:
            Verified claims

        Raises:
            TokenVerificationError: If the token is malformed, signed with an
                unexpected algorithm or unknown key, or fails issuer,
                audience or expiry checks
        """
        try:
            header = jwt.get_unverified_header(id_token)
        except jwt.InvalidTokenError as e:
            raise TokenVerificationError(f"Malformed ID token: {e}") from e

        algorithm = header.get("alg")
        if algorithm not in self.metadata.signing_algorithms:
            raise TokenVerificationError(f"Unexpected ID token signing algorithm: {algorithm}")

        last_error: Optional[Exception] = None
        for signing_key in self._signing_keys(header.get("kid"), algorithm):
            try:
                return jwt.decode(
                    id_token,
                    key=signing_key.key,
                    algorithms=[algorithm],
                    audience=self.client_id,
                    issuer=self.metadata.issuer,
                    leeway=self.leeway,
                    options={"require": ["exp", "iss", "aud", "sub"]},
                )
            except (jwt.InvalidSignatureError, jwt.InvalidKeyError, TypeError) as e:
                # Key unusable for this token; try the next candidate
                last_error = e
            except jwt.InvalidTokenError as e:
                raise TokenVerificationError(f"Invalid ID token: {e}") from e

        raise TokenVerificationError(f"Invalid ID token: {last_error}") from last_error

    def _signing_keys(self, kid: Optional[str], algorithm: str) -> List[jwt.PyJWK]:
        keys = self._matching_keys(self._load_jwks(), kid, algorithm)
        if not keys and kid is not None:
            keys = self._matching_keys(self._load_jwks(refresh=True), kid, algorithm)
        if not keys:
            raise TokenVerificationError(f"No signing key found for kid {kid!r}")
        return keys

    @staticmethod
    def _matching_keys(jwks: jwt.PyJWKSet, kid: Optional[str], algorithm: str) -> List[jwt.PyJWK]:
        key_type = ALGORITHM_KEY_TYPES.get(algorithm[:2])
        return [
            key for key in jwks.keys
            if getattr(key, "public_key_use", None) in (None, "sig")
            and (kid is None or key.key_id == kid)
            and key.key_type == key_type
        ]

    def _load_jwks(self, refresh: bool = False) -> jwt.PyJWKSet:
        if self._jwks is not None and not refresh:
            return self._jwks

        try:
            response = httpx.get(self.metadata.jwks_uri, timeout=self.timeout)
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPError as e:
            raise TokenVerificationError(f"Failed to fetch JWKS: {e}") from e
        except ValueError as e:
            raise TokenVerificationError("Provider JWKS is not valid JSON") from e

        if not isinstance(data, dict):
            raise TokenVerificationError("Provider JWKS is not a JSON object")

        try:
            self._jwks = jwt.PyJWKSet.from_dict(data)
        except jwt.PyJWKSetError as e:
            raise TokenVerificationError(f"Provider JWKS is unusable: {e}") from e

        return self._jwks
