# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Shorty contributors

"""In-process stand-in for an OIDC identity provider.

The fake signs real RS256 ID tokens with a generated key and answers the
discovery, JWKS and token requests that the runtime provider makes through
``httpx.get`` / ``httpx.post``.
"""

import json
import secrets
import time
from contextlib import contextmanager
from typing import Any, Dict, List, Optional
from unittest.mock import patch

import httpx
import jwt
from cryptography.hazmat.primitives.asymmetric import rsa
from jwt.algorithms import RSAAlgorithm


def json_response(method: str, url: str, payload: Any, status_code: int = 200) -> httpx.Response:
    return httpx.Response(status_code, json=payload, request=httpx.Request(method, url))


def parse_authorization_url(auth_url: str) -> Dict[str, str]:
    """Return the query parameters of an authorization URL as a plain dict."""
    return dict(httpx.URL(auth_url).params)


def _generate_key() -> rsa.RSAPrivateKey:
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


class FakeIdentityProvider:
    """A scripted OIDC provider.

    Attributes:
        issuer: Issuer URL announced in discovery and ID tokens
        client_id: The only audience the provider issues tokens for
        kid: Key ID of the current signing key
        codes: Token responses keyed by authorization code
        token_requests: Form bodies posted to the token endpoint
        jwks_requests: Number of JWKS fetches served
        extra_jwks: Additional JWKs published ahead of the RSA signing keys
    """

    def __init__(
        self,
        issuer: str = "https://idp.example.com",
        client_id: str = "shorty-client",
        kid: str = "key-1",
    ):
        self.issuer = issuer
        self.client_id = client_id
        self.kid = kid
        self.signing_key = _generate_key()
        self.published_keys: Dict[str, rsa.RSAPrivateKey] = {kid: self.signing_key}

        self.discovery_overrides: Dict[str, Any] = {}
        self.codes: Dict[str, Dict[str, Any]] = {}
        self.token_requests: List[Dict[str, Any]] = []
        self.jwks_requests = 0
        self.extra_jwks: List[Dict[str, Any]] = []

    @property
    def discovery_url(self) -> str:
        return f"{self.issuer}/.well-known/openid-configuration"

    @property
    def authorization_endpoint(self) -> str:
        return f"{self.issuer}/authorize"

    @property
    def token_endpoint(self) -> str:
        return f"{self.issuer}/token"

    @property
    def jwks_uri(self) -> str:
        return f"{self.issuer}/jwks"

    def discovery_document(self) -> Dict[str, Any]:
        document = {
            "issuer": self.issuer,
            "authorization_endpoint": self.authorization_endpoint,
            "token_endpoint": self.token_endpoint,
            "jwks_uri": self.jwks_uri,
            "userinfo_endpoint": f"{self.issuer}/userinfo",
            "id_token_signing_alg_values_supported": ["RS256"],
        }
        document.update(self.discovery_overrides)
        return document

    def jwks(self) -> Dict[str, Any]:
        keys = []
        for kid, private_key in self.published_keys.items():
            jwk = json.loads(RSAAlgorithm.to_jwk(private_key.public_key()))
            jwk.update({"kid": kid, "use": "sig", "alg": "RS256"})
            keys.append(jwk)
        return {"keys": self.extra_jwks + keys}

    def rotate_key(self, kid: str) -> None:
        """Start signing with a new key and publish it alongside the old ones."""
        self.kid = kid
        self.signing_key = _generate_key()
        self.published_keys[kid] = self.signing_key

    def make_id_token(
        self,
        nonce: Optional[str] = None,
        sub: str = "subject-123",
        email: Optional[str] = "user@example.com",
        audience: Optional[str] = None,
        issuer: Optional[str] = None,
        expires_in: int = 300,
        signing_key: Optional[rsa.RSAPrivateKey] = None,
        kid: Optional[str] = None,
        **extra_claims: Any,
    ) -> str:
        now = int(time.time())
        claims: Dict[str, Any] = {
            "iss": issuer or self.issuer,
            "sub": sub,
            "aud": audience or self.client_id,
            "iat": now,
            "exp": now + expires_in,
        }
        if nonce is not None:
            claims["nonce"] = nonce
        if email is not None:
            claims["email"] = email
        claims.update(extra_claims)

        return jwt.encode(
            claims,
            signing_key or self.signing_key,
            algorithm="RS256",
            headers={"kid": kid or self.kid},
        )

    def issue_code(self, id_token: Optional[str] = None, **token_fields: Any) -> str:
        """Register an authorization code and the token response it redeems for."""
        code = secrets.token_urlsafe(12)
        response: Dict[str, Any] = {"access_token": "access-" + code, "token_type": "Bearer"}
        if id_token is not None:
            response["id_token"] = id_token
        response.update(token_fields)
        self.codes[code] = response
        return code

    def handles(self, url: str) -> bool:
        return url.startswith(self.issuer + "/")

    def get(self, url: str) -> httpx.Response:
        if url == self.discovery_url:
            return json_response("GET", url, self.discovery_document())
        if url == self.jwks_uri:
            self.jwks_requests += 1
            return json_response("GET", url, self.jwks())
        return json_response("GET", url, {"error": "not_found"}, status_code=404)

    def post(self, url: str, data: Dict[str, Any]) -> httpx.Response:
        self.token_requests.append(dict(data))
        if url != self.token_endpoint:
            return json_response("POST", url, {"error": "not_found"}, status_code=404)
        if data.get("client_id") != self.client_id or data.get("code") not in self.codes:
            return json_response("POST", url, {"error": "invalid_grant"}, status_code=400)
        return json_response("POST", url, self.codes.pop(data["code"]))


@contextmanager
def mock_identity_providers(*providers: FakeIdentityProvider):
    """Route ``httpx.get`` / ``httpx.post`` to fake providers.

    Requests to any other host fail with ``httpx.ConnectError``, which is how
    an unreachable issuer looks to the runtime provider.
    """

    def route(url: str) -> Optional[FakeIdentityProvider]:
        for provider in providers:
            if provider.handles(str(url)):
                return provider
        return None

    def fake_get(url, **kwargs):
        provider = route(url)
        if provider is None:
            raise httpx.ConnectError("Connection refused", request=httpx.Request("GET", str(url)))
        return provider.get(str(url))

    def fake_post(url, data=None, **kwargs):
        provider = route(url)
        if provider is None:
            raise httpx.ConnectError("Connection refused", request=httpx.Request("POST", str(url)))
        return provider.post(str(url), data or {})

    with patch("httpx.get", side_effect=fake_get) as get_mock, \
            patch("httpx.post", side_effect=fake_post) as post_mock:
        yield get_mock, post_mock
