# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Shorty contributors

"""Tests for the runtime OIDC provider."""

import json
from unittest.mock import patch

import httpx
import jwt
import pytest
from cryptography.hazmat.primitives.asymmetric import ec
from jwt.algorithms import ECAlgorithm
from shorty_oidc import (
    AuthenticationError,
    MissingIDTokenError,
    OIDCProvider,
    ProviderError,
    TokenVerificationError,
)

from tests.fixtures import FakeIdentityProvider, json_response, mock_identity_providers, parse_authorization_url

REDIRECT_URI = "https://sho.rt/oidc/callback"


def make_provider(idp: FakeIdentityProvider, **kwargs) -> OIDCProvider:
    return OIDCProvider(
        provider_id=1,
        issuer=kwargs.pop("issuer", idp.issuer),
        client_id=kwargs.pop("client_id", idp.client_id),
        client_secret="client-secret",
        redirect_uri=REDIRECT_URI,
        **kwargs,
    )


class TestDiscovery:
    """Tests for OIDC discovery."""

    def test_discover_reads_endpoints(self, idp):
        provider = make_provider(idp)

        with mock_identity_providers(idp) as (get_mock, _):
            metadata = provider.discover()

        assert metadata.issuer == idp.issuer
        assert metadata.authorization_endpoint == idp.authorization_endpoint
        assert metadata.token_endpoint == idp.token_endpoint
        assert metadata.jwks_uri == idp.jwks_uri
        assert metadata.signing_algorithms == ("RS256",)
        assert provider.is_discovered
        get_mock.assert_called_once_with(idp.discovery_url, timeout=10.0)

    def test_discover_uses_configured_timeout(self, idp):
        provider = make_provider(idp, discovery_timeout=2.5)

        with mock_identity_providers(idp) as (get_mock, _):
            provider.discover()

        assert get_mock.call_args.kwargs["timeout"] == 2.5

    def test_discover_tolerates_trailing_slash_on_issuer(self, idp):
        provider = make_provider(idp, issuer=idp.issuer + "/")

        with mock_identity_providers(idp):
            metadata = provider.discover()

        assert metadata.issuer == idp.issuer

    def test_discover_unreachable_issuer(self, idp):
        provider = make_provider(idp, issuer="https://unreachable.example.com")

        with mock_identity_providers(idp):
            with pytest.raises(ProviderError, match="discovery failed"):
                provider.discover()

        assert not provider.is_discovered

    def test_discover_http_error_status(self, idp):
        provider = make_provider(idp)

        with patch("httpx.get", return_value=json_response("GET", idp.discovery_url, {}, 500)):
            with pytest.raises(ProviderError):
                provider.discover()

    def test_discover_non_json_document(self, idp):
        provider = make_provider(idp)
        response = httpx.Response(200, text="<html>", request=httpx.Request("GET", idp.discovery_url))

        with patch("httpx.get", return_value=response):
            with pytest.raises(ProviderError, match="not valid JSON"):
                provider.discover()

    @pytest.mark.parametrize("missing", ["authorization_endpoint", "token_endpoint", "jwks_uri", "issuer"])
    def test_discover_missing_required_field(self, idp, missing):
        idp.discovery_overrides[missing] = None
        provider = make_provider(idp)

        with mock_identity_providers(idp):
            with pytest.raises(ProviderError, match=missing):
                provider.discover()

    def test_discover_issuer_mismatch(self, idp):
        idp.discovery_overrides["issuer"] = "https://evil.example.com"
        provider = make_provider(idp)

        with mock_identity_providers(idp):
            with pytest.raises(ProviderError, match="Issuer mismatch"):
                provider.discover()

    def test_discover_filters_unsupported_algorithms(self, idp):
        idp.discovery_overrides["id_token_signing_alg_values_supported"] = ["none", "HS256", "RS256", "ES256"]
        provider = make_provider(idp)

        with mock_identity_providers(idp):
            metadata = provider.discover()

        assert metadata.signing_algorithms == ("RS256", "ES256")

    @pytest.mark.parametrize("advertised", ["RS256", 5, ["RS256", 5], {"alg": "RS256"}])
    def test_discover_malformed_algorithm_list(self, idp, advertised):
        idp.discovery_overrides["id_token_signing_alg_values_supported"] = advertised
        provider = make_provider(idp)

        with mock_identity_providers(idp):
            with pytest.raises(ProviderError, match="malformed"):
                provider.discover()

        assert not provider.is_discovered


class TestAuthorizationUrl:
    """Tests for authorization URL generation."""

    def test_authorization_url_parameters(self, discovered_provider, idp):
        url = discovered_provider.get_authorization_url(state="state-value", nonce="nonce-value")

        assert url.startswith(idp.authorization_endpoint + "?")
        assert parse_authorization_url(url) == {
            "client_id": idp.client_id,
            "redirect_uri": REDIRECT_URI,
            "response_type": "code",
            "scope": "openid profile email",
            "state": "state-value",
            "nonce": "nonce-value",
        }

    def test_authorization_url_custom_scopes(self, idp):
        provider = make_provider(idp, scopes=["openid", "email", "groups"])

        with mock_identity_providers(idp):
            provider.discover()
        url = provider.get_authorization_url(state="s", nonce="n")

        assert parse_authorization_url(url)["scope"] == "openid email groups"

    def test_authorization_url_keeps_endpoint_query(self, idp):
        idp.discovery_overrides["authorization_endpoint"] = idp.authorization_endpoint + "?tenant=acme"
        provider = make_provider(idp)

        with mock_identity_providers(idp):
            provider.discover()
        params = parse_authorization_url(provider.get_authorization_url(state="s", nonce="n"))

        assert params["tenant"] == "acme"
        assert params["state"] == "s"


class TestCodeExchange:
    """Tests for the authorization code exchange."""

    def test_exchange_posts_form_with_client_credentials(self, discovered_provider, idp):
        code = idp.issue_code(id_token="raw-token")

        with mock_identity_providers(idp) as (_, post_mock):
            response = discovered_provider.exchange_code_for_token(code)

        assert response["id_token"] == "raw-token"
        assert idp.token_requests == [{
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": REDIRECT_URI,
            "client_id": idp.client_id,
            "client_secret": "client-secret",
        }]
        assert post_mock.call_args.args[0] == idp.token_endpoint

    def test_exchange_rejected_code(self, discovered_provider, idp):
        with mock_identity_providers(idp):
            with pytest.raises(AuthenticationError, match="400"):
                discovered_provider.exchange_code_for_token("unknown-code")

    def test_exchange_transport_failure(self, discovered_provider, idp):
        error = httpx.ConnectTimeout("timed out", request=httpx.Request("POST", idp.token_endpoint))

        with patch("httpx.post", side_effect=error):
            with pytest.raises(ProviderError, match="unavailable"):
                discovered_provider.exchange_code_for_token("code")

    def test_exchange_non_json_response(self, discovered_provider, idp):
        response = httpx.Response(200, text="ok", request=httpx.Request("POST", idp.token_endpoint))

        with patch("httpx.post", return_value=response):
            with pytest.raises(AuthenticationError, match="non-JSON"):
                discovered_provider.exchange_code_for_token("code")

    def test_extract_id_token(self):
        assert OIDCProvider.extract_id_token({"id_token": "abc"}) == "abc"

    @pytest.mark.parametrize("response", [{}, {"id_token": ""}, {"id_token": None}, {"id_token": 5}])
    def test_extract_id_token_missing(self, response):
        with pytest.raises(MissingIDTokenError):
            OIDCProvider.extract_id_token(response)


class TestIDTokenVerification:
    """Tests for ID token signature and claim checks."""

    def test_valid_token(self, discovered_provider, idp):
        token = idp.make_id_token(nonce="n-1", sub="alice", email="alice@example.com", name="Alice")

        with mock_identity_providers(idp):
            claims = discovered_provider.verify_id_token(token)

        assert claims["sub"] == "alice"
        assert claims["email"] == "alice@example.com"
        assert claims["nonce"] == "n-1"

    def test_jwks_is_cached(self, discovered_provider, idp):
        with mock_identity_providers(idp):
            discovered_provider.verify_id_token(idp.make_id_token(nonce="a"))
            discovered_provider.verify_id_token(idp.make_id_token(nonce="b"))

        assert idp.jwks_requests == 1

    def test_unknown_kid_refreshes_jwks_once(self, discovered_provider, idp):
        with mock_identity_providers(idp):
            discovered_provider.verify_id_token(idp.make_id_token(nonce="a"))
            idp.rotate_key("key-2")
            claims = discovered_provider.verify_id_token(idp.make_id_token(nonce="b"))

        assert claims["nonce"] == "b"
        assert idp.jwks_requests == 2

    def test_kid_not_published_after_refresh(self, discovered_provider, idp):
        token = idp.make_id_token(nonce="a", kid="never-published")

        with mock_identity_providers(idp):
            with pytest.raises(TokenVerificationError, match="No signing key"):
                discovered_provider.verify_id_token(token)

        assert idp.jwks_requests == 2

    def test_forged_signature(self, discovered_provider, idp):
        forger = FakeIdentityProvider(issuer=idp.issuer, kid=idp.kid)
        token = forger.make_id_token(nonce="a")

        with mock_identity_providers(idp):
            with pytest.raises(TokenVerificationError):
                discovered_provider.verify_id_token(token)

    def test_wrong_audience(self, discovered_provider, idp):
        token = idp.make_id_token(nonce="a", audience="someone-else")

        with mock_identity_providers(idp):
            with pytest.raises(TokenVerificationError, match="(?i)audience"):
                discovered_provider.verify_id_token(token)

    def test_wrong_issuer(self, discovered_provider, idp):
        token = idp.make_id_token(nonce="a", issuer="https://other.example.com")

        with mock_identity_providers(idp):
            with pytest.raises(TokenVerificationError, match="issuer"):
                discovered_provider.verify_id_token(token)

    def test_expired_token(self, discovered_provider, idp):
        token = idp.make_id_token(nonce="a", expires_in=-3600)

        with mock_identity_providers(idp):
            with pytest.raises(TokenVerificationError, match="expired"):
                discovered_provider.verify_id_token(token)

    def test_recently_expired_token_within_leeway(self, discovered_provider, idp):
        token = idp.make_id_token(nonce="a", expires_in=-30)

        with mock_identity_providers(idp):
            claims = discovered_provider.verify_id_token(token)

        assert claims["nonce"] == "a"

    def test_unexpected_algorithm(self, discovered_provider):
        token = jwt.encode({"sub": "x"}, "shared-secret-that-is-long-enough-for-hs256", algorithm="HS256")

        with pytest.raises(TokenVerificationError, match="algorithm"):
            discovered_provider.verify_id_token(token)

    def test_malformed_token(self, discovered_provider):
        with pytest.raises(TokenVerificationError, match="Malformed"):
            discovered_provider.verify_id_token("not-a-jwt")

    def test_token_without_kid_tries_all_keys(self, discovered_provider, idp):
        idp.rotate_key("key-2")
        token = jwt.encode(
            {"iss": idp.issuer, "aud": idp.client_id, "sub": "s", "exp": 9999999999, "nonce": "n"},
            idp.signing_key,
            algorithm="RS256",
        )

        with mock_identity_providers(idp):
            claims = discovered_provider.verify_id_token(token)

        assert claims["sub"] == "s"

    def test_token_without_kid_skips_keys_of_other_types(self, discovered_provider, idp):
        ec_key = ec.generate_private_key(ec.SECP256R1())
        ec_jwk = json.loads(ECAlgorithm.to_jwk(ec_key.public_key()))
        ec_jwk.update({"kid": "ec-1", "use": "sig", "alg": "ES256"})
        idp.extra_jwks.append(ec_jwk)
        token = jwt.encode(
            {"iss": idp.issuer, "aud": idp.client_id, "sub": "s", "exp": 9999999999},
            idp.signing_key,
            algorithm="RS256",
        )

        with mock_identity_providers(idp):
            claims = discovered_provider.verify_id_token(token)

        assert claims["sub"] == "s"

    def test_kid_of_wrong_key_type_is_rejected(self, idp):
        idp.discovery_overrides["id_token_signing_alg_values_supported"] = ["RS256", "ES256"]
        provider = make_provider(idp)
        token = jwt.encode(
            {"iss": idp.issuer, "aud": idp.client_id, "sub": "s", "exp": 9999999999},
            ec.generate_private_key(ec.SECP256R1()),
            algorithm="ES256",
            headers={"kid": idp.kid},
        )

        with mock_identity_providers(idp):
            provider.discover()
            with pytest.raises(TokenVerificationError, match="No signing key"):
                provider.verify_id_token(token)

    def test_jwks_unreachable(self, discovered_provider, idp):
        token = idp.make_id_token(nonce="a")

        with mock_identity_providers():
            with pytest.raises(TokenVerificationError, match="JWKS"):
                discovered_provider.verify_id_token(token)
