# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Shorty contributors

"""Round-trip state carried through the identity provider.

The state value is the URL-safe base64 encoding of a JSON object
``{"provider_id", "return_url", "nonce"}``. Nothing is stored server side.
The value is neither encrypted nor signed: the nonce, which the provider
echoes inside the signed ID token, is what binds a callback to the login
that started it.
"""

import base64
import binascii
import hmac
import secrets

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .exceptions import NonceMismatchError, StateError

NONCE_LENGTH = 32


class AuthState(BaseModel):
    """Decoded contents of a state value."""

    model_config = ConfigDict(frozen=True, strict=True)

    provider_id: int = Field(ge=0)
    return_url: str = ""
    nonce: str = Field(min_length=1)


def new_nonce() -> str:
    """Generate an unguessable nonce of NONCE_LENGTH URL-safe characters."""
    return secrets.token_urlsafe(NONCE_LENGTH)[:NONCE_LENGTH]


def verify_nonce(expected: str, actual: object) -> None:
    """Check an ID token nonce claim against the nonce bound into the state.

    Raises:
        NonceMismatchError: If the claim is missing or differs
    """
    if not isinstance(actual, str) or not hmac.compare_digest(
        expected.encode("utf-8"), actual.encode("utf-8")
    ):
        raise NonceMismatchError("ID token nonce does not match the login request")


class StateCodec:
    """Encode and decode the opaque OAuth ``state`` parameter."""

    def encode(self, provider_id: int, return_url: str, nonce: str) -> str:
        """Encode a state triple into a URL-safe string.

        Raises:
            StateError: If the triple itself is invalid (e.g. empty nonce)
        """
        try:
            state = AuthState(provider_id=provider_id, return_url=return_url or "", nonce=nonce)
        except ValidationError as e:
            raise StateError(f"Invalid state fields: {e.error_count()} error(s)") from e
        return base64.urlsafe_b64encode(state.model_dump_json().encode("utf-8")).decode("ascii")

    def decode(self, token: str | None) -> AuthState:
        """Decode a state string produced by :meth:`encode`.

        Missing padding is tolerated and unknown JSON fields are ignored.

        Raises:
            StateError: If the value is empty, not base64, not JSON, or does
                not carry a valid provider id and nonce
        """
        if not token:
            raise StateError("State parameter is missing")

        try:
            padded = token + "=" * (-len(token) % 4)
            raw = base64.b64decode(padded.encode("ascii"), altchars=b"-_", validate=True)
        except (binascii.Error, UnicodeEncodeError) as e:
            raise StateError("State parameter is not valid base64") from e

        try:
            text = raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise StateError("State parameter is not valid UTF-8") from e

        try:
            return AuthState.model_validate_json(text)
        except ValidationError as e:
            raise StateError(f"State parameter is malformed: {e.error_count()} error(s)") from e
