# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Shorty contributors

"""Session credential minting and validation.

Supports HS256 with a shared secret (the default) and RS256 with PEM key
files. The key ID is carried in the ``kid`` header for rotation.
"""

import secrets
import time
from pathlib import Path
from typing import Any

import jwt
from cryptography.hazmat.primitives import serialization

from .models import Account


class JWTManager:
    """Mints and validates the application's session JWTs.

    Attributes:
        issuer: Token issuer
        algorithm: JWT signing algorithm ("HS256" or "RS256")
        private_key: Signing key (RSA private key or HMAC secret)
        public_key: Verification key (RSA public key or HMAC secret)
        key_id: Current key ID
        default_expiry: Default token lifetime in seconds
    """

    def __init__(
        self,
        issuer: str = "shorty",
        algorithm: str = "HS256",
        secret_key: str | None = None,
        private_key_path: Path | None = None,
        public_key_path: Path | None = None,
        key_id: str | None = None,
        default_expiry: int = 86400,  # 24 hours
    ):
        """Initialize JWT manager.

        Raises:
            ValueError: If algorithm is unsupported or keys are missing
        """
        self.issuer = issuer
        self.algorithm = algorithm
        self.default_expiry = default_expiry
        self.key_id = key_id or "default"

        if algorithm == "RS256":
            if not private_key_path or not public_key_path:
                raise ValueError("RS256 requires both private_key_path and public_key_path")

            with open(private_key_path, "rb") as f:
                self.private_key = serialization.load_pem_private_key(f.read(), password=None)

            with open(public_key_path, "rb") as f:
                self.public_key = serialization.load_pem_public_key(f.read())

        elif algorithm == "HS256":
            if not secret_key:
                raise ValueError("HS256 requires secret_key")

            self.private_key = secret_key
            self.public_key = secret_key

        else:
            raise ValueError(f"Unsupported algorithm: {algorithm}. Use 'RS256' or 'HS256'")

    def mint_token(
        self,
        account: Account,
        expires_in: int | None = None,
        additional_claims: dict[str, Any] | None = None,
    ) -> str:
        """Mint a session token for an account.

        Args:
            account: Account to issue the token for
            expires_in: Token lifetime in seconds (default: self.default_expiry)
            additional_claims: Additional claims to include

        Returns:
            Signed JWT
        """
        now = int(time.time())
        expiry = expires_in or self.default_expiry

        claims: dict[str, Any] = {
            "iss": self.issuer,
            "sub": str(account.id),
            "exp": now + expiry,
            "iat": now,
            "nbf": now,
            "jti": secrets.token_urlsafe(16),
            "user_id": account.id,
            "email": account.email,
            "system_role": account.system_role,
        }

        if additional_claims:
            claims.update(additional_claims)

        return jwt.encode(
            claims,
            self.private_key,
            algorithm=self.algorithm,
            headers={"kid": self.key_id},
        )

    def validate_token(self, token: str, max_skew_seconds: int = 60) -> dict[str, Any]:
        """Validate and decode a session token.

        Returns:
            Decoded claims

        Raises:
            jwt.InvalidTokenError: If the token is malformed, forged, expired
                or from another issuer
        """
        return jwt.decode(
            token,
            self.public_key,
            algorithms=[self.algorithm],
            issuer=self.issuer,
            leeway=max_skew_seconds,
            options={"require": ["exp", "iss", "sub"]},
        )
