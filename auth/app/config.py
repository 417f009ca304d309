# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Shorty contributors

"""Auth service configuration.

Settings come from environment variables. Secrets (JWT_SECRET and the JWT key
paths) are read from Docker secrets mounted under /run/secrets first and fall
back to the environment.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from shorty_logging import create_logger

logger = create_logger(logger_type="stdout", level="INFO", name="auth.config")

DEFAULT_JWT_SECRET = "shorty-dev-secret-change-in-production"
SECRETS_DIR = Path("/run/secrets")


class EnvConfigProvider:
    """Configuration provider that reads from environment variables."""

    def __init__(self, environ: Optional[Dict[str, str]] = None):
        self._environ = environ if environ is not None else os.environ

    def get(self, key: str, default: Any = None) -> Any:
        return self._environ.get(key, default)

    def get_bool(self, key: str, default: bool = False) -> bool:
        value = self._environ.get(key)
        if value is None:
            return default

        value_lower = value.lower()
        if value_lower in ("true", "1", "yes", "on"):
            return True
        if value_lower in ("false", "0", "no", "off"):
            return False
        return default

    def get_int(self, key: str, default: int = 0) -> int:
        value = self._environ.get(key)
        if value is None:
            return default
        try:
            return int(value)
        except ValueError:
            logger.warning("Ignoring non-integer configuration value", key=key)
            return default

    def get_float(self, key: str, default: float = 0.0) -> float:
        value = self._environ.get(key)
        if value is None:
            return default
        try:
            return float(value)
        except ValueError:
            logger.warning("Ignoring non-numeric configuration value", key=key)
            return default


def get_secret_or_env(
    secret_name: str,
    env_var: str,
    env: EnvConfigProvider,
    secrets_dir: Path = SECRETS_DIR,
) -> str | None:
    """Read a secret from the secrets directory, then from the environment.

    Empty values count as unset.
    """
    secret_file = secrets_dir / secret_name
    if secret_file.is_file():
        try:
            content = secret_file.read_text().strip()
        except OSError as e:
            logger.warning("Could not read secret file", secret=secret_name, error=str(e))
        else:
            if content:
                return content

    value = env.get(env_var)
    return value if value else None


@dataclass(frozen=True)
class AuthConfig:
    """Resolved auth service settings."""
    base_url: str = "http://localhost:8080"
    database_url: str = "sqlite:///./shorty.db"
    jwt_algorithm: str = "HS256"
    jwt_secret: str = DEFAULT_JWT_SECRET
    jwt_private_key_path: Optional[str] = None
    jwt_public_key_path: Optional[str] = None
    jwt_key_id: str = "default"
    jwt_issuer: str = "shorty"
    jwt_default_expiry: int = 86400
    oidc_discovery_timeout: float = 10.0
    oidc_http_timeout: float = 10.0
    oidc_clock_skew_seconds: int = 60

    @property
    def redirect_uri(self) -> str:
        return f"{self.base_url.rstrip('/')}/oidc/callback"


def load_auth_config(
    environ: Optional[Dict[str, str]] = None,
    secrets_dir: Path = SECRETS_DIR,
) -> AuthConfig:
    """Load auth service configuration from environment and secrets.

    Args:
        environ: Environment mapping (default: os.environ)
        secrets_dir: Directory holding Docker secrets

    Returns:
        AuthConfig instance
    """
    env = EnvConfigProvider(environ)

    jwt_secret = get_secret_or_env("jwt_secret", "JWT_SECRET", env, secrets_dir)
    if jwt_secret is None:
        jwt_secret = DEFAULT_JWT_SECRET
        logger.warning("JWT_SECRET is not set; using the development default")

    config = AuthConfig(
        base_url=env.get("SHORTY_BASE_URL", "http://localhost:8080"),
        database_url=env.get("DATABASE_URL", "sqlite:///./shorty.db"),
        jwt_algorithm=env.get("JWT_ALGORITHM", "HS256").upper(),
        jwt_secret=jwt_secret,
        jwt_private_key_path=get_secret_or_env(
            "jwt_private_key_path", "JWT_PRIVATE_KEY_PATH", env, secrets_dir
        ),
        jwt_public_key_path=get_secret_or_env(
            "jwt_public_key_path", "JWT_PUBLIC_KEY_PATH", env, secrets_dir
        ),
        jwt_key_id=env.get("JWT_KEY_ID") or "default",
        jwt_issuer=env.get("JWT_ISSUER") or "shorty",
        jwt_default_expiry=env.get_int("JWT_DEFAULT_EXPIRY", 86400),
        oidc_discovery_timeout=env.get_float("OIDC_DISCOVERY_TIMEOUT", 10.0),
        oidc_http_timeout=env.get_float("OIDC_HTTP_TIMEOUT", 10.0),
        oidc_clock_skew_seconds=env.get_int("OIDC_CLOCK_SKEW_SECONDS", 60),
    )

    logger.info(
        "Auth configuration loaded successfully",
        base_url=config.base_url,
        jwt_algorithm=config.jwt_algorithm,
    )
    return config
