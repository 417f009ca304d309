# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Shorty contributors

"""Setup configuration for the Shorty identity service."""

from pathlib import Path

from setuptools import find_packages, setup

# Read the README file
this_directory = Path(__file__).parent
long_description = (this_directory / "README.md").read_text(encoding="utf-8")

test_requires = [
    "pytest>=7.0.0",
    "pytest-cov>=4.0.0",
]

setup(
    name="shorty-oidc",
    version="0.1.0",
    author="Shorty Contributors",
    description="Federated OIDC login, account linking and session tokens for the Shorty link service",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(include=["shorty_oidc", "shorty_oidc.*", "shorty_logging", "shorty_metrics"]),
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.12",
    ],
    python_requires=">=3.10",
    install_requires=[
        "fastapi>=0.109.0",  # For the auth service HTTP API
        "starlette>=0.49.1",  # For run_in_threadpool and the test client
        "uvicorn>=0.27.0",  # For serving the auth service
        "httpx>=0.27.0",  # For OIDC discovery, token exchange and JWKS fetching
        "PyJWT>=2.8.0",  # For ID token verification and session token minting
        "cryptography>=44.0.1",  # For RSA keys behind RS256
        "pydantic>=2.4.0",  # For state, claims and request validation
        "SQLAlchemy>=2.0.0",  # For users, providers and identity links
        "prometheus-client>=0.19.0",  # For the Prometheus metrics backend
    ],
    extras_require={
        "test": test_requires,
        "dev": test_requires + [
            "pylint>=3.0.0",
            "mypy>=1.0.0",
        ],
    },
)
