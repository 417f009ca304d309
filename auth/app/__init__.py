# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Shorty contributors

"""Auth service application package."""

__version__ = "0.1.0"
