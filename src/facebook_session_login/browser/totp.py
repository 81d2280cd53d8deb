from __future__ import annotations

from typing import Callable

import pyotp


# Injected into the login flow; anything returning the current code for a secret will do.
CodeGenerator = Callable[[str], str]


def normalize_secret(secret: str) -> str:
    # Authenticator setup pages show the base32 secret in spaced groups, sometimes lowercase.
    return (secret or "").replace(" ", "").replace("-", "").upper()


def generate_code(secret: str) -> str:
    """
    Current RFC 6238 code (30s step, 6 digits) for a base32 secret.
    """
    normalized = normalize_secret(secret)
    if not normalized:
        raise ValueError("two-factor secret is empty")
    return pyotp.TOTP(normalized).now()


def mask_code(code: str) -> str:
    return f"{code[:2]}****{code[-2:]}" if len(code) >= 4 else "***"
