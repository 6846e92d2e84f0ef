"""PKCE verifier, S256 challenge and correlation state helpers."""

from __future__ import annotations

import base64
import hashlib
import secrets
import string

VERIFIER_ALPHABET = string.ascii_letters + string.digits + "-._~"
MIN_VERIFIER_LENGTH = 43
MAX_VERIFIER_LENGTH = 128
DEFAULT_VERIFIER_LENGTH = 64
STATE_BYTES = 16


def new_verifier(length: int = DEFAULT_VERIFIER_LENGTH) -> str:
    if not MIN_VERIFIER_LENGTH <= length <= MAX_VERIFIER_LENGTH:
        raise ValueError(
            f"PKCE verifier length must be between {MIN_VERIFIER_LENGTH} "
            f"and {MAX_VERIFIER_LENGTH}, got {length}."
        )
    return "".join(secrets.choice(VERIFIER_ALPHABET) for _ in range(length))


def challenge_for(verifier: str) -> str:
    digest = hashlib.sha256(verifier.encode("ascii")).digest()
    return base64.urlsafe_b64encode(digest).decode("ascii").rstrip("=")


def new_state() -> str:
    # Correlation key only; the verifier is the secret.
    return secrets.token_hex(STATE_BYTES)
