"""Utility helpers for the streaming tracker."""

from __future__ import annotations

import hashlib
import hmac
import math
import secrets
import string
from datetime import datetime, timezone


TOKEN_ALPHABET = string.ascii_letters + string.digits
PASSWORD_SCHEME = "pbkdf2_sha256"
PASSWORD_ITERATIONS = 260_000


def utcnow() -> datetime:
    """Return the current UTC time as a naive datetime, matching stored columns."""

    return datetime.now(timezone.utc).replace(tzinfo=None)


def random_string(length: int) -> str:
    """Return a random alphanumeric token of the requested length."""

    return "".join(secrets.choice(TOKEN_ALPHABET) for _ in range(length))


def hash_password(password: str, *, iterations: int = PASSWORD_ITERATIONS) -> str:
    """Hash a password with a random salt for storage."""

    salt = secrets.token_hex(16)
    digest = hashlib.pbkdf2_hmac(
        "sha256", password.encode("utf-8"), salt.encode("ascii"), iterations
    )
    return f"{PASSWORD_SCHEME}${iterations}${salt}${digest.hex()}"


def verify_password(password: str, encoded: str) -> bool:
    """Return whether ``password`` matches a value produced by :func:`hash_password`."""

    try:
        scheme, raw_iterations, salt, expected = encoded.split("$", 3)
        iterations = int(raw_iterations)
    except ValueError:
        return False
    if scheme != PASSWORD_SCHEME:
        return False
    digest = hashlib.pbkdf2_hmac(
        "sha256", password.encode("utf-8"), salt.encode("ascii"), iterations
    )
    return hmac.compare_digest(digest.hex(), expected)


def page_count(total: int, page_size: int) -> int:
    """Number of pages needed to show ``total`` items, ``page_size`` at a time."""

    if total <= 0 or page_size <= 0:
        return 0
    return math.ceil(total / page_size)


def imdb_title_url(imdb_id: str | None) -> str:
    """Build an IMDB deep link, or an empty string when no id is known."""

    if not imdb_id:
        return ""
    return f"https://www.imdb.com/title/{imdb_id}"
