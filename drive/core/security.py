"""
Password hashing and session-cookie helpers.
"""
import secrets
from functools import lru_cache
from typing import Optional

import bcrypt
from itsdangerous import BadSignature, Signer

from drive.core.config import get_settings

# bcrypt only looks at the first 72 bytes of a password
BCRYPT_MAX_BYTES = 72


def _password_bytes(password: str) -> bytes:
    return password.encode("utf-8")[:BCRYPT_MAX_BYTES]


def hash_password(password: str, rounds: Optional[int] = None) -> str:
    """Hash a password with a fresh random salt."""
    if rounds is None:
        rounds = get_settings().bcrypt_rounds
    hashed = bcrypt.hashpw(_password_bytes(password), bcrypt.gensalt(rounds=rounds))
    return hashed.decode("utf-8")


def verify_password(password: str, hashed: str) -> bool:
    try:
        return bcrypt.checkpw(_password_bytes(password), hashed.encode("utf-8"))
    except ValueError:
        # Stored value is not a bcrypt hash
        return False


@lru_cache
def dummy_password_hash() -> str:
    """Hash at the configured cost, checked against when the username is unknown."""
    return hash_password(secrets.token_urlsafe(16))


def new_session_token() -> str:
    return secrets.token_urlsafe(32)


def _signer() -> Signer:
    return Signer(get_settings().session_secret, salt="drive-session")


def sign_token(token: str) -> str:
    return _signer().sign(token).decode("utf-8")


def unsign_token(value: Optional[str]) -> Optional[str]:
    """Return the session token inside a cookie value, or None if it was tampered with."""
    if not value:
        return None
    try:
        return _signer().unsign(value).decode("utf-8")
    except BadSignature:
        return None
