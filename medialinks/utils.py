"""
Utility functions for password hashing, id generation and time.
"""

import logging
import secrets
import string
import time

from argon2 import PasswordHasher, exceptions as argon_exc

logger = logging.getLogger(__name__)

ID_ALPHABET = string.ascii_lowercase + string.digits

_ph = PasswordHasher()


def hash_password(password: str) -> str:
    """
    Hash a password with Argon2.

    Every call uses a fresh salt, so equal passwords give different hashes.
    """
    return _ph.hash(password)


def verify_password(password: str, hashed_password: str | None) -> bool:
    """
    Check a password against a stored Argon2 hash.

    Returns:
        True if the password matches, False otherwise (including a
        missing or malformed stored hash)
    """
    try:
        is_valid = _ph.verify(hashed_password or "", password)
    except (argon_exc.VerifyMismatchError, argon_exc.VerificationError, argon_exc.InvalidHashError):
        is_valid = False
    logger.debug(f"Password verification: {'valid' if is_valid else 'invalid'}")
    return is_valid


def create_random_string(length: int) -> str:
    """Generate a random [a-z0-9] string, used for token and media ids."""
    return "".join(secrets.choice(ID_ALPHABET) for _ in range(length))


def current_time_ms() -> int:
    """Milliseconds since the epoch."""
    return int(time.time() * 1000)
