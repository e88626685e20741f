"""
Password hashing for local accounts.

PBKDF2-SHA512, stored as salt:hash (both hex encoded).
"""

import hashlib
import secrets

ITERATIONS = 10000


def _derive(password: str, salt: str) -> str:
    hash_bytes = hashlib.pbkdf2_hmac(
        "sha512",
        password.encode("utf-8"),
        salt.encode("utf-8"),
        ITERATIONS,
        dklen=64,
    )
    return hash_bytes.hex()


def hash_password(password: str) -> str:
    """Hash a password with a fresh 16-byte salt."""
    salt = secrets.token_hex(16)
    return f"{salt}:{_derive(password, salt)}"


def verify_password(password: str, stored_hash: str) -> bool:
    """Verify a password against its salt:hash string."""
    parts = stored_hash.split(":")
    if len(parts) != 2:
        return False

    salt, expected_hash = parts
    # Constant-time comparison
    return secrets.compare_digest(_derive(password, salt), expected_hash)
