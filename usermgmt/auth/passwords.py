"""
Password Hashing

bcrypt with one cost factor for the whole process, so hashes written at
signup, reset and change all verify the same way at login.
"""

import bcrypt

# bcrypt's default cost; tinyauth verifies these hashes directly
BCRYPT_ROUNDS = 10

# bcrypt only looks at this many bytes and newer releases refuse longer input
MAX_PASSWORD_BYTES = 72


def password_too_long(password: str) -> bool:
    return len(password.encode("utf-8")) > MAX_PASSWORD_BYTES


def hash_password(password: str) -> str:
    """Hash a password using bcrypt with a fresh salt."""
    salt = bcrypt.gensalt(rounds=BCRYPT_ROUNDS)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """
    Constant-time check of ``password`` against a stored bcrypt hash.

    Malformed or empty hashes verify as False rather than raising.
    """
    if not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False
