"""
Member password utilities: generation, bcrypt hashing and verification.
"""

import logging
import secrets
import string

import bcrypt

logger = logging.getLogger(__name__)

DEFAULT_PASSWORD_LENGTH = 10

LOWERCASE = string.ascii_lowercase
UPPERCASE = string.ascii_uppercase
DIGITS = string.digits
SYMBOLS = "!@#$%^&*()_+"
CHARSET = LOWERCASE + UPPERCASE + DIGITS + SYMBOLS


def generate_secure_password(length: int = DEFAULT_PASSWORD_LENGTH) -> str:
    """
    Generate a random password from the OS CSPRNG.

    The result always holds at least one lowercase letter, one uppercase
    letter, one digit and one symbol.

    Args:
        length: Password length (minimum 4)

    Returns:
        Random password string
    """
    if length < 4:
        raise ValueError("Password length must be at least 4")

    chars = [
        secrets.choice(LOWERCASE),
        secrets.choice(UPPERCASE),
        secrets.choice(DIGITS),
        secrets.choice(SYMBOLS),
    ]
    chars.extend(secrets.choice(CHARSET) for _ in range(length - 4))
    secrets.SystemRandom().shuffle(chars)
    return "".join(chars)


def hash_password(password: str, rounds: int = 10) -> str:
    """
    Hash password using bcrypt

    Args:
        password: Plain text password
        rounds: bcrypt cost factor

    Returns:
        bcrypt hash as text
    """
    salt = bcrypt.gensalt(rounds=rounds)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """
    Verify password against a stored bcrypt hash.

    A malformed hash or an over-long password counts as a mismatch.
    """
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError as e:
        logger.warning(f"Password hash check rejected input: {e}")
        return False
