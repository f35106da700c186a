"""Secret hashing for passwords and one-time codes.

Both kinds of secret go through bcrypt; only the work factor differs.
Passwords use settings.password_hash_rounds (12 by default). Codes use the
much cheaper settings.code_hash_rounds because they are six digits, live for
minutes, and are cleared on first use.

Comparisons never raise on mismatch: a wrong secret and a corrupt stored hash
both return False.
"""

import functools
import logging
import secrets

import bcrypt

from app.core.config import settings

logger = logging.getLogger(__name__)

# bcrypt only reads the first 72 bytes of its input
_BCRYPT_MAX_BYTES = 72


def _hash(secret: str, rounds: int) -> str:
    salt = bcrypt.gensalt(rounds=rounds)
    return bcrypt.hashpw(secret.encode()[:_BCRYPT_MAX_BYTES], salt).decode()


def _check(secret: str, hashed: str | None) -> bool:
    if not hashed:
        return False
    try:
        return bcrypt.checkpw(secret.encode()[:_BCRYPT_MAX_BYTES], hashed.encode())
    except ValueError:
        # Corrupt or non-bcrypt value in storage
        logger.warning("Stored hash is not a valid bcrypt hash")
        return False


def hash_password(password: str) -> str:
    """Hash a password for storage.

    Args:
        password: Plain-text password.

    Returns:
        bcrypt hash string (salt and cost embedded).

    Raises:
        ValueError: If the configured work factor is outside bcrypt's range.
    """
    return _hash(password, settings.password_hash_rounds)


def verify_password(password: str, hashed: str | None) -> bool:
    """Constant-time check of a password against its stored hash."""
    return _check(password, hashed)


def hash_code(code: str) -> str:
    """Hash a one-time code with the low code work factor."""
    return _hash(code, settings.code_hash_rounds)


def verify_code(code: str, hashed: str | None) -> bool:
    """Constant-time check of a one-time code against its stored hash."""
    return _check(code, hashed)


@functools.cache
def _dummy_hash(rounds: int) -> str:
    return _hash("dummy-password-for-timing", rounds)


def dummy_password_hash() -> str:
    """bcrypt hash at the configured password cost, matching no real password.

    Built once per work factor, so the dummy comparison always costs the same
    as a comparison against a stored password hash.
    """
    return _dummy_hash(settings.password_hash_rounds)


def burn_dummy_check(password: str) -> None:
    """Spend one password-cost bcrypt comparison against the dummy hash.

    Called on login paths where no account (or no password) exists so the
    response takes as long as a real comparison would.
    """
    _check(password, dummy_password_hash())


def generate_numeric_code(length: int) -> str:
    """Generate a uniformly random numeric code of exactly ``length`` digits.

    Leading zeros are kept, so "004211" is a valid six-digit code.
    """
    if length <= 0:
        msg = f"Code length must be positive, got {length}"
        raise ValueError(msg)
    return "".join(secrets.choice("0123456789") for _ in range(length))
