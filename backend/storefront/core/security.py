"""Password hashing, random secrets and timing-safe comparison."""

import hmac
import re
import secrets

from functools import lru_cache

import bcrypt

from storefront.config import settings

# Lowercase, uppercase, digit and special character, at least 8 characters
PASSWORD_PATTERN = re.compile(r"^(?=.*[a-z])(?=.*[A-Z])(?=.*\d)(?=.*[@$!%*?&])[A-Za-z\d@$!%*?&]{8,}$")

SECOND_FACTOR_CODE_DIGITS = 6


def hash_password(password: str) -> str:
    """Hash password with bcrypt. Bytes truncated to 72 (bcrypt limit); no passlib re-encoding."""
    pwd_bytes = password.encode("utf-8")[:72]
    hashed = bcrypt.hashpw(pwd_bytes, bcrypt.gensalt(rounds=settings.bcrypt_rounds))
    return hashed.decode("utf-8")


@lru_cache(maxsize=1)
def dummy_password_hash() -> str:
    """Hash checked against when the account does not exist, so both paths cost one bcrypt."""
    return hash_password(secrets.token_hex(16))


def verify_password(plain_password: str, password_hash: str) -> bool:
    """Verify password with bcrypt. Plain password truncated to 72 bytes."""
    plain_bytes = plain_password.encode("utf-8")[:72]
    try:
        return bcrypt.checkpw(plain_bytes, password_hash.encode("utf-8"))
    except ValueError:
        # Malformed stored hash
        return False


def is_strong_password(password: str) -> bool:
    return bool(PASSWORD_PATTERN.match(password))


def generate_opaque_token() -> str:
    """256-bit hex string for verify/reset codes."""
    return secrets.token_hex(32)


def generate_csrf_token() -> str:
    return secrets.token_hex(32)


def generate_second_factor_code() -> str:
    """Uniform 6-digit numeric code."""
    return f"{secrets.randbelow(10 ** SECOND_FACTOR_CODE_DIGITS):0{SECOND_FACTOR_CODE_DIGITS}d}"


def constant_time_equals(a: str, b: str) -> bool:
    """Constant-time string comparison; unequal lengths are rejected up front."""
    a_bytes = a.encode("utf-8")
    b_bytes = b.encode("utf-8")
    if len(a_bytes) != len(b_bytes):
        return False
    return hmac.compare_digest(a_bytes, b_bytes)
