# portal/services/credentials.py
"""
Temporary passwords and one-time invite tokens.

Callers persist only hashes of what is generated here and must never log
the plaintext; it is shown once in an admin response or sent by email.
"""
from datetime import datetime, timedelta
import hashlib
import secrets
import string
from typing import Optional

from portal.core.config import settings

PASSWORD_LENGTH = 12
UPPERCASE = string.ascii_uppercase
LOWERCASE = string.ascii_lowercase
DIGITS = string.digits
SYMBOLS = "!@#$%^&*"
ALPHABET = UPPERCASE + LOWERCASE + DIGITS + SYMBOLS

INVITE_TOKEN_BYTES = 32

_rng = secrets.SystemRandom()


def generate_temporary_password(length: int = PASSWORD_LENGTH) -> str:
    required = [secrets.choice(UPPERCASE), secrets.choice(LOWERCASE), secrets.choice(DIGITS), secrets.choice(SYMBOLS)]
    if length < len(required):
        raise ValueError(f"password length must be at least {len(required)}")
    chars = required + [secrets.choice(ALPHABET) for _ in range(length - len(required))]
    _rng.shuffle(chars)
    return "".join(chars)


def generate_invite_token() -> str:
    return secrets.token_hex(INVITE_TOKEN_BYTES)


def hash_invite_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def invite_expiry(now: Optional[datetime] = None, ttl_hours: Optional[int] = None) -> datetime:
    hours = settings.INVITE_TOKEN_TTL_HOURS if ttl_hours is None else ttl_hours
    return (now or datetime.utcnow()) + timedelta(hours=hours)
