# portal/core/security.py
from datetime import datetime, timedelta
from typing import Optional
import hashlib
import secrets
from jose import jwt, JWTError

from portal.core.config import settings
from portal.core.errors import UnauthorizedError

# Password hashing using PBKDF2-HMAC-SHA256
_PBKDF2_ITERATIONS = 100_000

ALGORITHM = "HS256"


def hash_password(password: str) -> str:
    if password is None:
        password = ""
    salt = secrets.token_hex(16)
    dk = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt.encode("utf-8"), _PBKDF2_ITERATIONS)
    return f"pbkdf2_sha256${_PBKDF2_ITERATIONS}${salt}${dk.hex()}"


def verify_password(plain: str, hashed: Optional[str]) -> bool:
    if plain is None:
        plain = ""
    try:
        scheme, iterations, salt, hashhex = (hashed or "").split("$")
        iterations = int(iterations)
    except ValueError:
        return False
    dk = hashlib.pbkdf2_hmac("sha256", plain.encode("utf-8"), salt.encode("utf-8"), iterations)
    return secrets.compare_digest(dk.hex(), hashhex)


def create_access_token(subject: str, role: str, tenant_id: Optional[str] = None,
                        expires_delta: Optional[timedelta] = None) -> str:
    now = datetime.utcnow()
    exp = now + (expires_delta if expires_delta else timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES))
    payload = {"sub": subject, "role": role, "tenant_id": tenant_id, "iat": now, "exp": exp}
    return jwt.encode(payload, settings.SECRET_KEY, algorithm=ALGORITHM)


def decode_access_token(token: str) -> dict:
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError as exc:
        raise UnauthorizedError("Invalid or expired token") from exc
    if not payload.get("sub") or not payload.get("role"):
        raise UnauthorizedError("Invalid or expired token")
    return payload
