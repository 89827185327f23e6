import secrets
from datetime import datetime, timedelta, timezone

from jose import ExpiredSignatureError, JWTError, jwt
from passlib.context import CryptContext

from forum.config import settings
from forum.exceptions import TokenExpired, TokenInvalid

context = CryptContext(schemes=["argon2"], deprecated="auto")


def hash_password(password: str) -> str:
    return context.hash(password)


def verify_password(plain: str, hashed: str) -> bool:
    return context.verify(plain, hashed)


def create_token(user_id: int, username: str, now: datetime | None = None) -> str:
    """
    Sign ``{id, username, exp}`` with the process-wide secret.

    ``exp`` is an absolute Unix time in whole seconds, ``TOKEN_TTL_DAYS``
    after issuance.
    """
    issued = now or datetime.now(timezone.utc)
    expires = issued + timedelta(days=settings.TOKEN_TTL_DAYS)
    claims = {"id": user_id, "username": username, "exp": int(expires.timestamp())}
    return jwt.encode(claims, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def decode_token(token: str) -> dict:
    """Verify signature and expiry; raise TokenExpired / TokenInvalid otherwise."""
    try:
        return jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except ExpiredSignatureError:
        raise TokenExpired()
    except JWTError:
        raise TokenInvalid()


# ---------------------------------------------------------------------------
# Service-to-service credential
# ---------------------------------------------------------------------------

SERVICE_TOKEN_HEADER = "X-Internal-Token"


def verify_service_token(presented: str | None) -> bool:
    """True only when ``INTERNAL_TOKEN`` is configured and *presented* matches it."""
    expected = settings.INTERNAL_TOKEN
    if not expected or not presented:
        return False
    return secrets.compare_digest(presented.encode(), expected.encode())
