"""Password hashing and the JWT pair handed out at login.

Access tokens authenticate API calls; refresh tokens only mint new pairs. The
role claim is informational; authorization always reads the stored profile.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import bcrypt
from jose import JWTError, jwt
from pydantic import BaseModel, ValidationError

from .config import settings

ALGORITHM = "HS256"
AUDIENCE = "nest-clients"
ISSUER = "nest"

ACCESS = "access"
REFRESH = "refresh"


class TokenPair(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int


class TokenClaims(BaseModel):
    sub: str
    typ: str
    exp: datetime
    iat: datetime
    aud: str
    iss: str
    role: str | None = None


def hash_password(plain: str) -> str:
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, hashed: str | None) -> bool:
    if not hashed:
        return False
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        # Not a bcrypt hash.
        return False


def _lifetime(token_type: str) -> timedelta:
    if token_type == REFRESH:
        return timedelta(days=settings.JWT_REFRESH_TTL_DAYS)
    return timedelta(minutes=settings.JWT_ACCESS_TTL_MIN)


def _sign(subject: str, token_type: str, role: str | None) -> str:
    issued = datetime.now(tz=timezone.utc)
    claims = {
        "sub": subject,
        "typ": token_type,
        "iat": int(issued.timestamp()),
        "exp": int((issued + _lifetime(token_type)).timestamp()),
        "aud": AUDIENCE,
        "iss": ISSUER,
    }
    if role:
        claims["role"] = role
    return jwt.encode(claims, settings.JWT_SECRET, algorithm=ALGORITHM)


def issue_token_pair(subject: str, role: str | None = None) -> TokenPair:
    return TokenPair(
        access_token=_sign(subject, ACCESS, role),
        refresh_token=_sign(subject, REFRESH, role),
        expires_in=int(_lifetime(ACCESS).total_seconds()),
    )


def decode_token(token: str, *, verify_type: str | None = None) -> TokenClaims:
    """Verify signature, audience, issuer and expiry. Raises ``ValueError``."""

    try:
        raw = jwt.decode(token, settings.JWT_SECRET, algorithms=[ALGORITHM], audience=AUDIENCE, issuer=ISSUER)
        claims = TokenClaims.model_validate(raw)
    except (JWTError, ValidationError) as exc:
        raise ValueError("Invalid token") from exc
    if verify_type and claims.typ != verify_type:
        raise ValueError("Invalid token type")
    return claims
