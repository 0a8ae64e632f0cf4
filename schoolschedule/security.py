"""
Password hashing (bcrypt) and signed token pairs (PyJWT, HS256).
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Literal

import bcrypt
import jwt

from schoolschedule import config
from schoolschedule.errors import AuthenticationError

TokenType = Literal["access", "refresh"]


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str

    def to_dict(self) -> dict[str, str]:
        return {"accessToken": self.access_token, "refreshToken": self.refresh_token}


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("ascii")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # malformed / non-bcrypt hash in the users table
        return False


def _encode(user_id: str, email: str, role: str, token_type: TokenType, ttl: int, now: datetime) -> str:
    payload = {
        "sub": user_id,
        "email": email,
        "role": role,
        "type": token_type,
        "iat": now,
        "exp": now + timedelta(seconds=ttl),
    }
    return jwt.encode(payload, config.JWT_SECRET, algorithm=config.JWT_ALGORITHM)


def issue_token_pair(user_id: str, email: str, role: str) -> TokenPair:
    now = datetime.now(timezone.utc)
    return TokenPair(
        access_token=_encode(user_id, email, role, "access", config.ACCESS_TOKEN_TTL, now),
        refresh_token=_encode(user_id, email, role, "refresh", config.REFRESH_TOKEN_TTL, now),
    )


def decode_token(token: str, expected_type: TokenType) -> dict[str, Any]:
    try:
        claims = jwt.decode(token, config.JWT_SECRET, algorithms=[config.JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise AuthenticationError("token has expired") from None
    except jwt.InvalidTokenError:
        raise AuthenticationError("invalid token") from None

    if claims.get("type") != expected_type:
        raise AuthenticationError(f"wrong token type, expected {expected_type}")
    if not claims.get("sub"):
        raise AuthenticationError("invalid token")
    return claims
