from __future__ import annotations

from dataclasses import dataclass, replace
from functools import wraps
from typing import Any, Callable, TypeVar

from flask import Request, g, request

from schoolschedule.errors import AuthenticationError, AuthorizationError
from schoolschedule.repositories import teachers as teachers_repo
from schoolschedule.security import decode_token

ACCESS_COOKIE = "access-token"
REFRESH_COOKIE = "refresh-token"


@dataclass(frozen=True)
class CurrentUser:
    id: str
    email: str
    role: str
    teacher_id: str | None = None


def extract_bearer(req: Request) -> str | None:
    # Authorization: Bearer <token>
    auth = req.headers.get("Authorization", "").strip()
    if not auth:
        return None
    parts = auth.split(None, 1)
    if len(parts) == 2 and parts[0].lower() == "bearer" and parts[1].strip():
        return parts[1].strip()
    return None


def get_current_user() -> CurrentUser:
    tok = request.cookies.get(ACCESS_COOKIE)
    if not tok:
        raise AuthenticationError("missing access token")
    claims = decode_token(tok, "access")
    return CurrentUser(
        id=str(claims["sub"]),
        email=str(claims.get("email") or ""),
        role=str(claims.get("role") or ""),
    )


F = TypeVar("F", bound=Callable[..., Any])


def require_auth(fn: F) -> F:
    @wraps(fn)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        g.current_user = get_current_user()
        return fn(*args, **kwargs)

    return wrapper  # type: ignore[return-value]


def require_teacher(fn: F) -> F:
    """Like require_auth, and the user must be linked to a teacher row."""

    @wraps(fn)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        u: CurrentUser = getattr(g, "current_user", None) or get_current_user()
        teacher_id = teachers_repo.find_teacher_id_by_user(u.id)
        if teacher_id is None:
            raise AuthorizationError("access restricted to teachers only")
        g.current_user = replace(u, teacher_id=teacher_id)
        return fn(*args, **kwargs)

    return wrapper  # type: ignore[return-value]
