"""
Business rules that sit between the HTTP layer and the repositories:
grade derivation for classes, credential checks and token issuing.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Any

from schoolschedule.errors import AuthenticationError, GradeRangeError, GradeSyntaxError, ValidationError
from schoolschedule.models import SchoolClass, ScheduleDay
from schoolschedule.repositories import classes as classes_repo
from schoolschedule.repositories import teachers as teachers_repo
from schoolschedule.repositories import users as users_repo
from schoolschedule.security import decode_token, issue_token_pair, verify_password

log = logging.getLogger(__name__)

MIN_GRADE = 1
MAX_GRADE = 11

_BAD_CREDENTIALS = "invalid email or password"


def extract_grade(name: str) -> int:
    """
    Grade of a class from its name: every decimal digit, in order, read as one
    number. "10А" -> 10, "5Б" -> 5; "Б" has no digits, "15A" is out of range.
    """
    digits = "".join(ch for ch in name if "0" <= ch <= "9")
    if not digits:
        raise GradeSyntaxError(f"class name {name!r} contains no grade number", field="name")
    significant = digits.lstrip("0")
    if len(significant) > len(str(MAX_GRADE)):
        raise GradeRangeError(
            f"grade {significant[:8]}... is out of range {MIN_GRADE}..{MAX_GRADE}",
            field="name",
        )
    grade = int(significant or "0")
    if grade < MIN_GRADE or grade > MAX_GRADE:
        raise GradeRangeError(
            f"grade {grade} is out of range {MIN_GRADE}..{MAX_GRADE}",
            field="name",
        )
    return grade


def create_class(name: str) -> SchoolClass:
    name = (name or "").strip()
    if not name:
        raise ValidationError("name is required", field="name")
    return classes_repo.create_class(name, extract_grade(name))


def bulk_update_classes(items: Any) -> int:
    """Validate the whole payload, then apply it; grade follows the (possibly new) name."""
    updates = classes_repo.parse_class_updates(items)
    updates = [replace(u, grade_level=extract_grade(u.name)) for u in updates]
    return classes_repo.bulk_update_classes(updates)


def bulk_update_teachers(items: Any) -> int:
    return teachers_repo.bulk_update_teachers(teachers_repo.parse_teacher_updates(items))


def _session_payload(user_id: str, email: str, role: str) -> dict[str, Any]:
    pair = issue_token_pair(user_id, email, role)
    out = pair.to_dict()
    out["user"] = {
        "id": user_id,
        "email": email,
        "role": role,
        "name": users_repo.get_display_name(user_id),
    }
    return out


def login(email: str, password: str) -> dict[str, Any]:
    """
    Returns {accessToken, refreshToken, user}. Unknown email and wrong password
    fail with the same message.
    """
    email = (email or "").strip()
    if not email or not password:
        raise ValidationError("email and password are required", field="email")

    user = users_repo.get_user_by_email(email)
    if user is None or not verify_password(password, user.password_hash):
        log.warning("Failed login for %s", email)
        raise AuthenticationError(_BAD_CREDENTIALS)

    log.info("User %s logged in", user.id)
    return _session_payload(user.id, user.email, user.role)


def refresh(token: str | None) -> dict[str, Any]:
    if not token:
        raise AuthenticationError("missing refresh token")
    claims = decode_token(token, "refresh")

    # role may have changed since the token was issued
    user = users_repo.get_user_by_email(str(claims.get("email") or ""))
    if user is None:
        raise AuthenticationError("user no longer exists")
    return _session_payload(user.id, user.email, user.role)


def generate_schedule(options: dict[str, Any] | None = None) -> list[ScheduleDay]:
    # automatic timetable generation is not implemented; callers get an empty timetable
    log.info("Schedule generation requested with options %s", sorted((options or {}).keys()))
    return []
