from __future__ import annotations

from typing import Any

from schoolschedule.db import db_cursor, fetch_one
from schoolschedule.models import User

FALLBACK_DISPLAY_NAME = "Пользователь"

_USER_COLUMNS = "id, email, phone, password_hash, role, created_at, updated_at"


def _row_to_user(row: dict[str, Any]) -> User:
    return User(
        id=str(row["id"]),
        email=str(row["email"]),
        password_hash=str(row["password_hash"]),
        role=str(row["role"]),
        phone=row.get("phone"),
        created_at=row.get("created_at"),
        updated_at=row.get("updated_at"),
    )


def get_user_by_email(email: str) -> User | None:
    with db_cursor(context="load user by email") as (_, cur):
        row = fetch_one(cur, f"SELECT {_USER_COLUMNS} FROM users WHERE email=%s", (email,))
    return _row_to_user(row) if row else None


def get_user(user_id: str) -> User | None:
    with db_cursor(context="load user") as (_, cur):
        row = fetch_one(cur, f"SELECT {_USER_COLUMNS} FROM users WHERE id=%s", (user_id,))
    return _row_to_user(row) if row else None


def format_display_name(last_name: str | None, first_name: str | None, patronymic: str | None) -> str:
    parts = [p for p in (last_name, first_name, patronymic) if p]
    return " ".join(parts) or FALLBACK_DISPLAY_NAME


def get_display_name(user_id: str) -> str:
    """"Last First Patronymic" of the teacher linked to the user, or a generic label."""
    with db_cursor(context="load display name") as (_, cur):
        row = fetch_one(
            cur,
            "SELECT first_name, last_name, patronymic FROM teachers WHERE user_id=%s",
            (user_id,),
        )
    if not row:
        return FALLBACK_DISPLAY_NAME
    return format_display_name(row["last_name"], row["first_name"], row["patronymic"])
