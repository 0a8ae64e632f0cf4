from __future__ import annotations

import uuid

from schoolschedule.db import db_cursor, execute, fetch_all, fetch_one
from schoolschedule.models import Subject


def list_subjects() -> list[Subject]:
    with db_cursor(context="list subjects") as (_, cur):
        rows = fetch_all(cur, "SELECT id, name, short_name FROM subjects ORDER BY name")
    return [Subject(id=str(r["id"]), name=r["name"], short_name=r["short_name"]) for r in rows]


def create_subject(name: str, short_name: str | None = None) -> Subject:
    new_id = str(uuid.uuid4())
    with db_cursor(context="create subject") as (_, cur):
        execute(cur, "INSERT INTO subjects(id, name, short_name) VALUES (%s,%s,%s)", (new_id, name, short_name))
        row = fetch_one(cur, "SELECT id, name, short_name FROM subjects WHERE id=%s", (new_id,))
    return Subject(id=str(row["id"]), name=row["name"], short_name=row["short_name"])


def delete_subject(subject_id: str) -> bool:
    with db_cursor(context="delete subject") as (_, cur):
        return execute(cur, "DELETE FROM subjects WHERE id=%s", (subject_id,)) > 0
