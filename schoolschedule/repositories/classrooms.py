from __future__ import annotations

import uuid

from schoolschedule.db import db_cursor, execute, fetch_all, fetch_one
from schoolschedule.models import Classroom


def list_classrooms() -> list[Classroom]:
    with db_cursor(context="list classrooms") as (_, cur):
        rows = fetch_all(cur, "SELECT id, name, capacity, equipment FROM classrooms ORDER BY name")
    return [
        Classroom(id=str(r["id"]), name=r["name"], capacity=r["capacity"], equipment=r["equipment"])
        for r in rows
    ]


def create_classroom(name: str, capacity: int | None = None) -> Classroom:
    new_id = str(uuid.uuid4())
    with db_cursor(context="create classroom") as (_, cur):
        execute(cur, "INSERT INTO classrooms(id, name, capacity) VALUES (%s,%s,%s)", (new_id, name, capacity))
        row = fetch_one(cur, "SELECT id, name, capacity, equipment FROM classrooms WHERE id=%s", (new_id,))
    return Classroom(id=str(row["id"]), name=row["name"], capacity=row["capacity"], equipment=row["equipment"])


def delete_classroom(classroom_id: str) -> bool:
    with db_cursor(context="delete classroom") as (_, cur):
        return execute(cur, "DELETE FROM classrooms WHERE id=%s", (classroom_id,)) > 0
