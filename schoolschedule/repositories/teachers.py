from __future__ import annotations

import logging
import uuid
from collections import defaultdict
from dataclasses import dataclass
from typing import Any

from schoolschedule.db import db_cursor, execute, fetch_all, fetch_one, in_clause
from schoolschedule.errors import ValidationError
from schoolschedule.models import (
    Classroom,
    ClassRef,
    LightTeacher,
    Subject,
    Teacher,
    TeacherClassHour,
    TeacherSubjectAssignment,
)
from schoolschedule.schedule_input import as_list, as_object, as_text, parse_uuid

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class TeacherSubjectInput:
    subject_id: str
    preferred_hours: int | None = None


@dataclass(frozen=True)
class ClassHourInput:
    class_id: str
    subject_id: str
    hours: int
    group_id: str | None = None


@dataclass(frozen=True)
class TeacherUpdate:
    id: str
    first_name: str
    last_name: str
    patronymic: str | None = None
    workload_hours_per_week: int | None = None
    classroom_id: str | None = None
    homeroom_class_id: str | None = None
    subjects: tuple[TeacherSubjectInput, ...] = ()
    class_hours: tuple[ClassHourInput, ...] = ()


def _opt_int(v: Any, field: str) -> int | None:
    if v is None:
        return None
    if isinstance(v, bool):
        raise ValidationError(f"{field} must be an integer", field=field)
    try:
        return int(v)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be an integer", field=field) from None


def _nested_id(obj: Any, field: str) -> str | None:
    if obj is None:
        return None
    if isinstance(obj, dict):
        return parse_uuid(obj.get("id"), field)
    return parse_uuid(obj, field)


def parse_teacher_updates(items: Any) -> list[TeacherUpdate]:
    """Validate a bulk payload (`data` list of teacher records) before any write."""
    if not isinstance(items, list):
        raise ValidationError("data must be a list", field="data")

    out: list[TeacherUpdate] = []
    for item in items:
        item = as_object(item, "teacher entry")
        first = as_text(item.get("firstName"), "firstName")
        last = as_text(item.get("lastName"), "lastName")

        subjects: list[TeacherSubjectInput] = []
        for s in as_list(item.get("subjects"), "subjects"):
            s = as_object(s, "subjects")
            subject = as_object(s.get("subject") or {}, "subject")
            subjects.append(
                TeacherSubjectInput(
                    subject_id=parse_uuid(subject.get("id"), "subject id"),
                    preferred_hours=_opt_int(s.get("hoursPerWeek"), "hoursPerWeek"),
                )
            )

        class_hours: list[ClassHourInput] = []
        for ch in as_list(item.get("classHours"), "classHours"):
            ch = as_object(ch, "classHours")
            cls = as_object(ch.get("class") or {}, "class")
            subject = as_object(ch.get("subject") or {}, "subject")
            class_hours.append(
                ClassHourInput(
                    class_id=parse_uuid(cls.get("id"), "class id"),
                    subject_id=parse_uuid(subject.get("id"), "subject id"),
                    hours=_opt_int(ch.get("hours"), "hours") or 0,
                    group_id=parse_uuid(ch["groupId"], "group id") if ch.get("groupId") else None,
                )
            )

        out.append(
            TeacherUpdate(
                id=parse_uuid(item.get("id"), "teacher id"),
                first_name=first,
                last_name=last,
                patronymic=as_text(item.get("patronymic"), "patronymic", required=False),
                workload_hours_per_week=_opt_int(item.get("workloadHoursPerWeek"), "workloadHoursPerWeek"),
                classroom_id=_nested_id(item.get("classRoom"), "classroom id"),
                homeroom_class_id=_nested_id(item.get("class"), "class id"),
                subjects=tuple(subjects),
                class_hours=tuple(class_hours),
            )
        )
    return out


def find_teacher_id_by_user(user_id: str) -> str | None:
    with db_cursor(context="resolve teacher") as (_, cur):
        row = fetch_one(cur, "SELECT id FROM teachers WHERE user_id=%s", (user_id,))
    return str(row["id"]) if row else None


def list_teachers_light() -> list[LightTeacher]:
    with db_cursor(context="list teachers") as (_, cur):
        rows = fetch_all(
            cur,
            "SELECT id, first_name, last_name, patronymic FROM teachers ORDER BY last_name, first_name",
        )
    return [
        LightTeacher(id=str(r["id"]), first_name=r["first_name"], last_name=r["last_name"], patronymic=r["patronymic"])
        for r in rows
    ]


def list_teachers_full() -> list[Teacher]:
    """Teachers with classroom, homeroom class, qualified subjects and class hours."""
    with db_cursor(context="list teachers") as (_, cur):
        rows = fetch_all(
            cur,
            """
            SELECT t.id, t.first_name, t.last_name, t.patronymic, t.workload_hours_per_week,
                   cr.id AS classroom_id, cr.name AS classroom_name,
                   c.id AS homeroom_class_id, c.name AS homeroom_class_name
            FROM teachers t
            LEFT JOIN classrooms cr ON cr.id = t.classroom_id
            LEFT JOIN classes c ON c.id = t.homeroom_class_id
            ORDER BY t.last_name, t.first_name
            """,
        )
        if not rows:
            return []

        placeholders, ids = in_clause(str(r["id"]) for r in rows)
        subj_rows = fetch_all(
            cur,
            f"""
            SELECT ts.teacher_id, s.id AS subject_id, s.name AS subject_name, ts.preferred_hours_per_week
            FROM teacher_subjects ts
            JOIN subjects s ON s.id = ts.subject_id
            WHERE ts.teacher_id IN ({placeholders})
            ORDER BY s.name
            """,
            ids,
        )
        hour_rows = fetch_all(
            cur,
            f"""
            SELECT tw.teacher_id, c.id AS class_id, c.name AS class_name,
                   s.id AS subject_id, s.name AS subject_name, tw.group_id, tw.hours_per_week
            FROM teacher_workload tw
            JOIN classes c ON c.id = tw.class_id
            JOIN subjects s ON s.id = tw.subject_id
            WHERE tw.teacher_id IN ({placeholders})
            ORDER BY c.name, s.name
            """,
            ids,
        )

    subjects: dict[str, list[TeacherSubjectAssignment]] = defaultdict(list)
    for r in subj_rows:
        subjects[str(r["teacher_id"])].append(
            TeacherSubjectAssignment(
                subject=Subject(id=str(r["subject_id"]), name=r["subject_name"]),
                hours_per_week=r["preferred_hours_per_week"],
            )
        )

    hours: dict[str, list[TeacherClassHour]] = defaultdict(list)
    for r in hour_rows:
        hours[str(r["teacher_id"])].append(
            TeacherClassHour(
                school_class=ClassRef(id=str(r["class_id"]), name=r["class_name"]),
                subject=Subject(id=str(r["subject_id"]), name=r["subject_name"]),
                hours=int(r["hours_per_week"]),
                group_id=str(r["group_id"]) if r["group_id"] is not None else None,
            )
        )

    out: list[Teacher] = []
    for r in rows:
        tid = str(r["id"])
        classroom = None
        if r["classroom_id"] is not None:
            classroom = Classroom(id=str(r["classroom_id"]), name=r["classroom_name"])
        homeroom = None
        if r["homeroom_class_id"] is not None:
            homeroom = ClassRef(id=str(r["homeroom_class_id"]), name=r["homeroom_class_name"])
        out.append(
            Teacher(
                id=tid,
                first_name=r["first_name"],
                last_name=r["last_name"],
                patronymic=r["patronymic"],
                workload_hours_per_week=int(r["workload_hours_per_week"] or 0),
                classroom=classroom,
                homeroom_class=homeroom,
                subjects=tuple(subjects.get(tid, ())),
                class_hours=tuple(hours.get(tid, ())),
            )
        )
    return out


def create_teacher(first_name: str, last_name: str, patronymic: str | None = None) -> Teacher:
    new_id = str(uuid.uuid4())
    with db_cursor(context="create teacher") as (_, cur):
        execute(
            cur,
            "INSERT INTO teachers(id, first_name, last_name, patronymic) VALUES (%s,%s,%s,%s)",
            (new_id, first_name, last_name, patronymic),
        )
        row = fetch_one(
            cur,
            "SELECT id, first_name, last_name, patronymic, workload_hours_per_week FROM teachers WHERE id=%s",
            (new_id,),
        )
    return Teacher(
        id=str(row["id"]),
        first_name=row["first_name"],
        last_name=row["last_name"],
        patronymic=row["patronymic"],
        workload_hours_per_week=int(row["workload_hours_per_week"] or 0),
    )


def delete_teacher(teacher_id: str) -> bool:
    with db_cursor(context="delete teacher") as (_, cur):
        return execute(cur, "DELETE FROM teachers WHERE id=%s", (teacher_id,)) > 0


def bulk_update_teachers(items: list[TeacherUpdate]) -> int:
    """
    One transaction: base fields, then teacher_subjects and teacher_workload
    are deleted and re-inserted per teacher. Returns matched teacher rows.
    """
    updated = 0
    with db_cursor(context="bulk update teachers") as (_, cur):
        for t in items:
            n = execute(
                cur,
                """
                UPDATE teachers
                SET first_name=%s, last_name=%s, patronymic=%s,
                    workload_hours_per_week=COALESCE(%s, workload_hours_per_week),
                    classroom_id=%s, homeroom_class_id=%s
                WHERE id=%s
                """,
                (
                    t.first_name,
                    t.last_name,
                    t.patronymic,
                    t.workload_hours_per_week,
                    t.classroom_id,
                    t.homeroom_class_id,
                    t.id,
                ),
            )
            if n > 0:
                updated += 1

            execute(cur, "DELETE FROM teacher_subjects WHERE teacher_id=%s", (t.id,))
            for s in t.subjects:
                execute(
                    cur,
                    """
                    INSERT INTO teacher_subjects(teacher_id, subject_id, preferred_hours_per_week)
                    VALUES (%s,%s,%s)
                    ON DUPLICATE KEY UPDATE preferred_hours_per_week=VALUES(preferred_hours_per_week)
                    """,
                    (t.id, s.subject_id, s.preferred_hours),
                )

            execute(cur, "DELETE FROM teacher_workload WHERE teacher_id=%s", (t.id,))
            for ch in t.class_hours:
                execute(
                    cur,
                    """
                    INSERT INTO teacher_workload(id, teacher_id, class_id, subject_id, group_id, hours_per_week)
                    VALUES (%s,%s,%s,%s,%s,%s)
                    """,
                    (str(uuid.uuid4()), t.id, ch.class_id, ch.subject_id, ch.group_id, ch.hours),
                )
    log.info("Bulk teacher update: %s of %s rows matched", updated, len(items))
    return updated
