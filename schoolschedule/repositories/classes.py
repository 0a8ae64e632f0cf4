from __future__ import annotations

import logging
import uuid
from collections import defaultdict
from dataclasses import dataclass
from typing import Any

from schoolschedule.db import db_cursor, execute, fetch_all, in_clause
from schoolschedule.errors import ValidationError
from schoolschedule.models import (
    ClassGroup,
    ClassSubjectAssignment,
    ClassSubjectSplit,
    SchoolClass,
    Subject,
    TeacherRef,
)
from schoolschedule.schedule_input import as_list, as_object, as_text, parse_uuid

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class ClassSubjectInput:
    subject_id: str
    hours_per_week: int
    split_groups_count: int | None = None
    cross_class_allowed: bool | None = None


@dataclass(frozen=True)
class ClassGroupInput:
    id: str
    name: str
    size: int | None = None


@dataclass(frozen=True)
class ClassUpdate:
    id: str
    name: str
    homeroom_teacher_id: str | None = None
    total_students: int | None = None
    grade_level: int | None = None
    subjects: tuple[ClassSubjectInput, ...] = ()
    groups: tuple[ClassGroupInput, ...] = ()


def _opt_int(v: Any, field: str) -> int | None:
    if v is None:
        return None
    if isinstance(v, bool):
        raise ValidationError(f"{field} must be an integer", field=field)
    try:
        return int(v)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be an integer", field=field) from None


def _ref_or_none(v: Any, field: str) -> str | None:
    if v is None:
        return None
    if isinstance(v, dict):
        return parse_uuid(v.get("id"), field)
    return parse_uuid(v, field)


def parse_class_updates(items: Any) -> list[ClassUpdate]:
    """Validate a bulk payload (`data` list of class records) before any write."""
    if not isinstance(items, list):
        raise ValidationError("data must be a list", field="data")

    out: list[ClassUpdate] = []
    for item in items:
        item = as_object(item, "class entry")
        name = as_text(item.get("name"), "name")

        subjects: list[ClassSubjectInput] = []
        for s in as_list(item.get("subjects"), "subjects"):
            s = as_object(s, "subjects")
            split = as_object(s.get("split") or {}, "split")
            subject = as_object(s.get("subject") or {}, "subject")
            hours = _opt_int(s.get("hoursPerWeek"), "hoursPerWeek")
            cross = split.get("crossClassAllowed")
            subjects.append(
                ClassSubjectInput(
                    subject_id=parse_uuid(subject.get("id"), "subject id"),
                    hours_per_week=hours or 0,
                    split_groups_count=_opt_int(split.get("groupsCount"), "groupsCount"),
                    cross_class_allowed=bool(cross) if cross is not None else None,
                )
            )

        groups: list[ClassGroupInput] = []
        for gr in as_list(item.get("groups"), "groups"):
            gr = as_object(gr, "groups")
            gname = as_text(gr.get("name"), "groups")
            gid = parse_uuid(gr["id"], "group id") if gr.get("id") else str(uuid.uuid4())
            groups.append(ClassGroupInput(id=gid, name=gname, size=_opt_int(gr.get("size"), "size")))

        out.append(
            ClassUpdate(
                id=parse_uuid(item.get("id"), "class id"),
                name=name,
                homeroom_teacher_id=_ref_or_none(item.get("classTeacher"), "teacher id"),
                total_students=_opt_int(item.get("totalStudents"), "totalStudents"),
                subjects=tuple(subjects),
                groups=tuple(groups),
            )
        )
    return out


def list_classes() -> list[SchoolClass]:
    with db_cursor(context="list classes") as (_, cur):
        rows = fetch_all(
            cur,
            """
            SELECT c.id, c.name, c.grade_level, c.total_students,
                   t.id AS teacher_id, t.first_name, t.last_name, t.patronymic
            FROM classes c
            LEFT JOIN teachers t ON t.id = c.homeroom_teacher_id
            ORDER BY c.name
            """,
        )
        if not rows:
            return []

        placeholders, ids = in_clause(str(r["id"]) for r in rows)
        subj_rows = fetch_all(
            cur,
            f"""
            SELECT cs.class_id, cs.subject_id, s.name AS subject_name, cs.hours_per_week,
                   cs.split_groups_count, cs.cross_class_allowed
            FROM class_subjects cs
            JOIN subjects s ON s.id = cs.subject_id
            WHERE cs.class_id IN ({placeholders})
            ORDER BY s.name
            """,
            ids,
        )
        group_rows = fetch_all(
            cur,
            f"""
            SELECT id, class_id, name, size, description
            FROM class_groups
            WHERE class_id IN ({placeholders})
            ORDER BY name
            """,
            ids,
        )

    subjects: dict[str, list[ClassSubjectAssignment]] = defaultdict(list)
    for r in subj_rows:
        split = None
        if r["split_groups_count"] is not None:
            cross = r["cross_class_allowed"]
            split = ClassSubjectSplit(
                groups_count=int(r["split_groups_count"]),
                cross_class_allowed=bool(cross) if cross is not None else None,
            )
        subjects[str(r["class_id"])].append(
            ClassSubjectAssignment(
                subject=Subject(id=str(r["subject_id"]), name=r["subject_name"]),
                hours_per_week=int(r["hours_per_week"]),
                split=split,
            )
        )

    groups: dict[str, list[ClassGroup]] = defaultdict(list)
    for r in group_rows:
        groups[str(r["class_id"])].append(
            ClassGroup(id=str(r["id"]), name=r["name"], size=r["size"], description=r["description"])
        )

    out: list[SchoolClass] = []
    for r in rows:
        cid = str(r["id"])
        teacher = None
        if r["teacher_id"] is not None:
            teacher = TeacherRef(
                id=str(r["teacher_id"]),
                first_name=r["first_name"],
                last_name=r["last_name"],
                patronymic=r["patronymic"],
            )
        out.append(
            SchoolClass(
                id=cid,
                name=r["name"],
                grade_level=int(r["grade_level"]),
                total_students=r["total_students"],
                class_teacher=teacher,
                subjects=tuple(subjects.get(cid, ())),
                groups=tuple(groups.get(cid, ())),
            )
        )
    return out


def create_class(name: str, grade_level: int) -> SchoolClass:
    new_id = str(uuid.uuid4())
    with db_cursor(context="create class") as (_, cur):
        execute(cur, "INSERT INTO classes(id, name, grade_level) VALUES (%s,%s,%s)", (new_id, name, grade_level))
    return SchoolClass(id=new_id, name=name, grade_level=grade_level)


def delete_class(class_id: str) -> bool:
    with db_cursor(context="delete class") as (_, cur):
        return execute(cur, "DELETE FROM classes WHERE id=%s", (class_id,)) > 0


def _check_group_owners(cur, items: list[ClassUpdate]) -> None:
    """A submitted group id must be new or already belong to the submitting class."""
    claimed: dict[str, str] = {}
    for c in items:
        for gr in c.groups:
            if claimed.setdefault(gr.id, c.id) != c.id:
                raise ValidationError(f"group {gr.id} is listed under two classes", field="groups")
    if not claimed:
        return
    placeholders, ids = in_clause(claimed)
    rows = fetch_all(cur, f"SELECT id, class_id FROM class_groups WHERE id IN ({placeholders}) FOR UPDATE", ids)
    for r in rows:
        gid = str(r["id"])
        if str(r["class_id"]) != claimed[gid]:
            raise ValidationError(f"group {gid} belongs to another class", field="groups")


def bulk_update_classes(items: list[ClassUpdate]) -> int:
    """
    Replace base fields, subject assignments and groups of every class in one
    transaction. Returns how many class rows the UPDATE matched.
    """
    updated = 0
    with db_cursor(context="bulk update classes") as (_, cur):
        _check_group_owners(cur, items)
        for c in items:
            n = execute(
                cur,
                """
                UPDATE classes
                SET name=%s, grade_level=COALESCE(%s, grade_level),
                    homeroom_teacher_id=%s, total_students=%s
                WHERE id=%s
                """,
                (c.name, c.grade_level, c.homeroom_teacher_id, c.total_students, c.id),
            )
            if n > 0:
                updated += 1

            execute(cur, "DELETE FROM class_subjects WHERE class_id=%s", (c.id,))
            for s in c.subjects:
                execute(
                    cur,
                    """
                    INSERT INTO class_subjects(class_id, subject_id, hours_per_week,
                                               split_groups_count, cross_class_allowed)
                    VALUES (%s,%s,%s,%s,%s)
                    """,
                    (c.id, s.subject_id, s.hours_per_week, s.split_groups_count, s.cross_class_allowed),
                )

            # surviving group ids keep their rows; lesson participants point at them
            if c.groups:
                placeholders, keep = in_clause(gr.id for gr in c.groups)
                execute(
                    cur,
                    f"DELETE FROM class_groups WHERE class_id=%s AND id NOT IN ({placeholders})",
                    (c.id, *keep),
                )
            else:
                execute(cur, "DELETE FROM class_groups WHERE class_id=%s", (c.id,))
            for gr in c.groups:
                execute(
                    cur,
                    """
                    INSERT INTO class_groups(id, class_id, name, size) VALUES (%s,%s,%s,%s)
                    ON DUPLICATE KEY UPDATE name=VALUES(name), size=VALUES(size)
                    """,
                    (gr.id, c.id, gr.name, gr.size),
                )
    log.info("Bulk class update: %s of %s rows matched", updated, len(items))
    return updated
