"""
Schedule storage: timetable aggregation and transactional slot-tree writes.

Read path
    One index query enumerates (day, period, lesson) for a schedule, optionally
    restricted to one teacher; it is the authority on which slots exist. The
    teachers, rooms and participants of those lessons are then fetched by
    three independent batched queries that run concurrently, each on its own
    pooled connection, and merged by lesson id.

Write path
    Callers pass a plan already validated by `schedule_input.build_slot_plan`.
    Every mutation is one transaction; replacing a schedule deletes all its
    slots (children cascade) and re-inserts the full tree.

Reads are not isolated from a concurrent replace: a reader may see a
schedule with its slots deleted but not yet re-inserted.
"""

from __future__ import annotations

import logging
import threading
import uuid
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Iterable

from schoolschedule import config
from schoolschedule.db import db_cursor, execute, fetch_all, fetch_one, in_clause
from schoolschedule.errors import NotFoundError, StorageError
from schoolschedule.models import (
    Classroom,
    ClassRef,
    LessonParticipant,
    Schedule,
    ScheduleDay,
    ScheduleLesson,
    Subject,
    TeacherRef,
)
from schoolschedule.schedule_input import SlotPlan, day_name

log = logging.getLogger(__name__)

_SCHEDULE_COLUMNS = "id, name, academic_year, is_active, created_at, updated_at"


def _new_id() -> str:
    return str(uuid.uuid4())


_EXECUTOR: ThreadPoolExecutor | None = None
_EXECUTOR_LOCK = threading.Lock()


def get_executor() -> ThreadPoolExecutor:
    global _EXECUTOR
    if _EXECUTOR is not None:
        return _EXECUTOR
    with _EXECUTOR_LOCK:
        if _EXECUTOR is None:
            _EXECUTOR = ThreadPoolExecutor(
                max_workers=max(1, int(config.SCHEDULE_READ_WORKERS)),
                thread_name_prefix="schedule-read",
            )
    return _EXECUTOR


# ------------------------------------------------------------
# Headers
# ------------------------------------------------------------


def _row_to_schedule(row: dict[str, Any]) -> Schedule:
    return Schedule(
        id=str(row["id"]),
        name=row["name"],
        is_active=bool(row["is_active"]),
        academic_year=row["academic_year"],
        created_at=row.get("created_at"),
        updated_at=row.get("updated_at"),
    )


def get_active_schedule_id(cur: Any, *, for_update: bool = False) -> str | None:
    sql = "SELECT id FROM schedules WHERE is_active=1 LIMIT 1"
    if for_update:
        sql += " FOR UPDATE"
    row = fetch_one(cur, sql)
    return str(row["id"]) if row else None


def get_schedule(schedule_id: str) -> Schedule | None:
    with db_cursor(context="load schedule") as (_, cur):
        row = fetch_one(cur, f"SELECT {_SCHEDULE_COLUMNS} FROM schedules WHERE id=%s", (schedule_id,))
    return _row_to_schedule(row) if row else None


def list_schedules() -> list[Schedule]:
    with db_cursor(context="list schedules") as (_, cur):
        rows = fetch_all(cur, f"SELECT {_SCHEDULE_COLUMNS} FROM schedules ORDER BY name")
    return [_row_to_schedule(r) for r in rows]


# ------------------------------------------------------------
# Aggregation
# ------------------------------------------------------------


def _load_index(schedule_id: str, teacher_id: str | None) -> list[dict[str, Any]]:
    sql = """
        SELECT ss.day_of_week, ss.lesson_number,
               sl.id AS lesson_id, s.id AS subject_id, s.name AS subject_name, s.short_name
        FROM schedule_slots ss
        JOIN schedule_lessons sl ON sl.slot_id = ss.id
        JOIN subjects s ON s.id = sl.subject_id
        WHERE ss.schedule_id = %s
    """
    params: tuple[Any, ...] = (schedule_id,)
    if teacher_id is not None:
        sql += """
          AND EXISTS (
            SELECT 1 FROM lesson_teachers lt
            WHERE lt.lesson_id = sl.id AND lt.teacher_id = %s
          )
        """
        params += (teacher_id,)
    sql += " ORDER BY ss.day_of_week, ss.lesson_number, s.name, sl.id"

    with db_cursor(context="load schedule index") as (_, cur):
        return fetch_all(cur, sql, params)


def _load_teachers(lesson_ids: list[str]) -> list[dict[str, Any]]:
    placeholders, ids = in_clause(lesson_ids)
    with db_cursor(context="load lesson teachers") as (_, cur):
        return fetch_all(
            cur,
            f"""
            SELECT lt.lesson_id, t.id AS teacher_id, t.first_name, t.last_name, t.patronymic
            FROM lesson_teachers lt
            JOIN teachers t ON t.id = lt.teacher_id
            WHERE lt.lesson_id IN ({placeholders})
            ORDER BY t.last_name, t.first_name, t.id
            """,
            ids,
        )


def _load_rooms(lesson_ids: list[str]) -> list[dict[str, Any]]:
    placeholders, ids = in_clause(lesson_ids)
    with db_cursor(context="load lesson rooms") as (_, cur):
        return fetch_all(
            cur,
            f"""
            SELECT lr.lesson_id, cr.id AS room_id, cr.name AS room_name
            FROM lesson_rooms lr
            JOIN classrooms cr ON cr.id = lr.classroom_id
            WHERE lr.lesson_id IN ({placeholders})
            ORDER BY cr.name, cr.id
            """,
            ids,
        )


def _load_participants(lesson_ids: list[str]) -> list[dict[str, Any]]:
    placeholders, ids = in_clause(lesson_ids)
    with db_cursor(context="load lesson participants") as (_, cur):
        return fetch_all(
            cur,
            f"""
            SELECT lp.lesson_id, c.id AS class_id, c.name AS class_name, lpg.group_id
            FROM lesson_participants lp
            JOIN classes c ON c.id = lp.class_id
            LEFT JOIN lesson_participant_groups lpg ON lpg.participant_id = lp.id
            WHERE lp.lesson_id IN ({placeholders})
            ORDER BY c.name, c.id, lpg.group_id
            """,
            ids,
        )


class _LessonAcc:
    """Lesson under construction; dicts keep first-seen order and drop repeats."""

    __slots__ = ("id", "subject", "teachers", "rooms", "participants")

    def __init__(self, lesson_id: str, subject: Subject) -> None:
        self.id = lesson_id
        self.subject = subject
        self.teachers: dict[str, TeacherRef] = {}
        self.rooms: dict[str, Classroom] = {}
        self.participants: dict[str, tuple[ClassRef, dict[str, None]]] = {}

    def build(self) -> ScheduleLesson:
        return ScheduleLesson(
            id=self.id,
            subject=self.subject,
            teachers=tuple(self.teachers.values()),
            rooms=tuple(self.rooms.values()),
            participants=tuple(
                LessonParticipant(school_class=ref, group_ids=tuple(groups))
                for ref, groups in self.participants.values()
            ),
        )


def assemble_schedule_days(
    index_rows: Iterable[dict[str, Any]],
    teacher_rows: Iterable[dict[str, Any]] = (),
    room_rows: Iterable[dict[str, Any]] = (),
    participant_rows: Iterable[dict[str, Any]] = (),
) -> list[ScheduleDay]:
    """
    Merge the index and the three detail row sets into ordered ScheduleDays.

    Only lessons present in the index are emitted; detail rows for unknown
    lessons are ignored. Teachers and rooms are unique by id, participants by
    class id with their group ids collected in first-seen order.
    """
    slots: dict[tuple[int, int], list[str]] = {}
    lessons: dict[str, _LessonAcc] = {}

    for r in index_rows:
        key = (int(r["day_of_week"]), int(r["lesson_number"]))
        lesson_id = str(r["lesson_id"])
        if lesson_id in lessons:
            continue
        lessons[lesson_id] = _LessonAcc(
            lesson_id,
            Subject(id=str(r["subject_id"]), name=r["subject_name"], short_name=r.get("short_name")),
        )
        slots.setdefault(key, []).append(lesson_id)

    for r in teacher_rows:
        acc = lessons.get(str(r["lesson_id"]))
        if acc is None:
            continue
        tid = str(r["teacher_id"])
        if tid not in acc.teachers:
            acc.teachers[tid] = TeacherRef(
                id=tid,
                first_name=r["first_name"],
                last_name=r["last_name"],
                patronymic=r["patronymic"],
            )

    for r in room_rows:
        acc = lessons.get(str(r["lesson_id"]))
        if acc is None:
            continue
        rid = str(r["room_id"])
        if rid not in acc.rooms:
            acc.rooms[rid] = Classroom(id=rid, name=r["room_name"])

    for r in participant_rows:
        acc = lessons.get(str(r["lesson_id"]))
        if acc is None:
            continue
        cid = str(r["class_id"])
        if cid not in acc.participants:
            acc.participants[cid] = (ClassRef(id=cid, name=r["class_name"]), {})
        if r["group_id"] is not None:
            acc.participants[cid][1][str(r["group_id"])] = None

    return [
        ScheduleDay(
            day_of_week=day_name(day),
            lesson_number=num,
            lessons=tuple(lessons[lid].build() for lid in lesson_ids),
        )
        for (day, num), lesson_ids in sorted(slots.items())
    ]


def get_schedule_days(schedule_id: str, teacher_id: str | None = None) -> list[ScheduleDay]:
    """Timetable of a schedule; with `teacher_id`, only lessons that teacher gives."""
    index_rows = _load_index(schedule_id, teacher_id)
    if not index_rows:
        return []

    lesson_ids = list(dict.fromkeys(str(r["lesson_id"]) for r in index_rows))
    ex = get_executor()
    f_teachers = ex.submit(_load_teachers, lesson_ids)
    f_rooms = ex.submit(_load_rooms, lesson_ids)
    f_participants = ex.submit(_load_participants, lesson_ids)

    return assemble_schedule_days(
        index_rows,
        f_teachers.result(),
        f_rooms.result(),
        f_participants.result(),
    )


def get_schedule_for_teacher(teacher_id: str) -> list[ScheduleDay]:
    """The teacher's lessons in the active schedule; [] when nothing is active."""
    with db_cursor(context="find active schedule") as (_, cur):
        active_id = get_active_schedule_id(cur)
    if active_id is None:
        return []
    return get_schedule_days(active_id, teacher_id=teacher_id)


# ------------------------------------------------------------
# Mutations
# ------------------------------------------------------------


def write_slot_tree(cur: Any, schedule_id: str, plan: Iterable[SlotPlan]) -> int:
    """Insert slots, lessons and their associations; returns number of slots written."""
    n_slots = 0
    for slot in plan:
        slot_id = _new_id()
        execute(
            cur,
            "INSERT INTO schedule_slots(id, schedule_id, day_of_week, lesson_number) VALUES (%s,%s,%s,%s)",
            (slot_id, schedule_id, slot.day_of_week, slot.lesson_number),
        )
        n_slots += 1
        for lesson in slot.lessons:
            lesson_id = _new_id()
            execute(
                cur,
                "INSERT INTO schedule_lessons(id, slot_id, subject_id) VALUES (%s,%s,%s)",
                (lesson_id, slot_id, lesson.subject_id),
            )
            for teacher_id in lesson.teacher_ids:
                execute(
                    cur,
                    "INSERT INTO lesson_teachers(lesson_id, teacher_id) VALUES (%s,%s)",
                    (lesson_id, teacher_id),
                )
            for room_id in lesson.room_ids:
                execute(
                    cur,
                    "INSERT INTO lesson_rooms(lesson_id, classroom_id) VALUES (%s,%s)",
                    (lesson_id, room_id),
                )
            for p in lesson.participants:
                participant_id = _new_id()
                execute(
                    cur,
                    "INSERT INTO lesson_participants(id, lesson_id, class_id) VALUES (%s,%s,%s)",
                    (participant_id, lesson_id, p.class_id),
                )
                for group_id in p.group_ids:
                    execute(
                        cur,
                        "INSERT INTO lesson_participant_groups(participant_id, group_id) VALUES (%s,%s)",
                        (participant_id, group_id),
                    )
    return n_slots


def _replace_slots(cur: Any, schedule_id: str, plan: tuple[SlotPlan, ...]) -> None:
    # lessons, teachers, rooms, participants and groups go with the slots (ON DELETE CASCADE)
    removed = execute(cur, "DELETE FROM schedule_slots WHERE schedule_id=%s", (schedule_id,))
    written = write_slot_tree(cur, schedule_id, plan)
    log.info("Schedule %s: replaced %s slots with %s", schedule_id, removed, written)


def _lock_schedule(cur: Any, schedule_id: str) -> None:
    row = fetch_one(cur, "SELECT id FROM schedules WHERE id=%s FOR UPDATE", (schedule_id,))
    if not row:
        raise NotFoundError("schedule not found")


def create_schedule(
    name: str,
    plan: tuple[SlotPlan, ...] = (),
    *,
    academic_year: str | None = None,
    is_active: bool = False,
) -> Schedule:
    """Insert a schedule with its slot tree; the result is re-read after commit."""
    new_id = _new_id()
    with db_cursor(context="create schedule") as (_, cur):
        if is_active:
            execute(cur, "UPDATE schedules SET is_active=0 WHERE is_active=1")
        execute(
            cur,
            "INSERT INTO schedules(id, name, academic_year, is_active) VALUES (%s,%s,%s,%s)",
            (new_id, name, academic_year, 1 if is_active else 0),
        )
        written = write_slot_tree(cur, new_id, plan)
    log.info("Schedule %s created (%s slots, active=%s)", new_id, written, is_active)

    created = get_schedule(new_id)
    if created is None:
        raise StorageError(f"schedule {new_id} not found after commit")
    return created


def update_schedule(schedule_id: str, name: str | None, plan: tuple[SlotPlan, ...]) -> None:
    """Optionally rename, then replace the whole slot tree of an existing schedule."""
    with db_cursor(context="update schedule") as (_, cur):
        _lock_schedule(cur, schedule_id)
        if name is not None:
            execute(cur, "UPDATE schedules SET name=%s WHERE id=%s", (name, schedule_id))
        _replace_slots(cur, schedule_id, plan)


def replace_active_schedule(plan: tuple[SlotPlan, ...]) -> str:
    """
    Replace the slot tree of the active schedule, creating a default active
    schedule first when none exists. Decision and write share one transaction.
    """
    with db_cursor(context="replace active schedule") as (_, cur):
        schedule_id = get_active_schedule_id(cur, for_update=True)
        if schedule_id is None:
            schedule_id = _new_id()
            execute(
                cur,
                "INSERT INTO schedules(id, name, is_active) VALUES (%s,%s,1)",
                (schedule_id, config.DEFAULT_SCHEDULE_NAME),
            )
            log.info("No active schedule, provisioned %s", schedule_id)
        _replace_slots(cur, schedule_id, plan)
    return schedule_id


def set_active_schedule(schedule_id: str) -> Schedule:
    with db_cursor(context="activate schedule") as (_, cur):
        _lock_schedule(cur, schedule_id)
        execute(cur, "UPDATE schedules SET is_active=0 WHERE is_active=1 AND id<>%s", (schedule_id,))
        execute(cur, "UPDATE schedules SET is_active=1 WHERE id=%s", (schedule_id,))
    log.info("Schedule %s is now active", schedule_id)

    activated = get_schedule(schedule_id)
    if activated is None:
        raise NotFoundError("schedule not found")
    return activated


def delete_schedule(schedule_id: str) -> None:
    with db_cursor(context="delete schedule") as (_, cur):
        if execute(cur, "DELETE FROM schedules WHERE id=%s", (schedule_id,)) == 0:
            raise NotFoundError("schedule not found")
