"""
Day-of-week codec and validation of client-supplied slot trees.

`build_slot_plan` turns the raw JSON (`[{dayOfWeek, lessonNumber, lessons}]`)
into an immutable plan. It validates the whole payload up front, so the
mutation engine never starts deleting rows for a payload it would reject.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Any

from schoolschedule.errors import ValidationError

DAY_NAMES: tuple[str, ...] = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday")


def day_number(name: Any) -> int:
    """'Monday' / 'MONDAY' / 'monday' -> 1 ... 'saturday' -> 6."""
    if isinstance(name, str):
        key = name.strip().lower()
        if key in DAY_NAMES:
            return DAY_NAMES.index(key) + 1
    raise ValidationError(
        f"invalid dayOfWeek: {name!r} (allowed: {', '.join(DAY_NAMES)})",
        field="dayOfWeek",
    )


def day_name(number: int) -> str:
    if 1 <= number <= len(DAY_NAMES):
        return DAY_NAMES[number - 1]
    raise ValueError(f"day_of_week out of range: {number}")


def parse_uuid(value: Any, field: str) -> str:
    """Canonical string form of a client-supplied id; ValidationError if malformed."""
    if isinstance(value, uuid.UUID):
        return str(value)
    if not isinstance(value, str):
        raise ValidationError(f"invalid {field}: {value!r}", field=field)
    try:
        return str(uuid.UUID(value.strip()))
    except ValueError:
        raise ValidationError(f"invalid {field}: {value!r}", field=field) from None


def _ordered_unique(values: list[str]) -> tuple[str, ...]:
    return tuple(dict.fromkeys(values))


@dataclass(frozen=True)
class ParticipantPlan:
    class_id: str
    group_ids: tuple[str, ...] = ()


@dataclass(frozen=True)
class LessonPlan:
    subject_id: str
    teacher_ids: tuple[str, ...] = ()
    room_ids: tuple[str, ...] = ()
    participants: tuple[ParticipantPlan, ...] = ()


@dataclass(frozen=True)
class SlotPlan:
    day_of_week: int
    lesson_number: int
    lessons: tuple[LessonPlan, ...] = ()


def as_list(v: Any, field: str) -> list[Any]:
    if v is None:
        return []
    if not isinstance(v, list):
        raise ValidationError(f"{field} must be a list", field=field)
    return v


def as_object(v: Any, field: str) -> dict[str, Any]:
    if not isinstance(v, dict):
        raise ValidationError(f"{field} must be an object", field=field)
    return v


def as_text(v: Any, field: str, *, required: bool = True) -> str | None:
    """Stripped string value; None/blank is an error unless not required."""
    if v is None:
        if required:
            raise ValidationError(f"{field} is required", field=field)
        return None
    if not isinstance(v, str):
        raise ValidationError(f"{field} must be a string", field=field)
    v = v.strip()
    if not v and required:
        raise ValidationError(f"{field} is required", field=field)
    return v or None


def _ref_id(item: Any, field: str) -> str:
    # entries arrive either as {"id": ...} objects or as bare id strings
    if isinstance(item, dict):
        return parse_uuid(item.get("id"), field)
    return parse_uuid(item, field)


def _lesson_number(v: Any) -> int:
    if isinstance(v, bool) or (isinstance(v, float) and not v.is_integer()):
        raise ValidationError("lessonNumber must be an integer", field="lessonNumber")
    try:
        n = int(v)
    except (TypeError, ValueError):
        raise ValidationError(f"invalid lessonNumber: {v!r}", field="lessonNumber") from None
    if n < 1:
        raise ValidationError("lessonNumber must be >= 1", field="lessonNumber")
    return n


def _build_participants(raw: list[Any]) -> tuple[ParticipantPlan, ...]:
    by_class: dict[str, list[str]] = {}
    for p in raw:
        p = as_object(p, "participant")
        klass = p.get("class")
        class_id = _ref_id(klass, "class id") if klass is not None else parse_uuid(p.get("classId"), "class id")
        groups = [parse_uuid(g, "group id") for g in as_list(p.get("groupIds"), "groupIds")]
        by_class.setdefault(class_id, []).extend(groups)
    return tuple(ParticipantPlan(class_id=cid, group_ids=_ordered_unique(gids)) for cid, gids in by_class.items())


def _build_lesson(raw: Any) -> LessonPlan:
    lesson = as_object(raw, "lesson")
    subject = lesson.get("subject")
    if subject is None:
        raise ValidationError("lesson subject is required", field="subject")
    return LessonPlan(
        subject_id=_ref_id(subject, "subject id"),
        teacher_ids=_ordered_unique([_ref_id(t, "teacher id") for t in as_list(lesson.get("teachers"), "teachers")]),
        room_ids=_ordered_unique([_ref_id(r, "room id") for r in as_list(lesson.get("rooms"), "rooms")]),
        participants=_build_participants(as_list(lesson.get("participants"), "participants")),
    )


def build_slot_plan(raw_slots: Any) -> tuple[SlotPlan, ...]:
    """Validate a whole slot list; raises ValidationError on the first problem."""
    slots = as_list(raw_slots, "data")
    seen: set[tuple[int, int]] = set()
    plan: list[SlotPlan] = []
    for raw in slots:
        slot = as_object(raw, "slot")
        day = day_number(slot.get("dayOfWeek"))
        num = _lesson_number(slot.get("lessonNumber"))
        if (day, num) in seen:
            raise ValidationError(
                f"duplicate slot {day_name(day)}/{num}",
                field="lessonNumber",
            )
        seen.add((day, num))
        lessons = tuple(_build_lesson(lesson) for lesson in as_list(slot.get("lessons"), "lessons"))
        plan.append(SlotPlan(day_of_week=day, lesson_number=num, lessons=lessons))
    return tuple(plan)
