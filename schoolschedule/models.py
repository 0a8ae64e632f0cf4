"""
Domain records returned by the repositories.

Optional columns are typed `X | None`; `to_dict()` renders the camelCase
shape the frontend consumes and leaves absent optionals out.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any


def _put(d: dict[str, Any], key: str, value: Any) -> dict[str, Any]:
    if value is not None:
        d[key] = value
    return d


@dataclass(frozen=True)
class User:
    id: str
    email: str
    password_hash: str
    role: str
    phone: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        # password_hash never leaves the backend
        d: dict[str, Any] = {"id": self.id, "email": self.email, "role": self.role}
        return _put(d, "phone", self.phone)


@dataclass(frozen=True)
class Classroom:
    id: str
    name: str
    capacity: int | None = None
    equipment: str | None = None

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {"id": self.id, "name": self.name}
        _put(d, "capacity", self.capacity)
        return _put(d, "equipment", self.equipment)


@dataclass(frozen=True)
class Subject:
    id: str
    name: str
    short_name: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return _put({"id": self.id, "name": self.name}, "shortName", self.short_name)


@dataclass(frozen=True)
class ClassRef:
    id: str
    name: str

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.name}


@dataclass(frozen=True)
class TeacherRef:
    id: str
    first_name: str
    last_name: str
    patronymic: str | None = None

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {"id": self.id, "firstName": self.first_name, "lastName": self.last_name}
        return _put(d, "patronymic", self.patronymic)


# Light list rows have the same shape as a teacher reference.
LightTeacher = TeacherRef


@dataclass(frozen=True)
class ClassGroup:
    id: str
    name: str
    size: int | None = None
    description: str | None = None

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {"id": self.id, "name": self.name}
        _put(d, "size", self.size)
        return _put(d, "description", self.description)


@dataclass(frozen=True)
class ClassSubjectSplit:
    groups_count: int
    cross_class_allowed: bool | None = None

    def to_dict(self) -> dict[str, Any]:
        return _put({"groupsCount": self.groups_count}, "crossClassAllowed", self.cross_class_allowed)


@dataclass(frozen=True)
class ClassSubjectAssignment:
    subject: Subject
    hours_per_week: int
    split: ClassSubjectSplit | None = None

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {"subject": self.subject.to_dict(), "hoursPerWeek": self.hours_per_week}
        if self.split is not None:
            d["split"] = self.split.to_dict()
        return d


@dataclass(frozen=True)
class SchoolClass:
    id: str
    name: str
    grade_level: int
    total_students: int | None = None
    class_teacher: TeacherRef | None = None
    subjects: tuple[ClassSubjectAssignment, ...] = ()
    groups: tuple[ClassGroup, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "gradeLevel": self.grade_level,
            "subjects": [s.to_dict() for s in self.subjects],
            "groups": [g.to_dict() for g in self.groups],
        }
        _put(d, "totalStudents", self.total_students)
        if self.class_teacher is not None:
            d["classTeacher"] = self.class_teacher.to_dict()
        return d


@dataclass(frozen=True)
class TeacherSubjectAssignment:
    subject: Subject
    hours_per_week: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"subject": self.subject.to_dict(), "hoursPerWeek": self.hours_per_week}


@dataclass(frozen=True)
class TeacherClassHour:
    school_class: ClassRef
    subject: Subject
    hours: int
    group_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "class": self.school_class.to_dict(),
            "subject": self.subject.to_dict(),
            "hours": self.hours,
        }
        return _put(d, "groupId", self.group_id)


@dataclass(frozen=True)
class Teacher:
    id: str
    first_name: str
    last_name: str
    patronymic: str | None = None
    workload_hours_per_week: int = 0
    classroom: Classroom | None = None
    homeroom_class: ClassRef | None = None
    subjects: tuple[TeacherSubjectAssignment, ...] = ()
    class_hours: tuple[TeacherClassHour, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "id": self.id,
            "firstName": self.first_name,
            "lastName": self.last_name,
            "workloadHoursPerWeek": self.workload_hours_per_week,
            "subjects": [s.to_dict() for s in self.subjects],
            "classHours": [c.to_dict() for c in self.class_hours],
        }
        _put(d, "patronymic", self.patronymic)
        if self.classroom is not None:
            d["classRoom"] = self.classroom.to_dict()
        if self.homeroom_class is not None:
            d["class"] = self.homeroom_class.to_dict()
        return d


@dataclass(frozen=True)
class Schedule:
    id: str
    name: str
    is_active: bool
    academic_year: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {"id": self.id, "name": self.name, "isActive": self.is_active}
        _put(d, "academicYear", self.academic_year)
        _put(d, "created_at", self.created_at.isoformat() if self.created_at else None)
        return _put(d, "updated_at", self.updated_at.isoformat() if self.updated_at else None)


@dataclass(frozen=True)
class LessonParticipant:
    school_class: ClassRef
    group_ids: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {"class": self.school_class.to_dict(), "groupIds": list(self.group_ids)}


@dataclass(frozen=True)
class ScheduleLesson:
    id: str
    subject: Subject
    teachers: tuple[TeacherRef, ...] = ()
    rooms: tuple[Classroom, ...] = ()
    participants: tuple[LessonParticipant, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "subject": self.subject.to_dict(),
            "teachers": [t.to_dict() for t in self.teachers],
            "rooms": [r.to_dict() for r in self.rooms],
            "participants": [p.to_dict() for p in self.participants],
        }


@dataclass(frozen=True)
class ScheduleDay:
    day_of_week: str
    lesson_number: int
    lessons: tuple[ScheduleLesson, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "dayOfWeek": self.day_of_week,
            "lessonNumber": self.lesson_number,
            "lessons": [lesson.to_dict() for lesson in self.lessons],
        }
