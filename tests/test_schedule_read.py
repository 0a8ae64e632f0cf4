"""Tests for timetable aggregation: index pass, detail fan-out and merge."""

import threading

from schoolschedule.repositories import schedules
from schoolschedule.repositories.schedules import assemble_schedule_days

ACTIVE = "aaaaaaaa-0000-4000-8000-000000000001"
TEACHER = "bbbbbbbb-0000-4000-8000-000000000001"


def idx(day, num, lesson_id, subject_name="Математика", subject_id="s-math"):
    return {
        "day_of_week": day,
        "lesson_number": num,
        "lesson_id": lesson_id,
        "subject_id": subject_id,
        "subject_name": subject_name,
        "short_name": None,
    }


def teacher_row(lesson_id, tid, last="Иванов", first="Иван"):
    return {"lesson_id": lesson_id, "teacher_id": tid, "first_name": first, "last_name": last, "patronymic": None}


def room_row(lesson_id, rid, name="101"):
    return {"lesson_id": lesson_id, "room_id": rid, "room_name": name}


def part_row(lesson_id, cid, group_id=None, name="5А"):
    return {"lesson_id": lesson_id, "class_id": cid, "class_name": name, "group_id": group_id}


class TestAssemble:
    def test_empty_index_gives_empty_result(self):
        assert assemble_schedule_days([]) == []

    def test_duplicate_detail_rows_deduplicated(self):
        """Teachers, rooms and groups repeated by joins appear once."""
        days = assemble_schedule_days(
            [idx(1, 1, "L1")],
            [teacher_row("L1", "t1"), teacher_row("L1", "t1")],
            [room_row("L1", "r1"), room_row("L1", "r1")],
            [part_row("L1", "c1", "g1"), part_row("L1", "c1", "g1"), part_row("L1", "c1", "g2")],
        )
        lesson = days[0].lessons[0]
        assert [t.id for t in lesson.teachers] == ["t1"]
        assert [r.id for r in lesson.rooms] == ["r1"]
        assert len(lesson.participants) == 1
        assert lesson.participants[0].group_ids == ("g1", "g2")

    def test_lesson_without_rooms_or_participants(self):
        days = assemble_schedule_days([idx(2, 3, "L1")], [teacher_row("L1", "t1")], [], [])
        lesson = days[0].lessons[0]
        assert lesson.rooms == ()
        assert lesson.participants == ()
        assert lesson.to_dict()["rooms"] == []

    def test_whole_class_participant_has_no_groups(self):
        """A LEFT JOIN row with NULL group means the whole class attends."""
        days = assemble_schedule_days([idx(1, 1, "L1")], [], [], [part_row("L1", "c1", None)])
        assert days[0].lessons[0].participants[0].group_ids == ()

    def test_ordered_by_day_then_lesson_number(self):
        days = assemble_schedule_days([idx(3, 1, "L3"), idx(1, 2, "L2"), idx(1, 1, "L1")])
        assert [(d.day_of_week, d.lesson_number) for d in days] == [
            ("monday", 1),
            ("monday", 2),
            ("wednesday", 1),
        ]

    def test_saturday_has_a_name(self):
        days = assemble_schedule_days([idx(6, 1, "L1")])
        assert days[0].day_of_week == "saturday"

    def test_lessons_in_one_slot_grouped(self):
        days = assemble_schedule_days(
            [idx(1, 1, "L1", "Алгебра"), idx(1, 1, "L2", "Физика")],
            [teacher_row("L2", "t2")],
        )
        assert len(days) == 1
        assert [lsn.id for lsn in days[0].lessons] == ["L1", "L2"]
        assert days[0].lessons[0].teachers == ()
        assert [t.id for t in days[0].lessons[1].teachers] == ["t2"]

    def test_detail_rows_for_unknown_lessons_ignored(self):
        days = assemble_schedule_days([idx(1, 1, "L1")], [teacher_row("L9", "t1")])
        assert days[0].lessons[0].teachers == ()

    def test_json_shape(self):
        days = assemble_schedule_days([idx(1, 2, "L1")], [], [], [part_row("L1", "c1", "g1")])
        d = days[0].to_dict()
        assert d["dayOfWeek"] == "monday"
        assert d["lessonNumber"] == 2
        assert d["lessons"][0]["subject"] == {"id": "s-math", "name": "Математика"}
        assert d["lessons"][0]["participants"] == [{"class": {"id": "c1", "name": "5А"}, "groupIds": ["g1"]}]


class TestGetScheduleForTeacher:
    def test_no_active_schedule(self, fake_db):
        """Without an active schedule the result is empty and nothing else is queried."""
        assert schedules.get_schedule_for_teacher(TEACHER) == []
        assert len(fake_db.statements) == 1
        assert "is_active=1" in fake_db.statements[0][0]

    def test_teacher_filter_and_fan_out(self, fake_db):
        fake_db.on("FROM schedules WHERE is_active=1", rows=[{"id": ACTIVE}])
        fake_db.on("FROM schedule_slots ss", rows=[idx(1, 1, "L1"), idx(2, 4, "L2", "Физика")])
        fake_db.on("FROM lesson_teachers lt JOIN teachers", rows=[teacher_row("L1", TEACHER), teacher_row("L2", TEACHER)])
        fake_db.on("FROM lesson_rooms lr", rows=[room_row("L1", "r1")])
        fake_db.on("FROM lesson_participants lp", rows=[part_row("L2", "c1", "g1")])

        days = schedules.get_schedule_for_teacher(TEACHER)

        assert [(d.day_of_week, d.lesson_number) for d in days] == [("monday", 1), ("tuesday", 4)]
        assert [r.id for r in days[0].lessons[0].rooms] == ["r1"]
        assert days[1].lessons[0].participants[0].group_ids == ("g1",)

        index_sql, index_params = fake_db.matching("FROM schedule_slots ss")[0]
        assert "lt.teacher_id = %s" in index_sql
        assert index_params == (ACTIVE, TEACHER)

        for fragment in ("FROM lesson_teachers lt JOIN", "FROM lesson_rooms lr", "FROM lesson_participants lp"):
            (_, params), = fake_db.matching(fragment)
            assert params == ("L1", "L2")


class TestGetScheduleDays:
    def test_unfiltered_index_has_no_teacher_clause(self, fake_db):
        fake_db.on("FROM schedule_slots ss", rows=[])
        assert schedules.get_schedule_days(ACTIVE) == []
        (sql, params), = fake_db.matching("FROM schedule_slots ss")
        assert "lesson_teachers" not in sql
        assert params == (ACTIVE,)
        # empty index: no detail queries
        assert len(fake_db.statements) == 1


class TestExecutor:
    def test_single_executor_under_concurrent_first_use(self, monkeypatch):
        """Threads racing on first use all get the same executor."""
        monkeypatch.setattr(schedules, "_EXECUTOR", None)
        barrier = threading.Barrier(8)
        seen = []

        def grab():
            barrier.wait()
            seen.append(schedules.get_executor())

        threads = [threading.Thread(target=grab) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(seen) == 8
        assert len({id(ex) for ex in seen}) == 1
        seen[0].shutdown(wait=False)
