"""HTTP-level tests through the Flask test client."""

import pytest

from schoolschedule import config
from schoolschedule.main import create_app
from schoolschedule.models import ScheduleDay, User
from schoolschedule.repositories import schedules as schedules_repo
from schoolschedule.repositories import teachers as teachers_repo
from schoolschedule.repositories import users as users_repo
from schoolschedule.security import hash_password, issue_token_pair

USER_ID = "99999999-0000-4000-8000-000000000001"
TEACHER_ID = "bbbbbbbb-0000-4000-8000-000000000001"
ROOM_ID = "33333333-3333-4333-8333-333333333333"
SUBJ = "11111111-1111-4111-8111-111111111111"


@pytest.fixture
def client():
    app = create_app()
    app.config["TESTING"] = True
    # cookies are sent explicitly per request
    return app.test_client(use_cookies=False)


def auth_headers(token=None):
    token = token or issue_token_pair(USER_ID, "t@school.ru", "teacher").access_token
    return {"Cookie": f"access-token={token}"}


def class_item(n):
    return {
        "id": f"44444444-4444-4444-8444-{n:012d}",
        "name": f"{n}А",
        "subjects": [{"subject": {"id": SUBJ}, "hoursPerWeek": 4}],
        "groups": [{"name": "1 группа"}],
    }


class TestAuthentication:
    def test_missing_cookie(self, client, fake_db):
        resp = client.get("/api/classrooms")
        assert resp.status_code == 401
        body = resp.get_json()
        assert body["ok"] is False
        assert body["error"]["code"] == "UNAUTHORIZED"
        assert fake_db.statements == []

    def test_refresh_token_in_access_cookie(self, client, fake_db):
        refresh = issue_token_pair(USER_ID, "t@school.ru", "teacher").refresh_token
        resp = client.get("/api/classrooms", headers=auth_headers(refresh))
        assert resp.status_code == 401

    def test_login_sets_http_only_cookies(self, client, monkeypatch):
        user = User(id=USER_ID, email="t@school.ru", password_hash=hash_password("pw"), role="teacher")
        monkeypatch.setattr(users_repo, "get_user_by_email", lambda email: user if email == user.email else None)
        monkeypatch.setattr(users_repo, "get_display_name", lambda user_id: "Пользователь")

        resp = client.post("/api/auth/login", json={"email": "t@school.ru", "password": "pw"})
        assert resp.status_code == 200
        body = resp.get_json()
        assert body["user"]["name"] == "Пользователь"
        assert body["accessToken"] and body["refreshToken"]

        cookies = resp.headers.getlist("Set-Cookie")
        access = next(c for c in cookies if c.startswith("access-token="))
        refresh = next(c for c in cookies if c.startswith("refresh-token="))
        assert "HttpOnly" in access and "HttpOnly" in refresh
        assert "Max-Age=600" in access
        assert "Max-Age=604800" in refresh

    def test_bad_credentials(self, client, monkeypatch):
        monkeypatch.setattr(users_repo, "get_user_by_email", lambda email: None)
        resp = client.post("/api/auth/login", json={"email": "x@school.ru", "password": "pw"})
        assert resp.status_code == 401

    def test_refresh_via_bearer(self, client, monkeypatch):
        user = User(id=USER_ID, email="t@school.ru", password_hash="x", role="teacher")
        monkeypatch.setattr(users_repo, "get_user_by_email", lambda email: user)
        monkeypatch.setattr(users_repo, "get_display_name", lambda user_id: "Пользователь")
        pair = issue_token_pair(USER_ID, "t@school.ru", "teacher")

        ok = client.post("/api/auth/refresh", headers={"Authorization": f"Bearer {pair.refresh_token}"})
        assert ok.status_code == 200
        assert "refreshToken" in ok.get_json()

        wrong = client.post("/api/auth/refresh", headers={"Authorization": f"Bearer {pair.access_token}"})
        assert wrong.status_code == 401


class TestTeacherSchedule:
    def test_non_teacher_forbidden(self, client, monkeypatch):
        monkeypatch.setattr(teachers_repo, "find_teacher_id_by_user", lambda user_id: None)
        resp = client.get("/api/schedule", headers=auth_headers())
        assert resp.status_code == 403
        assert resp.get_json()["error"]["code"] == "FORBIDDEN"

    def test_teacher_gets_own_schedule(self, client, monkeypatch):
        seen = {}

        def fake_schedule(teacher_id):
            seen["teacher_id"] = teacher_id
            return [ScheduleDay(day_of_week="saturday", lesson_number=1)]

        monkeypatch.setattr(teachers_repo, "find_teacher_id_by_user", lambda user_id: TEACHER_ID)
        monkeypatch.setattr(schedules_repo, "get_schedule_for_teacher", fake_schedule)

        resp = client.get("/api/schedule", headers=auth_headers())
        assert resp.status_code == 200
        assert seen["teacher_id"] == TEACHER_ID
        assert resp.get_json()["data"] == [{"dayOfWeek": "saturday", "lessonNumber": 1, "lessons": []}]

    def test_bad_day_rejected_without_writes(self, client, fake_db):
        resp = client.put(
            "/api/schedule",
            json={"data": [{"dayOfWeek": "Funday", "lessonNumber": 1, "lessons": []}]},
            headers=auth_headers(),
        )
        assert resp.status_code == 400
        assert resp.get_json()["error"]["details"] == {"field": "dayOfWeek"}
        assert fake_db.statements == []

    def test_replace_active(self, client, fake_db):
        fake_db.on("FROM schedules WHERE is_active=1", rows=[{"id": "aaaaaaaa-0000-4000-8000-000000000001"}])
        resp = client.put(
            "/api/schedule",
            json={"data": [{"dayOfWeek": "Monday", "lessonNumber": 1, "lessons": [{"subject": {"id": SUBJ}}]}]},
            headers=auth_headers(),
        )
        assert resp.status_code == 200
        assert resp.get_json()["data"]["scheduleId"] == "aaaaaaaa-0000-4000-8000-000000000001"
        assert fake_db.commits == 1

    def test_generate_stub(self, client):
        resp = client.post("/api/schedule/generate", json={}, headers=auth_headers())
        assert resp.status_code == 200
        assert resp.get_json()["data"] == []


class TestResources:
    def test_delete_bad_id(self, client, fake_db):
        resp = client.delete("/api/classrooms/not-a-uuid", headers=auth_headers())
        assert resp.status_code == 400
        assert fake_db.statements == []

    def test_delete_missing(self, client, fake_db):
        fake_db.on("DELETE FROM classrooms", rowcount=0)
        resp = client.delete(f"/api/classrooms/{ROOM_ID}", headers=auth_headers())
        assert resp.status_code == 404

    def test_delete_ok(self, client, fake_db):
        resp = client.delete(f"/api/classrooms/{ROOM_ID}", headers=auth_headers())
        assert resp.status_code == 204
        assert resp.data == b""

    def test_storage_failure_is_500(self, client, fake_db):
        fake_db.fail_on("FROM classrooms")
        resp = client.get("/api/classrooms", headers=auth_headers())
        assert resp.status_code == 500
        assert resp.get_json()["error"]["code"] == "DB_ERROR"

    def test_create_class_bad_grade(self, client, fake_db):
        resp = client.post("/api/classes", json={"name": "Б"}, headers=auth_headers())
        assert resp.status_code == 400
        assert fake_db.statements == []

    def test_create_class(self, client, fake_db):
        resp = client.post("/api/classes", json={"name": "9В"}, headers=auth_headers())
        assert resp.status_code == 201
        assert resp.get_json()["data"]["gradeLevel"] == 9

    def test_bulk_classes_counts_rows(self, client, fake_db):
        """Five existing classes in one payload report updated=5."""
        resp = client.put(
            "/api/classes/bulk",
            json={"data": [class_item(n) for n in range(1, 6)]},
            headers=auth_headers(),
        )
        assert resp.status_code == 200
        assert resp.get_json() == {"message": "Classes updated", "updated": 5}
        assert fake_db.commits == 1

    def test_bulk_classes_malformed_entry(self, client, fake_db):
        item = {**class_item(1), "subjects": ["not-an-object"]}
        resp = client.put("/api/classes/bulk", json={"data": [item]}, headers=auth_headers())
        assert resp.status_code == 400
        assert resp.get_json()["error"]["details"] == {"field": "subjects"}
        assert fake_db.statements == []

    def test_bulk_teachers_malformed_id(self, client, fake_db):
        resp = client.patch(
            "/api/users/Teachers/bulk",
            json={"data": [{"id": "bad", "firstName": "Анна", "lastName": "Иванова"}]},
            headers=auth_headers(),
        )
        assert resp.status_code == 400
        assert fake_db.statements == []

    def test_schedule_not_found(self, client, fake_db):
        resp = client.get("/api/schedule/aaaaaaaa-0000-4000-8000-000000000009", headers=auth_headers())
        assert resp.status_code == 404
        assert resp.get_json()["error"]["code"] == "NOT_FOUND"

    def test_unknown_route_uses_envelope(self, client):
        resp = client.get("/api/nope")
        assert resp.status_code == 404
        assert resp.get_json()["ok"] is False

    def test_health(self, client):
        resp = client.get("/api/health")
        assert resp.status_code == 200
        assert resp.get_json()["data"]["status"] == "ok"


class TestCors:
    def test_unlisted_origin_gets_no_grant(self, client):
        resp = client.get("/api/health", headers={"Origin": "https://evil.example"})
        assert "Access-Control-Allow-Origin" not in resp.headers
        assert "Access-Control-Allow-Credentials" not in resp.headers

    def test_listed_origin_echoed_with_credentials(self, client):
        resp = client.options(
            "/api/classrooms",
            headers={"Origin": "http://localhost:3000", "Access-Control-Request-Method": "GET"},
        )
        assert resp.headers["Access-Control-Allow-Origin"] == "http://localhost:3000"
        assert resp.headers["Access-Control-Allow-Credentials"] == "true"

    def test_wildcard_never_sends_credentials(self, monkeypatch):
        monkeypatch.setattr(config, "CORS_ORIGINS", ["*"])
        app = create_app()
        resp = app.test_client().get("/api/health", headers={"Origin": "https://evil.example"})
        assert "Access-Control-Allow-Credentials" not in resp.headers
