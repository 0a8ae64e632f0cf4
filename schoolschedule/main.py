from __future__ import annotations

import json
import logging
import os
import signal
import threading
import time
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any

import click
from flask import Flask, Response, abort, g, request
from flask_cors import CORS
from mysql.connector import Error as MySQLError  # type: ignore
from werkzeug.exceptions import HTTPException
from werkzeug.serving import make_server

from schoolschedule import config, services
from schoolschedule.auth import ACCESS_COOKIE, REFRESH_COOKIE, CurrentUser, extract_bearer, require_auth, require_teacher
from schoolschedule.db import apply_schema
from schoolschedule.errors import APIError, NotFoundError, ValidationError
from schoolschedule.logging_config import is_configured, log_request, setup_logging
from schoolschedule.repositories import classes as classes_repo
from schoolschedule.repositories import classrooms as classrooms_repo
from schoolschedule.repositories import schedules as schedules_repo
from schoolschedule.repositories import subjects as subjects_repo
from schoolschedule.repositories import teachers as teachers_repo
from schoolschedule.repositories import users as users_repo
from schoolschedule.schedule_input import build_slot_plan, parse_uuid

"""
HTTP layer of the timetable backend:
- JSON envelope helpers
- error mapping (APIError / HTTP / MySQL / everything else)
- all routes under API_BASE
- threaded server with bounded graceful shutdown
"""

log = logging.getLogger(__name__)


# ------------------------------------------------------------
# Response helpers
# ------------------------------------------------------------


def _to_jsonable(v: Any) -> Any:
    if v is None:
        return None
    if isinstance(v, (str, int, float, bool)):
        return v
    if hasattr(v, "to_dict"):
        return v.to_dict()
    if isinstance(v, Decimal):
        return float(v)
    if isinstance(v, (datetime, date)):
        return v.isoformat()
    if isinstance(v, (tuple, set, frozenset)):
        return list(v)
    return str(v)


def _jsonify(data: Any, status: int = 200) -> Response:
    def default(o: Any) -> Any:
        return _to_jsonable(o)

    return Response(
        json.dumps(data, ensure_ascii=False, default=default),
        status=status,
        content_type="application/json; charset=utf-8",
    )


def _ok(data: Any | None = None, status: int = 200) -> Response:
    return _jsonify({"ok": True, "data": data}, status=status)


def _err(message: str, *, status: int, code: str | None = None, details: Any | None = None) -> Response:
    payload: dict[str, Any] = {"ok": False, "error": {"message": message}}
    if code:
        payload["error"]["code"] = code
    if details is not None:
        payload["error"]["details"] = details
    return _jsonify(payload, status=status)


def _no_content() -> Response:
    return Response(status=204)


def _parse_int(name: str, v: Any, *, min_v: int | None = None, max_v: int | None = None) -> int:
    if isinstance(v, bool):
        abort(400, description=f"Invalid int for {name}")
    try:
        n = int(v)
    except (TypeError, ValueError):
        abort(400, description=f"Invalid int for {name}")
    if min_v is not None and n < min_v:
        abort(400, description=f"{name} must be >= {min_v}")
    if max_v is not None and n > max_v:
        abort(400, description=f"{name} must be <= {max_v}")
    return n


def _parse_bool(v: Any) -> bool:
    if isinstance(v, bool):
        return v
    if v is None:
        return False
    s = str(v).strip().lower()
    return s in {"1", "true", "yes", "y", "on"}


def _json_body() -> dict[str, Any]:
    body = request.get_json(silent=True)
    if body is None:
        return {}
    if not isinstance(body, dict):
        abort(400, description="JSON object expected")
    return body


def _required_str(body: dict[str, Any], key: str) -> str:
    v = body.get(key)
    if not isinstance(v, str) or not v.strip():
        raise ValidationError(f"{key} is required", field=key)
    return v.strip()


def _optional_str(body: dict[str, Any], key: str) -> str | None:
    v = body.get(key)
    if v is None:
        return None
    if not isinstance(v, str):
        raise ValidationError(f"{key} must be a string", field=key)
    return v.strip() or None


def _set_session_cookies(resp: Response, session: dict[str, Any]) -> None:
    common: dict[str, Any] = {"path": "/", "httponly": True, "secure": config.COOKIE_SECURE, "samesite": "Lax"}
    resp.set_cookie(ACCESS_COOKIE, session["accessToken"], max_age=config.ACCESS_TOKEN_TTL, **common)
    resp.set_cookie(REFRESH_COOKIE, session["refreshToken"], max_age=config.REFRESH_TOKEN_TTL, **common)


def _clear_session_cookies(resp: Response) -> None:
    resp.delete_cookie(ACCESS_COOKIE, path="/")
    resp.delete_cookie(REFRESH_COOKIE, path="/")


def create_app() -> Flask:
    if not is_configured():
        setup_logging("schoolschedule", config.LOG_FILE, config.LOG_LEVEL)

    app = Flask(__name__)
    API_BASE = config.API_BASE
    # a wildcard origin never gets cookies
    CORS(
        app,
        resources={rf"{API_BASE}/*": {"origins": config.CORS_ORIGINS}},
        supports_credentials="*" not in config.CORS_ORIGINS,
    )

    # ------------------------------------------------------------
    # Request logging
    # ------------------------------------------------------------
    @app.before_request
    def _start_timer() -> None:
        g.request_started = time.perf_counter()

    @app.after_request
    def _log_request(resp: Response) -> Response:
        started = getattr(g, "request_started", None)
        duration = time.perf_counter() - started if started is not None else 0.0
        u: CurrentUser | None = getattr(g, "current_user", None)
        log_request(log, request.method, request.path, resp.status_code, duration, u.id if u else None)
        return resp

    # ------------------------------------------------------------
    # Error handling
    # ------------------------------------------------------------
    @app.errorhandler(APIError)
    def _eapi(e: APIError):  # type: ignore[no-untyped-def]
        details = None
        if isinstance(e, ValidationError) and e.field:
            details = {"field": e.field}
        if e.status_code >= 500:
            log.error("%s: %s", e.code, e.message, exc_info=e)
        return _err(e.message, status=e.status_code, code=e.code, details=details)

    @app.errorhandler(HTTPException)
    def _ehttp(e: HTTPException):  # type: ignore[no-untyped-def]
        codes = {400: "BAD_REQUEST", 401: "UNAUTHORIZED", 403: "FORBIDDEN", 404: "NOT_FOUND", 405: "METHOD_NOT_ALLOWED"}
        status = e.code or 500
        return _err(e.description or e.name, status=status, code=codes.get(status, "HTTP_ERROR"))

    @app.errorhandler(MySQLError)
    def _edb(e):  # type: ignore[no-untyped-def]
        log.error("Database error", exc_info=e)
        return _err("database error", status=500, code="DB_ERROR")

    @app.errorhandler(Exception)
    def _e500(e):  # type: ignore[no-untyped-def]
        log.exception("Unhandled error on %s %s", request.method, request.path)
        return _err("internal server error", status=500, code="INTERNAL_ERROR")

    # ------------------------------------------------------------
    # CLI
    # ------------------------------------------------------------
    @app.cli.command("init-db")
    def init_db_command() -> None:
        """Create the tables from schema.sql."""
        n = apply_schema()
        click.echo(f"Applied {n} statements")

    # ------------------------------------------------------------
    # Meta / health
    # ------------------------------------------------------------
    @app.get(f"{API_BASE}/health")
    def health() -> Response:
        return _ok({"status": "ok", "time": datetime.now(timezone.utc).isoformat()})

    # ------------------------------------------------------------
    # Auth
    # ------------------------------------------------------------
    @app.post(f"{API_BASE}/auth/login")
    def auth_login() -> Response:
        body = _json_body()
        session = services.login(str(body.get("email") or ""), str(body.get("password") or ""))
        resp = _jsonify(session)
        _set_session_cookies(resp, session)
        return resp

    @app.post(f"{API_BASE}/auth/refresh")
    def auth_refresh() -> Response:
        session = services.refresh(extract_bearer(request) or request.cookies.get(REFRESH_COOKIE))
        resp = _jsonify(session)
        _set_session_cookies(resp, session)
        return resp

    @app.post(f"{API_BASE}/auth/logout")
    @require_auth
    def auth_logout() -> Response:
        resp = _ok({"message": "logged out"})
        _clear_session_cookies(resp)
        return resp

    @app.get(f"{API_BASE}/auth/me")
    @require_auth
    def auth_me() -> Response:
        u: CurrentUser = g.current_user
        return _ok({"id": u.id, "email": u.email, "role": u.role, "name": users_repo.get_display_name(u.id)})

    # ------------------------------------------------------------
    # Classrooms
    # ------------------------------------------------------------
    @app.get(f"{API_BASE}/classrooms")
    @require_auth
    def classrooms_list() -> Response:
        return _ok(classrooms_repo.list_classrooms())

    @app.post(f"{API_BASE}/classrooms")
    @require_auth
    def classrooms_create() -> Response:
        body = _json_body()
        capacity = body.get("capacity")
        room = classrooms_repo.create_classroom(
            _required_str(body, "name"),
            _parse_int("capacity", capacity, min_v=0) if capacity is not None else None,
        )
        return _ok(room, status=201)

    @app.delete(f"{API_BASE}/classrooms/<classroom_id>")
    @require_auth
    def classrooms_delete(classroom_id: str) -> Response:
        if not classrooms_repo.delete_classroom(parse_uuid(classroom_id, "classroom id")):
            raise NotFoundError("classroom not found")
        return _no_content()

    # ------------------------------------------------------------
    # Subjects
    # ------------------------------------------------------------
    @app.get(f"{API_BASE}/subjects")
    @require_auth
    def subjects_list() -> Response:
        return _ok(subjects_repo.list_subjects())

    @app.post(f"{API_BASE}/subjects")
    @require_auth
    def subjects_create() -> Response:
        body = _json_body()
        subject = subjects_repo.create_subject(_required_str(body, "name"), _optional_str(body, "shortName"))
        return _ok(subject, status=201)

    @app.delete(f"{API_BASE}/subjects/<subject_id>")
    @require_auth
    def subjects_delete(subject_id: str) -> Response:
        if not subjects_repo.delete_subject(parse_uuid(subject_id, "subject id")):
            raise NotFoundError("subject not found")
        return _no_content()

    # ------------------------------------------------------------
    # Classes
    # ------------------------------------------------------------
    @app.get(f"{API_BASE}/classes")
    @require_auth
    def classes_list() -> Response:
        return _ok(classes_repo.list_classes())

    @app.post(f"{API_BASE}/classes")
    @require_auth
    def classes_create() -> Response:
        body = _json_body()
        return _ok(services.create_class(_required_str(body, "name")), status=201)

    @app.delete(f"{API_BASE}/classes/<class_id>")
    @require_auth
    def classes_delete(class_id: str) -> Response:
        if not classes_repo.delete_class(parse_uuid(class_id, "class id")):
            raise NotFoundError("class not found")
        return _no_content()

    @app.put(f"{API_BASE}/classes/bulk")
    @require_auth
    def classes_bulk() -> Response:
        updated = services.bulk_update_classes(_json_body().get("data"))
        return _jsonify({"message": "Classes updated", "updated": updated})

    # ------------------------------------------------------------
    # Teachers
    # ------------------------------------------------------------
    @app.get(f"{API_BASE}/users/Teachers")
    @require_auth
    def teachers_list() -> Response:
        return _ok(teachers_repo.list_teachers_full())

    @app.get(f"{API_BASE}/users/LightTeachers")
    @require_auth
    def teachers_light() -> Response:
        return _ok(teachers_repo.list_teachers_light())

    @app.post(f"{API_BASE}/users/Teachers")
    @require_auth
    def teachers_create() -> Response:
        body = _json_body()
        teacher = teachers_repo.create_teacher(
            _required_str(body, "firstName"),
            _required_str(body, "lastName"),
            _optional_str(body, "patronymic"),
        )
        return _ok(teacher, status=201)

    @app.delete(f"{API_BASE}/users/Teachers/<teacher_id>")
    @require_auth
    def teachers_delete(teacher_id: str) -> Response:
        if not teachers_repo.delete_teacher(parse_uuid(teacher_id, "teacher id")):
            raise NotFoundError("teacher not found")
        return _no_content()

    @app.patch(f"{API_BASE}/users/Teachers/bulk")
    @require_auth
    def teachers_bulk() -> Response:
        updated = services.bulk_update_teachers(_json_body().get("data"))
        return _jsonify({"message": "Teachers updated", "updated": updated})

    # ------------------------------------------------------------
    # Schedule
    # ------------------------------------------------------------
    @app.get(f"{API_BASE}/schedule")
    @require_auth
    @require_teacher
    def schedule_mine() -> Response:
        u: CurrentUser = g.current_user
        return _ok(schedules_repo.get_schedule_for_teacher(u.teacher_id))

    @app.put(f"{API_BASE}/schedule")
    @require_auth
    def schedule_replace_active() -> Response:
        plan = build_slot_plan(_json_body().get("data"))
        schedule_id = schedules_repo.replace_active_schedule(plan)
        return _ok({"message": "Schedule successfully saved", "scheduleId": schedule_id})

    @app.post(f"{API_BASE}/schedule/generate")
    @require_auth
    def schedule_generate() -> Response:
        return _ok(services.generate_schedule(_json_body()))

    @app.get(f"{API_BASE}/schedules")
    @require_auth
    def schedules_list() -> Response:
        return _ok(schedules_repo.list_schedules())

    @app.post(f"{API_BASE}/schedule")
    @require_auth
    def schedule_create() -> Response:
        body = _json_body()
        plan = build_slot_plan(body.get("scheduleSlots") or [])
        created = schedules_repo.create_schedule(
            _required_str(body, "name"),
            plan,
            academic_year=_optional_str(body, "academicYear"),
            is_active=_parse_bool(body.get("isActive")),
        )
        return _ok(created, status=201)

    @app.get(f"{API_BASE}/schedule/<schedule_id>")
    @require_auth
    def schedule_get(schedule_id: str) -> Response:
        schedule = schedules_repo.get_schedule(parse_uuid(schedule_id, "schedule id"))
        if schedule is None:
            raise NotFoundError("schedule not found")
        return _ok(schedule)

    @app.get(f"{API_BASE}/schedule/<schedule_id>/days")
    @require_auth
    def schedule_days(schedule_id: str) -> Response:
        sid = parse_uuid(schedule_id, "schedule id")
        if schedules_repo.get_schedule(sid) is None:
            raise NotFoundError("schedule not found")
        return _ok(schedules_repo.get_schedule_days(sid))

    @app.put(f"{API_BASE}/schedule/<schedule_id>")
    @require_auth
    def schedule_update(schedule_id: str) -> Response:
        sid = parse_uuid(schedule_id, "schedule id")
        body = _json_body()
        plan = build_slot_plan(body.get("scheduleSlots") or [])
        schedules_repo.update_schedule(sid, _optional_str(body, "name"), plan)
        return _ok(schedules_repo.get_schedule(sid))

    @app.post(f"{API_BASE}/schedule/<schedule_id>/activate")
    @require_auth
    def schedule_activate(schedule_id: str) -> Response:
        return _ok(schedules_repo.set_active_schedule(parse_uuid(schedule_id, "schedule id")))

    @app.delete(f"{API_BASE}/schedule/<schedule_id>")
    @require_auth
    def schedule_delete(schedule_id: str) -> Response:
        schedules_repo.delete_schedule(parse_uuid(schedule_id, "schedule id"))
        return _no_content()

    return app


app = create_app()


def serve(flask_app: Flask = app) -> None:
    """
    Threaded server. SIGINT/SIGTERM stop accepting, then in-flight requests
    get SHUTDOWN_TIMEOUT seconds to finish before the process is forced down.
    """
    server = make_server(config.SERVER_HOST, config.SERVER_PORT, flask_app, threaded=True)
    # request threads must be joinable on close
    server.daemon_threads = False

    stop = threading.Event()

    def _on_signal(signum: int, _frame: Any) -> None:
        log.info("Received signal %s", signum)
        stop.set()

    signal.signal(signal.SIGINT, _on_signal)
    signal.signal(signal.SIGTERM, _on_signal)

    worker = threading.Thread(target=server.serve_forever, name="http-server")
    worker.start()
    log.info("Server starting on %s:%s", config.SERVER_HOST, config.SERVER_PORT)

    while not stop.wait(0.5):
        pass

    log.info("Server is shutting down...")
    server.shutdown()
    worker.join()

    closer = threading.Thread(target=server.server_close, name="http-drain", daemon=True)
    closer.start()
    closer.join(config.SHUTDOWN_TIMEOUT)
    if closer.is_alive():
        log.error("Forced shutdown: requests still running after %ss", config.SHUTDOWN_TIMEOUT)
        logging.shutdown()
        os._exit(1)
    log.info("Server exited cleanly")


def main() -> None:
    serve()


if __name__ == "__main__":
    main()
