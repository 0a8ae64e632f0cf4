from __future__ import annotations

import os


def _env_bool(name: str, default: bool = False) -> bool:
    v = os.environ.get(name)
    if v is None:
        return default
    return v.strip().lower() in {"1", "true", "yes", "y", "on"}


# MySQL
DB_HOST = os.environ.get("DB_HOST", "127.0.0.1")
DB_PORT = int(os.environ.get("DB_PORT", "3306"))
DB_USER = os.environ.get("DB_USER", "schedule")
DB_PASSWORD = os.environ.get("DB_PASSWORD", "")
DB_NAME = os.environ.get("DB_NAME", "school_schedule")

# Pool
# request threads hold one connection at a time, plus SCHEDULE_READ_WORKERS for
# timetable detail queries; mysql-connector caps a pool at 32
DB_POOL_SIZE = int(os.environ.get("DB_POOL_SIZE", "20"))

# HTTP
SERVER_HOST = os.environ.get("SERVER_HOST", "0.0.0.0")
SERVER_PORT = int(os.environ.get("SERVER_PORT", "8080"))
API_BASE = os.environ.get("API_BASE", "/api").rstrip("/")
# comma separated
CORS_ORIGINS = [
    o.strip()
    for o in os.environ.get("CORS_ORIGINS", "http://localhost:3000,http://localhost:5173").split(",")
    if o.strip()
]
SHUTDOWN_TIMEOUT = float(os.environ.get("SHUTDOWN_TIMEOUT", "5"))

# Tokens
JWT_SECRET = os.environ.get("JWT_SECRET", "dev-insecure-secret-change-me-in-production")
JWT_ALGORITHM = os.environ.get("JWT_ALGORITHM", "HS256")
ACCESS_TOKEN_TTL = int(os.environ.get("ACCESS_TOKEN_TTL", str(10 * 60)))  # 10 minutes
REFRESH_TOKEN_TTL = int(os.environ.get("REFRESH_TOKEN_TTL", str(7 * 24 * 60 * 60)))  # 7 days
COOKIE_SECURE = _env_bool("COOKIE_SECURE")

# Logging
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
LOG_FILE = os.environ.get("LOG_FILE") or None

# Schedule
SCHEDULE_READ_WORKERS = int(os.environ.get("SCHEDULE_READ_WORKERS", "3"))
DEFAULT_SCHEDULE_NAME = os.environ.get("DEFAULT_SCHEDULE_NAME", "Расписание")
