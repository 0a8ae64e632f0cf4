"""Shared fixtures: a recording stand-in for the MySQL pool."""

import os
import tempfile
import threading
from pathlib import Path

import pytest

os.environ.setdefault("LOG_FILE", str(Path(tempfile.gettempdir()) / "schoolschedule-tests.log"))
os.environ.setdefault("JWT_SECRET", "test-secret-with-enough-bytes-for-hs256")

from mysql.connector import Error as MySQLError  # noqa: E402

from schoolschedule import db  # noqa: E402


def normalize(sql):
    return " ".join(sql.split())


class FakeDB:
    """
    Records every statement from every cursor, in order.

    `on(fragment, rows=..., rowcount=...)` scripts the answer for statements
    containing `fragment` (first matching rule wins); `fail_on(fragment)`
    makes such a statement raise a MySQL error.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self.statements = []
        self.rules = []
        self.failures = []
        self.commits = 0
        self.rollbacks = 0
        self.closed = 0

    def on(self, fragment, rows=None, rowcount=None):
        self.rules.append((fragment, list(rows or []), rowcount))
        return self

    def fail_on(self, fragment):
        self.failures.append(fragment)
        return self

    def sql(self):
        return [s for s, _ in self.statements]

    def matching(self, fragment):
        return [(s, p) for s, p in self.statements if fragment in s]

    def run(self, sql, params):
        sql = normalize(sql)
        with self._lock:
            self.statements.append((sql, tuple(params or ())))
        for fragment in self.failures:
            if fragment in sql:
                raise MySQLError(msg=f"simulated failure on {fragment}")
        for fragment, rows, rowcount in self.rules:
            if fragment in sql:
                return rows, (rowcount if rowcount is not None else max(len(rows), 1))
        return [], 1


class FakeCursor:
    def __init__(self, fake):
        self._fake = fake
        self._rows = []
        self.rowcount = -1

    def execute(self, sql, params=()):
        self._rows, self.rowcount = self._fake.run(sql, params)

    def fetchone(self):
        return dict(self._rows[0]) if self._rows else None

    def fetchall(self):
        return [dict(r) for r in self._rows]

    def close(self):
        pass


class FakeConnection:
    def __init__(self, fake):
        self._fake = fake

    def is_connected(self):
        return True

    def cursor(self, dictionary=True, buffered=True):
        return FakeCursor(self._fake)

    def commit(self):
        with self._fake._lock:
            self._fake.commits += 1

    def rollback(self):
        with self._fake._lock:
            self._fake.rollbacks += 1

    def close(self):
        with self._fake._lock:
            self._fake.closed += 1


class FakePool:
    def __init__(self, fake):
        self._fake = fake

    def get_connection(self):
        return FakeConnection(self._fake)


@pytest.fixture
def fake_db(monkeypatch):
    fake = FakeDB()
    monkeypatch.setattr(db, "_POOL", FakePool(fake))
    return fake


@pytest.fixture
def sequential_ids(monkeypatch):
    """Deterministic ids from schedules._new_id; call .reset() to restart the sequence."""
    from schoolschedule.repositories import schedules

    class _Seq:
        def __init__(self):
            self.n = 0

        def reset(self):
            self.n = 0

        def __call__(self):
            self.n += 1
            return f"00000000-0000-4000-8000-{self.n:012d}"

    seq = _Seq()
    monkeypatch.setattr(schedules, "_new_id", seq)
    return seq
