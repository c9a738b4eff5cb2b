# tests/conftest.py
from pathlib import Path
from typing import List, Optional, Set

import psycopg
import pytest

from totalrecall.database import MetricsDBManager

SCHEMA_NAME = "totalrecall"
TABLE_NAME = "metrics"


class FakeCursor:
    def __init__(self, rows: List[tuple]):
        self._rows = rows

    def fetchall(self) -> List[tuple]:
        return list(self._rows)

    def fetchone(self) -> Optional[tuple]:
        return self._rows[0] if self._rows else None


class FakeConnection:
    """Buffers writes until commit, like a psycopg connection outside autocommit."""

    def __init__(self, db: "FakeDatabase"):
        self.db = db
        self.pending_rows: List[tuple] = []
        self.pending_schemas: Set[str] = set()
        self.closed = False

    def execute(self, query, params=None) -> FakeCursor:
        # psycopg.sql.Composed has no context-free string form; its repr keeps the SQL fragments.
        text = query if isinstance(query, str) else repr(query)
        self.db.statements.append(text)

        if "pg_namespace" in text:
            if self.db.count_rows_override is not None:
                return FakeCursor(self.db.count_rows_override)
            exists = params[0] in (self.db.schemas | self.pending_schemas)
            return FakeCursor([(1 if exists else 0,)])

        if "CREATE SCHEMA" in text:
            if self.db.fail_on_create:
                raise psycopg.ProgrammingError("permission denied for database")
            self.pending_schemas.add(SCHEMA_NAME)
            return FakeCursor([])

        if "INSERT INTO" in text:
            self.db.insert_attempts += 1
            if self.db.fail_on_insert == self.db.insert_attempts:
                raise psycopg.DataError("invalid input syntax for type timestamp")
            self.pending_rows.append(tuple(params))
            return FakeCursor([])

        raise AssertionError(f"Unexpected statement: {text}")

    def commit(self) -> None:
        self.db.rows.extend(self.pending_rows)
        self.db.schemas |= self.pending_schemas
        self.db.commits += 1
        self.pending_rows, self.pending_schemas = [], set()

    def rollback(self) -> None:
        self.db.rollbacks += 1
        self.pending_rows, self.pending_schemas = [], set()

    def close(self) -> None:
        self.closed = True


class FakeDatabase:
    def __init__(self) -> None:
        self.schemas: Set[str] = set()
        self.rows: List[tuple] = []
        self.statements: List[str] = []
        self.count_rows_override: Optional[List[tuple]] = None
        self.fail_on_insert: Optional[int] = None
        self.fail_on_create = False
        self.insert_attempts = 0
        self.commits = 0
        self.rollbacks = 0
        self.connections: List[FakeConnection] = []

    def connect(self) -> FakeConnection:
        conn = FakeConnection(self)
        self.connections.append(conn)
        return conn

    def count_statements(self, fragment: str) -> int:
        return sum(1 for s in self.statements if fragment in s)


@pytest.fixture
def fake_db() -> FakeDatabase:
    return FakeDatabase()


@pytest.fixture
def metrics_manager(fake_db: FakeDatabase) -> MetricsDBManager:
    return MetricsDBManager("test", SCHEMA_NAME, TABLE_NAME, connection_factory=fake_db.connect)


@pytest.fixture
def lock_path(tmp_path: Path) -> Path:
    return tmp_path / "totalrecall.lock"


@pytest.fixture
def metrics_path(tmp_path: Path) -> Path:
    return tmp_path / "totalrecall.metrics"
