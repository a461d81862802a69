from __future__ import annotations

import asyncio
import copy
import fnmatch
import os
from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo

os.environ.setdefault("APP_ENV", "test")

import pytest  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import Session, sessionmaker  # noqa: E402

from insights.db.base_class import Base  # noqa: E402
from insights.db.data_access import Filter, Order, SqlAlchemyDataAccess  # noqa: E402

PARIS = ZoneInfo("Europe/Paris")

# Wednesday; the business week runs Monday 16 to Sunday 22 June
NOW = datetime(2025, 6, 18, 10, 0, tzinfo=PARIS)
ORG = "org-1"
OTHER_ORG = "org-2"


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


def _comparable(value):
    if isinstance(value, datetime) and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _matches(row: dict, flt: Filter) -> bool:
    value = _comparable(row.get(flt.column))
    target = _comparable(flt.value)
    if flt.op == "eq":
        return value is None if target is None else value == target
    if value is None:
        return False
    if flt.op == "in":
        return value in target
    if isinstance(value, datetime) != isinstance(target, datetime) and isinstance(value, date):
        raise TypeError(f"{flt.column}: cannot compare {type(value).__name__} with {type(target).__name__}")
    if flt.op == "gte":
        return value >= target
    if flt.op == "gt":
        return value > target
    if flt.op == "lte":
        return value <= target
    if flt.op == "lt":
        return value < target
    raise ValueError(flt.op)


class FakeDataAccess:
    """In-memory ``DataAccessLayer`` that records every call.

    ``failing`` maps a table to the exception its reads raise; ``delays`` maps a
    table to how long its reads take, in seconds.
    """

    def __init__(self, tables: dict[str, list[dict]] | None = None, *, failing=None, delays=None):
        self.tables = {name: list(rows) for name, rows in (tables or {}).items()}
        self.failing = dict(failing or {})
        self.delays = dict(delays or {})
        self.calls: list[tuple[str, str, tuple[Filter, ...]]] = []
        self.cancelled: list[str] = []

    def add(self, table: str, **row) -> dict:
        row.setdefault("id", len(self.tables.get(table, [])) + 1)
        row.setdefault("org_id", ORG)
        self.tables.setdefault(table, []).append(row)
        return row

    async def _wait(self, table: str) -> None:
        try:
            await asyncio.sleep(self.delays.get(table, 0))
        except asyncio.CancelledError:
            self.cancelled.append(table)
            raise
        if table in self.failing:
            raise self.failing[table]

    def _filtered(self, table: str, filters) -> list[dict]:
        return [row for row in self.tables.get(table, []) if all(_matches(row, f) for f in filters)]

    async def select(self, table, *, columns=None, filters=(), order: Order | None = None, limit=None):
        self.calls.append(("select", table, tuple(filters)))
        await self._wait(table)
        rows = self._filtered(table, filters)
        if order is not None:
            present = [r for r in rows if r.get(order.column) is not None]
            missing = [r for r in rows if r.get(order.column) is None]
            present.sort(key=lambda r: _comparable(r[order.column]), reverse=order.descending)
            rows = present + missing
        if limit is not None:
            rows = rows[:limit]
        if columns is not None:
            rows = [{k: v for k, v in row.items() if k in columns} for row in rows]
        return copy.deepcopy(rows)

    async def count(self, table, *, filters=()):
        self.calls.append(("count", table, tuple(filters)))
        await self._wait(table)
        return len(self._filtered(table, filters))


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def clock():
    return lambda: NOW


@pytest.fixture
def data_access() -> FakeDataAccess:
    return FakeDataAccess()


@pytest.fixture
def sql_session_factory(tmp_path):
    """File-backed SQLite schema; worker threads each open their own connection."""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'insights.db'}",
        future=True,
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(bind=engine, class_=Session, expire_on_commit=False)
    yield factory
    engine.dispose()


@pytest.fixture
def sql_data_access(sql_session_factory) -> SqlAlchemyDataAccess:
    return SqlAlchemyDataAccess(session_factory=sql_session_factory)


class FakeStore:
    """Dict-backed stand-in for a Redis client."""

    def __init__(self):
        self.data: dict[str, str] = {}
        self.expirations: dict[str, int | None] = {}
        self.broken = False

    def get(self, key):
        if self.broken:
            raise ConnectionError("redis down")
        return self.data.get(key)

    def set(self, key, value, ex=None):
        if self.broken:
            raise ConnectionError("redis down")
        self.data[key] = value
        self.expirations[key] = ex

    def delete(self, *keys):
        for key in keys:
            self.data.pop(key, None)

    def scan_iter(self, match=None):
        return iter([key for key in list(self.data) if match is None or fnmatch.fnmatch(key, match)])
