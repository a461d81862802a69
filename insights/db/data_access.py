"""Read access to the CRM tables.

Aggregators depend on the ``DataAccessLayer`` protocol only. Rows come back as
plain dicts (nested relationships included) so the aggregation code never
touches an ORM session and tests can substitute an in-memory implementation.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, Protocol, Sequence

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from insights.core.exceptions import DataAccessError, UnknownTableError
from insights.db.base_class import Base
from insights.models.models import TABLES

logger = logging.getLogger(__name__)

Row = dict[str, Any]


@dataclass(frozen=True)
class Filter:
    """One predicate of a select; filters of a query are AND-ed.

    Rows whose column is NULL never match a comparison or membership test.
    """

    column: str
    op: str
    value: Any

    @classmethod
    def eq(cls, column: str, value: Any) -> Filter:
        return cls(column, "eq", value)

    @classmethod
    def in_(cls, column: str, values: Iterable[Any]) -> Filter:
        return cls(column, "in", tuple(values))

    @classmethod
    def gte(cls, column: str, value: Any) -> Filter:
        return cls(column, "gte", value)

    @classmethod
    def gt(cls, column: str, value: Any) -> Filter:
        return cls(column, "gt", value)

    @classmethod
    def lte(cls, column: str, value: Any) -> Filter:
        return cls(column, "lte", value)

    @classmethod
    def lt(cls, column: str, value: Any) -> Filter:
        return cls(column, "lt", value)


@dataclass(frozen=True)
class Order:
    column: str
    descending: bool = True


class DataAccessLayer(Protocol):
    """Filtered, ordered, limited reads scoped by the caller's filters."""

    async def select(
        self,
        table: str,
        *,
        columns: Sequence[str] | None = None,
        filters: Sequence[Filter] = (),
        order: Order | None = None,
        limit: int | None = None,
    ) -> list[Row]:
        ...

    async def count(self, table: str, *, filters: Sequence[Filter] = ()) -> int:
        ...


def _bind_value(value: Any) -> Any:
    # Stored timestamps are UTC; SQLite keeps them without an offset
    if isinstance(value, datetime) and value.tzinfo is not None:
        return value.astimezone(timezone.utc)
    return value


class SqlAlchemyDataAccess:
    """``DataAccessLayer`` over the SQLAlchemy models.

    Each call runs in a worker thread with its own session, so the sub-queries
    an aggregator fires together really do run concurrently.
    """

    def __init__(self, session_factory: Callable[[], Session] | None = None):
        if session_factory is None:
            from insights.db.session import SessionLocal

            session_factory = SessionLocal
        self._session_factory = session_factory

    async def select(
        self,
        table: str,
        *,
        columns: Sequence[str] | None = None,
        filters: Sequence[Filter] = (),
        order: Order | None = None,
        limit: int | None = None,
    ) -> list[Row]:
        return await asyncio.to_thread(self._select, table, columns, tuple(filters), order, limit)

    async def count(self, table: str, *, filters: Sequence[Filter] = ()) -> int:
        return await asyncio.to_thread(self._count, table, tuple(filters))

    # ----------------------------------------------------------------- internals

    def _model(self, table: str) -> type[Base]:
        try:
            return TABLES[table]
        except KeyError:
            raise UnknownTableError(table) from None

    def _column(self, model: type[Base], table: str, name: str):
        if name not in model.__table__.columns:
            raise UnknownTableError(table, name)
        return getattr(model, name)

    def _clause(self, model: type[Base], table: str, flt: Filter):
        column = self._column(model, table, flt.column)
        value = _bind_value(flt.value)
        if flt.op == "eq":
            return column.is_(None) if value is None else column == value
        if flt.op == "in":
            return column.in_([_bind_value(v) for v in value])
        if flt.op == "gte":
            return column >= value
        if flt.op == "gt":
            return column > value
        if flt.op == "lte":
            return column <= value
        if flt.op == "lt":
            return column < value
        raise ValueError(f"Unsupported filter operator: {flt.op}")

    def _eager_options(self, model: type[Base], names: Iterable[str]) -> list:
        options = []
        for name in names:
            attr = getattr(model, name)
            target = attr.property.mapper.class_
            option = selectinload(attr)
            nested = self._eager_options(target, target.__snapshot_relations__)
            if nested:
                option = option.options(*nested)
            options.append(option)
        return options

    def _select(
        self,
        table: str,
        columns: Sequence[str] | None,
        filters: tuple[Filter, ...],
        order: Order | None,
        limit: int | None,
    ) -> list[Row]:
        model = self._model(table)
        relations = model.__snapshot_relations__
        if columns is not None:
            for name in columns:
                if name not in relations:
                    self._column(model, table, name)
            relations = tuple(name for name in relations if name in columns)

        stmt = select(model)
        for flt in filters:
            stmt = stmt.where(self._clause(model, table, flt))
        if order is not None:
            column = self._column(model, table, order.column)
            stmt = stmt.order_by(column.desc() if order.descending else column.asc())
        if limit is not None:
            stmt = stmt.limit(limit)
        if relations:
            stmt = stmt.options(*self._eager_options(model, relations))

        try:
            with self._session_factory() as session:
                rows = session.scalars(stmt).all()
                return [row.snapshot(list(columns) if columns is not None else None) for row in rows]
        except SQLAlchemyError as exc:
            logger.error("Select on %s failed: %s", table, exc)
            raise DataAccessError(table, exc.__class__.__name__) from exc

    def _count(self, table: str, filters: tuple[Filter, ...]) -> int:
        model = self._model(table)
        stmt = select(func.count()).select_from(model)
        for flt in filters:
            stmt = stmt.where(self._clause(model, table, flt))
        try:
            with self._session_factory() as session:
                return int(session.scalar(stmt) or 0)
        except SQLAlchemyError as exc:
            logger.error("Count on %s failed: %s", table, exc)
            raise DataAccessError(table, exc.__class__.__name__) from exc
