"""
Base aggregator with shared functionality.

Every aggregator is built for one organization and one invocation:
- Dependency Injection: data access layer and clock injected via constructor
- Organization scoping: every select goes through ``_select``/``_count``,
  which always add the ``org_id`` predicate
- Fail fast: ``_gather`` runs sub-queries concurrently and re-raises the
  first failure after cancelling the rest
"""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Any, Awaitable, Callable, Sequence

from insights import metrics
from insights.core.exceptions import MissingOrganizationError
from insights.db.data_access import DataAccessLayer, Filter, Order, Row
from insights.utils.calendar import business_now, to_local

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


class BaseAggregator:
    """
    Base class shared by the reporting aggregators.

    Subclasses implement ``_compute`` and are invoked through ``run``.
    """

    name = "aggregator"

    def __init__(self, data_access: DataAccessLayer, org_id: str | None, *, clock: Clock | None = None):
        """
        Args:
            data_access: Read access to the CRM tables
            org_id: Organization whose data is aggregated (required)
            clock: Returns "now"; defaults to the business-timezone wall clock

        Raises:
            MissingOrganizationError: ``org_id`` is empty
        """
        if org_id is None or not str(org_id).strip():
            raise MissingOrganizationError(self.name)
        self._data = data_access
        self._org_id = str(org_id).strip()
        self._clock = clock or business_now

    @property
    def org_id(self) -> str:
        return self._org_id

    def now(self) -> datetime:
        """Current instant in the business timezone."""
        return to_local(self._clock())  # type: ignore[return-value]

    async def run(self):
        with metrics.track_aggregator(self.name):
            result = await self._compute()
        logger.debug("%s computed for org=%s", self.name, self._org_id)
        return result

    async def _compute(self):  # pragma: no cover - abstract
        raise NotImplementedError

    # ------------------------------------------------------------------ queries

    async def _select(
        self,
        table: str,
        *filters: Filter,
        columns: Sequence[str] | None = None,
        order: Order | None = None,
        limit: int | None = None,
    ) -> list[Row]:
        return await self._data.select(
            table,
            columns=columns,
            filters=(Filter.eq("org_id", self._org_id), *filters),
            order=order,
            limit=limit,
        )

    async def _count(self, table: str, *filters: Filter) -> int:
        return await self._data.count(table, filters=(Filter.eq("org_id", self._org_id), *filters))

    async def _gather(self, **queries: Awaitable[Any]) -> dict[str, Any]:
        """Await all ``queries`` concurrently, keyed by name.

        The first query to fail cancels the others and its exception is
        re-raised unchanged; no partial result is returned.
        """
        tasks = {name: asyncio.ensure_future(query) for name, query in queries.items()}
        try:
            done, _ = await asyncio.wait(tasks.values(), return_when=asyncio.FIRST_EXCEPTION)
            for name, task in tasks.items():
                if task in done and not task.cancelled() and task.exception() is not None:
                    logger.warning("%s: sub-query %r failed for org=%s", self.name, name, self._org_id)
                    raise task.exception()  # type: ignore[misc]
            return {name: task.result() for name, task in tasks.items()}
        finally:
            pending = [task for task in tasks.values() if not task.done()]
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)
