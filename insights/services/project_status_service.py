"""Per-organization project-status configuration.

The repository is an explicit, injected cache: entries live until
``invalidate()`` or ``refresh()`` is called for the organization.
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field

from insights.db.data_access import DataAccessLayer, Filter
from insights.models.statuses import (
    ACCEPTED_PROJECT_STATUS,
    PROJECT_SURFACE_STATUSES,
    ProjectStatusSetting,
    sanitize_project_statuses,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProjectStatusConfig:
    """Sanitized status list of one organization and the sets derived from it."""

    statuses: tuple[ProjectStatusSetting, ...]
    accepted_value: str = ACCEPTED_PROJECT_STATUS
    _labels: dict[str, str] = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        object.__setattr__(self, "_labels", {s.value: s.label for s in self.statuses})

    @property
    def active_values(self) -> frozenset[str]:
        """Statuses counted as "in progress"."""
        return frozenset(s.value for s in self.statuses if s.is_active)

    @property
    def surface_values(self) -> frozenset[str]:
        """Configured statuses whose installed products count toward surface and energy totals."""
        return frozenset(s.value for s in self.statuses if s.is_active or s.value in PROJECT_SURFACE_STATUSES)

    @property
    def fetch_values(self) -> tuple[str, ...]:
        return tuple(sorted(self.active_values | self.surface_values))

    def label_for(self, value: str | None) -> str | None:
        if value is None:
            return None
        return self._labels.get(value, value)


class ProjectStatusRepository:
    """Loads and caches ``ProjectStatusConfig`` per organization."""

    def __init__(self, data_access: DataAccessLayer):
        self._data = data_access
        self._cache: dict[str, ProjectStatusConfig] = {}

    async def get(self, org_id: str) -> ProjectStatusConfig:
        cached = self._cache.get(org_id)
        if cached is not None:
            return cached
        return await self.refresh(org_id)

    async def refresh(self, org_id: str) -> ProjectStatusConfig:
        rows = await self._data.select(
            "settings",
            columns=["statuts_projets"],
            filters=[Filter.eq("org_id", org_id)],
            limit=1,
        )
        raw = rows[0].get("statuts_projets") if rows else None
        config = ProjectStatusConfig(tuple(sanitize_project_statuses(self._parse(org_id, raw))))
        self._cache[org_id] = config
        return config

    def invalidate(self, org_id: str | None = None) -> None:
        if org_id is None:
            self._cache.clear()
        else:
            self._cache.pop(org_id, None)

    @staticmethod
    def _parse(org_id: str, raw) -> list[dict | ProjectStatusSetting] | None:
        if raw is None:
            return None
        if isinstance(raw, str):
            try:
                raw = json.loads(raw)
            except ValueError:
                logger.warning("Ignoring malformed project statuses for org=%s", org_id)
                return None
        if not isinstance(raw, list):
            logger.warning("Ignoring project statuses of type %s for org=%s", type(raw).__name__, org_id)
            return None
        entries = [entry for entry in raw if isinstance(entry, (dict, ProjectStatusSetting))]
        if len(entries) != len(raw):
            logger.warning("Dropped %d malformed project status entries for org=%s", len(raw) - len(entries), org_id)
        return entries
