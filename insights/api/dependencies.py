"""Common dependencies for the reporting routes."""
from functools import lru_cache
from typing import Annotated, TypeAlias

from fastapi import Depends, Header, Request

from insights.core.exceptions import MissingOrganizationError
from insights.db.data_access import DataAccessLayer, SqlAlchemyDataAccess
from insights.services.base import Clock
from insights.services.cache_service import QueryCache, get_cache_provider
from insights.services.project_status_service import ProjectStatusRepository


def get_org_id(x_org_id: Annotated[str | None, Header(alias="X-Org-Id")] = None) -> str:
    """Organization the request is scoped to; every reporting route requires it."""
    if x_org_id is None or not x_org_id.strip():
        raise MissingOrganizationError()
    return x_org_id.strip()


@lru_cache
def get_data_access() -> DataAccessLayer:
    return SqlAlchemyDataAccess()


def get_clock() -> Clock | None:
    """Wall clock by default; tests override it with a fixed instant."""
    return None


OrgIdDep: TypeAlias = Annotated[str, Depends(get_org_id)]
DataAccessDep: TypeAlias = Annotated[DataAccessLayer, Depends(get_data_access)]
ClockDep: TypeAlias = Annotated[Clock | None, Depends(get_clock)]


def get_status_repository(request: Request, data_access: DataAccessDep) -> ProjectStatusRepository:
    """Process-wide project-status repository, created on first use."""
    repository = getattr(request.app.state, "status_repository", None)
    if repository is None:
        repository = ProjectStatusRepository(data_access)
        request.app.state.status_repository = repository
    return repository


def get_query_cache(request: Request) -> QueryCache:
    cache = getattr(request.app.state, "query_cache", None)
    if cache is None:
        cache = QueryCache(get_cache_provider())
        request.app.state.query_cache = cache
    return cache


StatusRepositoryDep: TypeAlias = Annotated[ProjectStatusRepository, Depends(get_status_repository)]
QueryCacheDep: TypeAlias = Annotated[QueryCache, Depends(get_query_cache)]
