from fastapi import APIRouter, Request

from insights.api.dependencies import ClockDep, DataAccessDep, OrgIdDep, QueryCacheDep
from insights.api.rate_limit import DASHBOARD_LIMIT, limiter
from insights.models.schemas import PerformanceMetrics, ReportsData
from insights.services.cache_service import QueryCache
from insights.services.performance_service import PerformanceMetricsAggregator
from insights.services.reports_service import ReportsAggregator

router = APIRouter()


@router.get("", response_model=ReportsData)
@limiter.limit(DASHBOARD_LIMIT)
async def reports(
    request: Request,
    org_id: OrgIdDep,
    data_access: DataAccessDep,
    cache: QueryCacheDep,
    clock: ClockDep,
) -> ReportsData:
    """Conversion, margin, site and energy reports for the current year."""
    aggregator = ReportsAggregator(data_access, org_id, clock=clock)
    return await cache.fetch(QueryCache.key(aggregator.name, org_id), aggregator.run, ReportsData)


@router.get("/performance", response_model=PerformanceMetrics)
@limiter.limit(DASHBOARD_LIMIT)
async def performance(
    request: Request,
    org_id: OrgIdDep,
    data_access: DataAccessDep,
    cache: QueryCacheDep,
    clock: ClockDep,
) -> PerformanceMetrics:
    aggregator = PerformanceMetricsAggregator(data_access, org_id, clock=clock)
    return await cache.fetch(QueryCache.key(aggregator.name, org_id), aggregator.run, PerformanceMetrics)
