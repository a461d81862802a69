import logging
from datetime import date

from fastapi import APIRouter, Query, Request

from insights.api.dependencies import (
    ClockDep,
    DataAccessDep,
    OrgIdDep,
    QueryCacheDep,
    StatusRepositoryDep,
)
from insights.api.rate_limit import DASHBOARD_LIMIT, limiter
from insights.models.schemas import ActivityItem, ComparativeData, DashboardMetrics, RevenueData, SparklineData
from insights.services.activity_service import ActivityFeedMerger
from insights.services.cache_service import QueryCache
from insights.services.comparative_service import ComparativeAggregator
from insights.services.metrics_service import MetricsAggregator
from insights.services.revenue_service import RevenueTrendBuilder
from insights.services.sparkline_service import SparklineAggregator

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/metrics", response_model=DashboardMetrics)
@limiter.limit(DASHBOARD_LIMIT)
async def dashboard_metrics(
    request: Request,
    org_id: OrgIdDep,
    data_access: DataAccessDep,
    statuses: StatusRepositoryDep,
    cache: QueryCacheDep,
    clock: ClockDep,
) -> DashboardMetrics:
    """Headline counters of the dashboard."""
    aggregator = MetricsAggregator(data_access, org_id, statuses, clock=clock)
    return await cache.fetch(QueryCache.key(aggregator.name, org_id), aggregator.run, DashboardMetrics)


@router.get("/revenue", response_model=RevenueData)
@limiter.limit(DASHBOARD_LIMIT)
async def dashboard_revenue(
    request: Request,
    org_id: OrgIdDep,
    data_access: DataAccessDep,
    cache: QueryCacheDep,
    clock: ClockDep,
    start_date: date | None = Query(None, description="First day of the range (defaults to January 1st)"),
    end_date: date | None = Query(None, description="Last day of the range (defaults to today)"),
) -> RevenueData:
    """Monthly paid/invoiced series with week and year-to-date comparisons."""
    builder = RevenueTrendBuilder(data_access, org_id, start_date=start_date, end_date=end_date, clock=clock)
    key = QueryCache.key(builder.name, org_id, start_date=start_date, end_date=end_date)
    return await cache.fetch(key, builder.run, RevenueData)


@router.get("/activity", response_model=list[ActivityItem])
@limiter.limit(DASHBOARD_LIMIT)
async def dashboard_activity(
    request: Request,
    org_id: OrgIdDep,
    data_access: DataAccessDep,
    statuses: StatusRepositoryDep,
    cache: QueryCacheDep,
    clock: ClockDep,
) -> list[ActivityItem]:
    """Most recent events across leads, quotes, projects, sites and invoices."""
    merger = ActivityFeedMerger(data_access, org_id, statuses, clock=clock)
    return await cache.fetch(QueryCache.key(merger.name, org_id), merger.run, list[ActivityItem])


@router.get("/comparative", response_model=ComparativeData)
@limiter.limit(DASHBOARD_LIMIT)
async def dashboard_comparative(
    request: Request,
    org_id: OrgIdDep,
    data_access: DataAccessDep,
    cache: QueryCacheDep,
    clock: ClockDep,
    period: str = Query("month", pattern="^(week|month|quarter|custom)$"),
    start_date: date | None = Query(None, description="First day of a custom range"),
    end_date: date | None = Query(None, description="Last day of a custom range"),
) -> ComparativeData:
    """Current period against the previous one: revenue, new projects, new leads."""
    aggregator = ComparativeAggregator(
        data_access, org_id, period, start_date=start_date, end_date=end_date, clock=clock  # type: ignore[arg-type]
    )
    key = QueryCache.key(aggregator.name, org_id, period=period, start_date=start_date, end_date=end_date)
    return await cache.fetch(key, aggregator.run, ComparativeData)


@router.get("/sparkline", response_model=SparklineData)
@limiter.limit(DASHBOARD_LIMIT)
async def dashboard_sparkline(
    request: Request,
    org_id: OrgIdDep,
    data_access: DataAccessDep,
    cache: QueryCacheDep,
    clock: ClockDep,
    metric: str = Query("revenue", pattern="^(revenue|sites|leads|projects)$"),
    days: int | None = Query(None, description="Length of the series (defaults to SPARKLINE_DAYS)"),
) -> SparklineData:
    """Daily values of one KPI over the last ``days`` days."""
    aggregator = SparklineAggregator(data_access, org_id, metric, days=days, clock=clock)  # type: ignore[arg-type]
    key = QueryCache.key(aggregator.name, org_id, metric=metric, days=days)
    return await cache.fetch(key, aggregator.run, SparklineData)


@router.post("/cache/invalidate")
async def invalidate_dashboard_cache(
    org_id: OrgIdDep,
    statuses: StatusRepositoryDep,
    cache: QueryCacheDep,
) -> dict[str, str]:
    """Drop cached snapshots and the status configuration of the organization."""
    cache.invalidate(org_id)
    statuses.invalidate(org_id)
    logger.info("Dashboard cache invalidated for org=%s", org_id)
    return {"status": "invalidated"}
