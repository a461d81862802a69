from datetime import date

from fastapi import APIRouter, Query, Request

from insights.api.dependencies import ClockDep, DataAccessDep, OrgIdDep, QueryCacheDep
from insights.api.rate_limit import DASHBOARD_LIMIT, limiter
from insights.models.schemas import AccountingMetrics
from insights.services.accounting_service import AccountingMetricsAggregator
from insights.services.cache_service import QueryCache

router = APIRouter()


@router.get("/metrics", response_model=AccountingMetrics)
@limiter.limit(DASHBOARD_LIMIT)
async def accounting_metrics(
    request: Request,
    org_id: OrgIdDep,
    data_access: DataAccessDep,
    cache: QueryCacheDep,
    clock: ClockDep,
    reference_date: date | None = Query(None, description="Any day of the month to report (defaults to today)"),
) -> AccountingMetrics:
    """Billed revenue, collected VAT, outstanding balance and cash received for one month."""
    aggregator = AccountingMetricsAggregator(data_access, org_id, reference_date=reference_date, clock=clock)
    key = QueryCache.key(aggregator.name, org_id, reference_date=reference_date)
    return await cache.fetch(key, aggregator.run, AccountingMetrics)
