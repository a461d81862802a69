import logging

from slowapi import Limiter
from slowapi.util import get_remote_address
from starlette.requests import Request

from insights import metrics
from insights.core.config import settings

logger = logging.getLogger(__name__)


def get_org_identifier(request: Request) -> str:
    """Rate-limit key: the organization header when present, else the client IP.

    Example:
        >>> get_org_identifier(request)
        'org:acme'       # X-Org-Id: acme
        '10.0.0.1'       # no organization header
    """
    org_id = (request.headers.get("X-Org-Id") or "").strip()
    if org_id:
        return f"org:{org_id}"
    return get_remote_address(request)


def _storage_uri() -> str:
    if settings.ENV.lower() != "prod" or not settings.REDIS_URL:
        logger.info("Rate limiter using in-memory storage")
        return "memory://"
    return settings.REDIS_URL


limiter = Limiter(key_func=get_org_identifier, storage_uri=_storage_uri())

DASHBOARD_LIMIT = settings.RATE_LIMIT_DASHBOARD


def increment_rate_limit_exceeded() -> None:
    metrics.rate_limit_exceeded()
