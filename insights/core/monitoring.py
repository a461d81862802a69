import logging

import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration

from insights.core.config import settings

logger = logging.getLogger(__name__)

_initialized = False


def init_monitoring() -> None:
    """Start Sentry once per process when a DSN is configured."""
    global _initialized
    if _initialized:
        return
    _initialized = True
    if not settings.SENTRY_DSN:
        return
    try:
        sentry_sdk.init(
            dsn=settings.SENTRY_DSN,
            integrations=[FastApiIntegration()],
            traces_sample_rate=settings.SENTRY_TRACES_SAMPLE_RATE,
            environment=settings.ENV,
            send_default_pii=False,
        )
        sentry_sdk.set_tag("service", settings.APP_NAME)
        logger.info("Sentry initialized (env=%s)", settings.ENV)
    except Exception as exc:  # noqa: BLE001
        logger.warning("Failed to init Sentry: %s", exc)
