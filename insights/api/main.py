from fastapi import FastAPI
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from starlette.middleware.cors import CORSMiddleware

from insights.api.rate_limit import increment_rate_limit_exceeded, limiter
from insights.api.routes_accounting import router as accounting_router
from insights.api.routes_dashboard import router as dashboard_router
from insights.api.routes_health import router as health_router
from insights.api.routes_metrics import router as metrics_router
from insights.api.routes_reports import router as reports_router
from insights.core.config import settings
from insights.core.errors import register_error_handlers
from insights.core.logger import init_logging
from insights.core.monitoring import init_monitoring


async def _rate_limit_handler(request, exc: RateLimitExceeded):
    increment_rate_limit_exceeded()
    return JSONResponse(status_code=429, content={"detail": "Too many requests"})


def create_app() -> FastAPI:
    init_logging()
    init_monitoring()

    is_production = settings.ENV.lower() == "prod"
    app = FastAPI(
        title=settings.APP_NAME,
        debug=False,
        docs_url=None if is_production else "/docs",
        redoc_url=None if is_production else "/redoc",
        openapi_url=None if is_production else "/openapi.json",
    )
    app.state.limiter = limiter
    app.add_middleware(SlowAPIMiddleware)
    app.add_exception_handler(RateLimitExceeded, _rate_limit_handler)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ALLOW_ORIGINS,
        allow_credentials=False,
        allow_methods=settings.CORS_ALLOW_METHODS,
        allow_headers=settings.CORS_ALLOW_HEADERS,
    )
    register_error_handlers(app)
    app.include_router(dashboard_router, prefix="/dashboard", tags=["dashboard"])
    app.include_router(reports_router, prefix="/reports", tags=["reports"])
    app.include_router(accounting_router, prefix="/accounting", tags=["accounting"])
    app.include_router(metrics_router, tags=["metrics"])
    app.include_router(health_router)

    @app.on_event("shutdown")
    async def shutdown_event():
        from insights.db.redis_client import close_redis_pool

        close_redis_pool()

    return app


app = create_app()
