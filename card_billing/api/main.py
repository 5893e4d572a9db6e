"""FastAPI application factory"""

from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from starlette.responses import Response

from card_billing.api.middleware import RequestIDMiddleware, MetricsMiddleware
from card_billing.api.v1 import admin, bills, transactions
from card_billing.infrastructure.database.session import get_session_factory
from card_billing.infrastructure.observability.logging import setup_logging
from card_billing.services.scheduler import BillingScheduler
from card_billing.config import settings

setup_logging(settings.log_level)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Run the monthly open/close loop alongside the API when enabled"""
    scheduler = None
    if settings.scheduler_enabled:
        scheduler = BillingScheduler(get_session_factory())
        scheduler.start()
    app.state.scheduler = scheduler
    try:
        yield
    finally:
        if scheduler is not None:
            scheduler.stop()


def create_app() -> FastAPI:
    """Create and configure FastAPI application"""
    app = FastAPI(
        title="Card Billing Ledger",
        description="Monthly card bills: posting, open/close cycle and bill queries",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    # Last added runs first
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(RequestIDMiddleware)

    @app.get("/health")
    def health_check():
        return {"status": "ok", "service": settings.service_name}

    @app.get("/metrics")
    def metrics():
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    app.include_router(transactions.router, prefix="/v1", tags=["transactions"])
    app.include_router(bills.router, prefix="/v1", tags=["bills"])
    app.include_router(admin.router, prefix="/v1", tags=["admin"])

    return app


app = create_app()


def run() -> None:
    """Serve the API (console script `card-billing`)"""
    uvicorn.run("card_billing.api.main:app", host=settings.host, port=settings.port, log_config=None)


if __name__ == "__main__":
    run()
