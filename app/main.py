from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.v1.applications.router import files_router as artifact_files_router
from app.api.v1.applications.router import router as applications_router
from app.api.v1.health.router import router as health_router
from app.api.v1.notifications.router import router as notifications_router
from app.core.logging_config import setup_logging
from app.core.metrics import InMemoryMetricsSink, MetricsSink
from app.core.middleware import RequestMetricsMiddleware


def create_app(metrics: Optional[MetricsSink] = None) -> FastAPI:
    setup_logging()
    app = FastAPI(title="Residencias Backend")
    app.state.metrics = metrics or InMemoryMetricsSink()

    # CORS: allow frontend to call this API
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestMetricsMiddleware, metrics=app.state.metrics)

    # Routers
    app.include_router(applications_router)
    app.include_router(artifact_files_router)
    app.include_router(notifications_router)
    app.include_router(health_router)

    return app


app = create_app()
