# src/services/live_tracking/app.py
"""
FastAPI приложение Live Tracking.

Endpoints:
- POST   /api/v1/tracking/{trip_id}         — позиция водителя
- GET    /api/v1/tracking/{trip_id}         — последняя позиция
- GET    /api/v1/tracking/{trip_id}/stream  — live-поток (SSE)
- DELETE /api/v1/tracking/{trip_id}         — завершить трекинг
- GET    /health                            — проверка здоровья
- GET    /stats                             — статистика
"""

from __future__ import annotations

import time
from contextlib import asynccontextmanager
from datetime import timedelta

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from src.common.logger import log_info, setup_logging
from src.config.loader import Settings
from src.services.live_tracking.exceptions import PositionNotFoundError, TrackingValidationError
from src.services.live_tracking.position_store import PositionStore
from src.services.live_tracking.routes import router
from src.services.live_tracking.service import TrackingService
from src.services.live_tracking.stream_dispatcher import StreamDispatcher
from src.shared.models.common import ErrorResponse, HealthStatus
from src.shared.models.tracking_dto import TrackingStats


SERVICE_NAME = "live_tracking"


def build_tracking_service(app_settings: Settings) -> TrackingService:
    """Собрать хранилище, диспетчер и сервис по настройкам."""
    tracking = app_settings.tracking
    store = PositionStore(stale_after=timedelta(seconds=tracking.STALE_THRESHOLD_SECONDS))
    dispatcher = StreamDispatcher(store, keepalive_interval=tracking.KEEPALIVE_INTERVAL_SECONDS)
    return TrackingService(store, dispatcher, max_speed_kmh=tracking.MAX_SPEED_KMH)


# === LIFESPAN ===

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Жизненный цикл приложения."""
    setup_logging()
    await log_info("Запуск Live Tracking...", extra={"version": app.version})

    yield

    await app.state.tracking_service.shutdown()
    await log_info("Live Tracking остановлен")


# === ERROR HANDLERS ===

async def handle_tracking_validation(request: Request, exc: TrackingValidationError) -> JSONResponse:
    body = ErrorResponse(error_code=exc.error_code, message=exc.message, details={"field": exc.field})
    return JSONResponse(status_code=400, content=body.model_dump())


async def handle_position_not_found(request: Request, exc: PositionNotFoundError) -> JSONResponse:
    body = ErrorResponse(error_code=exc.error_code, message=str(exc), details={"tripId": exc.trip_id})
    return JSONResponse(status_code=404, content=body.model_dump())


async def handle_request_validation(request: Request, exc: RequestValidationError) -> JSONResponse:
    body = ErrorResponse(
        error_code=TrackingValidationError.error_code,
        message="Некорректный запрос",
        details={"errors": jsonable_encoder(exc.errors())},
    )
    return JSONResponse(status_code=400, content=body.model_dump())


# === APP ===

def create_app(app_settings: Settings | None = None) -> FastAPI:
    """
    Создать приложение.

    Каждое приложение получает собственные экземпляры хранилища и диспетчера.
    """
    if app_settings is None:
        from src.config import settings as app_settings

    app = FastAPI(
        title="Live Tracking",
        description="Live-трекинг поездок: приём позиций водителя и SSE-поток для пассажиров.",
        version=app_settings.system.VERSION,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )
    app.state.settings = app_settings
    app.state.tracking_service = build_tracking_service(app_settings)
    app.state.started_at = time.monotonic()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=app_settings.cors.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(TrackingValidationError, handle_tracking_validation)
    app.add_exception_handler(PositionNotFoundError, handle_position_not_found)
    app.add_exception_handler(RequestValidationError, handle_request_validation)

    app.include_router(router, prefix="/api/v1")

    @app.get("/health", response_model=HealthStatus, tags=["Health"])
    async def health_check() -> HealthStatus:
        """Проверка здоровья сервиса."""
        return HealthStatus(
            status="healthy",
            service=SERVICE_NAME,
            version=app.version,
            uptime_seconds=round(time.monotonic() - app.state.started_at, 3),
        )

    @app.get("/stats", response_model=TrackingStats, tags=["Stats"])
    async def get_stats() -> TrackingStats:
        """Получить статистику сервиса."""
        stats = app.state.tracking_service.get_stats()
        return TrackingStats(**stats)

    return app


app = create_app()


# === STARTUP ===

if __name__ == "__main__":
    import uvicorn
    from src.config import settings

    uvicorn.run(app, host="0.0.0.0", port=settings.deployment.TRACKING_SERVICE_PORT)
