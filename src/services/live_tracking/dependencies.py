# src/services/live_tracking/dependencies.py
"""
FastAPI-зависимости сервиса трекинга.
Экземпляры сервисов живут в app.state (по одному на приложение).
"""

from fastapi import Request

from src.config.loader import TrackingSettings
from src.services.live_tracking.service import TrackingService


def get_tracking_service(request: Request) -> TrackingService:
    return request.app.state.tracking_service


def get_tracking_settings(request: Request) -> TrackingSettings:
    return request.app.state.settings.tracking
