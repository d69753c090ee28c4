# src/shared/models/__init__.py
"""
Общие DTO и Pydantic-модели.
"""

from src.shared.models.common import (
    ErrorResponse,
    HealthStatus,
)
from src.shared.models.tracking_dto import (
    Coordinates,
    TrackingSnapshot,
    PositionUpdateRequest,
    EndTrackingResponse,
    TrackingStats,
)

__all__ = [
    # Common
    "ErrorResponse",
    "HealthStatus",
    # Tracking
    "Coordinates",
    "TrackingSnapshot",
    "PositionUpdateRequest",
    "EndTrackingResponse",
    "TrackingStats",
]
