# src/shared/models/tracking_dto.py
"""
Wire-модели live-трекинга.

Один и тот же снимок (TrackingSnapshot) возвращается на запросы и
отправляется подписчикам в SSE-потоке:

    {"tripId": "R1", "coords": {"lat": 14.69, "lng": -17.44}, "speed": 45,
     "updatedAt": "2026-01-01T12:00:00.000Z", "ended": true, "reason": "..."}

Необязательные поля не сериализуются, если отсутствуют.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_serializer


def format_timestamp(value: datetime) -> str:
    """ISO-8601 в UTC с миллисекундами и суффиксом Z."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class Coordinates(BaseModel):
    """Географические координаты."""
    model_config = ConfigDict(frozen=True)

    lat: float
    lng: float


class TrackingSnapshot(BaseModel):
    """Снимок позиции поездки (ответ API и событие потока)."""
    model_config = ConfigDict(populate_by_name=True)

    trip_id: str = Field(alias="tripId")
    coords: Coordinates
    speed: float | None = None
    heading: float | None = None
    updated_at: datetime = Field(alias="updatedAt")
    ended: bool | None = None
    reason: str | None = None

    @field_serializer("updated_at")
    def serialize_updated_at(self, value: datetime) -> str:
        return format_timestamp(value)

    def to_wire(self) -> dict[str, Any]:
        """JSON-совместимый словарь в wire-формате."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, exclude_none=True)


class PositionUpdateRequest(BaseModel):
    """Тело POST-запроса с позицией водителя. Диапазоны проверяет сервис."""
    lat: float
    lng: float
    speed: float | None = None  # км/ч
    heading: float | None = None  # градусы


class EndTrackingResponse(BaseModel):
    """Подтверждение завершения трекинга."""
    model_config = ConfigDict(populate_by_name=True)

    status: str = "ended"
    trip_id: str = Field(alias="tripId")


class TrackingStats(BaseModel):
    """Статистика сервиса трекинга."""
    tracked_trips: int
    total_publishes: int
    total_clears: int
    active_subscriptions: int
    trips_with_subscribers: int
    total_subscriptions_ever: int
    total_messages_sent: int
    write_failures: int
