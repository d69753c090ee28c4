# src/services/live_tracking/service.py
"""
Бизнес-логика live-трекинга: публикация, запрос, завершение, поток.
"""

from __future__ import annotations

import math
from typing import Any

from src.services.live_tracking.exceptions import PositionNotFoundError, TrackingValidationError
from src.services.live_tracking.position_store import PositionStore
from src.services.live_tracking.stream_dispatcher import StreamDispatcher, SubscriberChannel, Subscription
from src.shared.models.tracking_dto import Coordinates, TrackingSnapshot


DEFAULT_MAX_SPEED_KMH = 200.0
DEFAULT_END_REASON = "Трекинг завершён"


class TrackingService:
    """
    Точка входа для операций трекинга.

    Проверяет входные данные до обращения к хранилищу. Право публиковать
    или читать позицию поездки здесь не проверяется: trip_id выступает
    как capability-токен, авторизацию выполняет внешний слой.
    """

    def __init__(
        self,
        store: PositionStore,
        dispatcher: StreamDispatcher,
        max_speed_kmh: float = DEFAULT_MAX_SPEED_KMH,
    ) -> None:
        self._store = store
        self._dispatcher = dispatcher
        self._max_speed_kmh = max_speed_kmh

    async def publish_position(
        self,
        trip_id: str,
        lat: float,
        lng: float,
        speed: float | None = None,
        heading: float | None = None,
    ) -> TrackingSnapshot:
        """
        Опубликовать позицию водителя.

        Raises:
            TrackingValidationError: некорректные trip_id, координаты, скорость или курс
        """
        trip_id = self._validate_trip_id(trip_id)
        self._validate_range("lat", lat, -90, 90, "Широта должна быть в диапазоне [-90, 90]")
        self._validate_range("lng", lng, -180, 180, "Долгота должна быть в диапазоне [-180, 180]")
        if speed is not None:
            self._validate_range(
                "speed", speed, 0, self._max_speed_kmh,
                f"Скорость должна быть в диапазоне [0, {self._max_speed_kmh:g}] км/ч",
            )
        if heading is not None:
            self._validate_range("heading", heading, 0, 360, "Курс должен быть в диапазоне [0, 360)")
            if heading >= 360:
                raise TrackingValidationError("heading", "Курс должен быть в диапазоне [0, 360)")

        position = await self._store.publish(
            trip_id,
            Coordinates(lat=float(lat), lng=float(lng)),
            speed=float(speed) if speed is not None else None,
            heading=float(heading) if heading is not None else None,
        )
        return position.to_snapshot()

    def get_latest_position(self, trip_id: str) -> TrackingSnapshot:
        """
        Последняя актуальная позиция поездки.

        Raises:
            PositionNotFoundError: позиции нет или она устарела
        """
        trip_id = self._validate_trip_id(trip_id)
        position = self._store.get(trip_id)
        if position is None:
            raise PositionNotFoundError(trip_id)
        return position.to_snapshot()

    async def end_tracking(self, trip_id: str, reason: str | None = None) -> TrackingSnapshot:
        """Завершить трекинг и оповестить подписчиков."""
        trip_id = self._validate_trip_id(trip_id)
        return await self._store.clear(trip_id, reason or DEFAULT_END_REASON)

    async def open_stream(self, trip_id: str, channel: SubscriberChannel) -> Subscription:
        """Подключить канал к live-потоку поездки."""
        trip_id = self._validate_trip_id(trip_id)
        return await self._dispatcher.subscribe(trip_id, channel)

    async def close_stream(self, trip_id: str, channel: SubscriberChannel) -> None:
        """Отключить канал (клиент закрыл соединение)."""
        await self._dispatcher.unsubscribe(trip_id.strip(), channel)

    async def shutdown(self) -> None:
        """Закрыть все потоки."""
        await self._dispatcher.close_all()

    def get_stats(self) -> dict[str, Any]:
        """Статистика хранилища и диспетчера."""
        return {**self._store.get_stats(), **self._dispatcher.get_stats()}

    @staticmethod
    def _validate_trip_id(trip_id: str | None) -> str:
        if not isinstance(trip_id, str) or not trip_id.strip():
            raise TrackingValidationError("trip_id", "Требуется идентификатор поездки")
        return trip_id.strip()

    @staticmethod
    def _validate_range(field: str, value: Any, low: float, high: float, message: str) -> None:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise TrackingValidationError(field, message)
        if not math.isfinite(value) or not low <= value <= high:
            raise TrackingValidationError(field, message)
