# src/services/live_tracking/position_store.py
"""
Хранилище последних позиций поездок.

Держит в памяти не более одной записи на trip_id (last-write-wins),
удаляет устаревшие записи лениво при чтении и уведомляет слушателей
о каждой публикации и завершении трекинга.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Protocol

from src.common.logger import log_error
from src.shared.models.tracking_dto import Coordinates, TrackingSnapshot


DEFAULT_STALE_AFTER = timedelta(minutes=5)

# Заглушка координат для события завершения без известной позиции
PLACEHOLDER_COORDS = Coordinates(lat=0.0, lng=0.0)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class TrackedPosition:
    """Последняя известная позиция поездки."""
    trip_id: str
    coordinates: Coordinates
    updated_at: datetime
    speed: float | None = None  # км/ч
    heading: float | None = None  # градусы [0, 360)

    def to_snapshot(self) -> TrackingSnapshot:
        return TrackingSnapshot(
            trip_id=self.trip_id,
            coords=self.coordinates,
            speed=self.speed,
            heading=self.heading,
            updated_at=self.updated_at,
        )


class PositionListener(Protocol):
    """Получатель событий хранилища (например, StreamDispatcher)."""

    async def notify(self, trip_id: str, snapshot: TrackingSnapshot) -> int: ...

    async def notify_ended(self, trip_id: str, snapshot: TrackingSnapshot) -> int: ...


class PositionStore:
    """
    Хранилище последних позиций.

    Ответственности:
    - Замена записи при каждой публикации (без проверки порядка)
    - Ленивое истечение по давности при чтении
    - Уведомление слушателей о публикации и завершении

    Состояние живёт только в памяти процесса.
    """

    def __init__(
        self,
        stale_after: timedelta = DEFAULT_STALE_AFTER,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._stale_after = stale_after
        self._clock = clock
        self._positions: dict[str, TrackedPosition] = {}
        self._listeners: list[PositionListener] = []

        # Сериализует изменение + рассылку, чтобы порядок доставки
        # совпадал с порядком обработки публикаций
        self._lock = asyncio.Lock()

        # Статистика
        self._total_publishes = 0
        self._total_clears = 0

    @property
    def stale_after(self) -> timedelta:
        return self._stale_after

    def add_listener(self, listener: PositionListener) -> None:
        """Зарегистрировать слушателя событий."""
        if listener not in self._listeners:
            self._listeners.append(listener)

    def remove_listener(self, listener: PositionListener) -> None:
        """Отменить регистрацию слушателя."""
        if listener in self._listeners:
            self._listeners.remove(listener)

    async def publish(
        self,
        trip_id: str,
        coordinates: Coordinates,
        speed: float | None = None,
        heading: float | None = None,
    ) -> TrackedPosition:
        """
        Сохранить позицию поездки.

        Значения не проверяются на диапазоны, это делает вызывающая сторона.
        Предыдущая запись заменяется, слушатели получают новый снимок.

        Returns:
            Сохранённая запись
        """
        async with self._lock:
            position = TrackedPosition(
                trip_id=trip_id,
                coordinates=coordinates,
                updated_at=self._clock(),
                speed=speed,
                heading=heading,
            )
            self._positions[trip_id] = position
            self._total_publishes += 1

            snapshot = position.to_snapshot()
            for listener in list(self._listeners):
                try:
                    await listener.notify(trip_id, snapshot)
                except Exception:
                    await log_error(
                        "Слушатель не обработал обновление позиции",
                        extra={"trip_id": trip_id},
                        exc_info=True,
                    )

        return position

    def get(self, trip_id: str) -> TrackedPosition | None:
        """
        Получить актуальную позицию.

        Устаревшая запись удаляется и считается отсутствующей.
        """
        position = self._positions.get(trip_id)
        if position is None:
            return None

        if self._is_stale(position):
            del self._positions[trip_id]
            return None

        return position

    async def clear(self, trip_id: str, reason: str | None = None) -> TrackingSnapshot:
        """
        Завершить трекинг поездки.

        Запись удаляется безусловно; слушатели получают событие завершения
        с последними известными координатами (или нулевой заглушкой).
        Повторный вызов снова отправляет событие завершения.

        Returns:
            Отправленный снимок завершения
        """
        async with self._lock:
            existing = self._positions.pop(trip_id, None)
            self._total_clears += 1

            snapshot = TrackingSnapshot(
                trip_id=trip_id,
                coords=existing.coordinates if existing else PLACEHOLDER_COORDS,
                speed=existing.speed if existing else None,
                heading=existing.heading if existing else None,
                updated_at=self._clock(),
                ended=True,
                reason=reason,
            )

            for listener in list(self._listeners):
                try:
                    await listener.notify_ended(trip_id, snapshot)
                except Exception:
                    await log_error(
                        "Слушатель не обработал завершение трекинга",
                        extra={"trip_id": trip_id},
                        exc_info=True,
                    )

        return snapshot

    def __len__(self) -> int:
        return len(self._positions)

    def get_stats(self) -> dict[str, int]:
        """Получить статистику."""
        return {
            "tracked_trips": len(self._positions),
            "total_publishes": self._total_publishes,
            "total_clears": self._total_clears,
        }

    def _is_stale(self, position: TrackedPosition) -> bool:
        return self._clock() - position.updated_at > self._stale_after
