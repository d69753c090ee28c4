# src/services/live_tracking/exceptions.py
"""
Исключения live-трекинга.

Все ошибки относятся к одной поездке и не фатальны для процесса.
"""

from __future__ import annotations


class TrackingError(Exception):
    """Базовая ошибка трекинга."""
    error_code = "tracking_error"


class TrackingValidationError(TrackingError):
    """Некорректные входные данные (исправимо клиентом)."""
    error_code = "validation_error"

    def __init__(self, field: str, message: str) -> None:
        super().__init__(message)
        self.field = field
        self.message = message


class PositionNotFoundError(TrackingError):
    """Нет актуальной позиции для поездки (нормальный исход, не сбой)."""
    error_code = "position_not_found"

    def __init__(self, trip_id: str) -> None:
        super().__init__(f"Нет актуальной позиции для поездки {trip_id}")
        self.trip_id = trip_id


class ChannelWriteError(TrackingError):
    """Не удалось записать в канал подписчика."""
    error_code = "channel_write_error"


class UnsupportedTransportError(TrackingError):
    """Live-поток недоступен в окружении клиента."""
    error_code = "unsupported_transport"
