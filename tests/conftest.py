# tests/conftest.py
"""
Общие фикстуры и настройки для тестов.
"""

from __future__ import annotations

import json
import os
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

import pytest

# Устанавливаем переменные окружения перед импортом модулей
os.environ.setdefault("LOG_LEVEL", "DEBUG")

from src.config.loader import Settings, TrackingSettings
from src.services.live_tracking.position_store import PositionStore
from src.services.live_tracking.service import TrackingService
from src.services.live_tracking.stream_dispatcher import StreamDispatcher


# =============================================================================
# ТЕСТОВЫЕ ДВОЙНИКИ
# =============================================================================

class FakeClock:
    """Управляемые часы для проверки истечения позиций."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


class RecordingChannel:
    """Канал, запоминающий все записанные кадры."""

    def __init__(self) -> None:
        self.frames: list[str] = []
        self.closed = False

    async def send(self, frame: str) -> None:
        self.frames.append(frame)

    async def close(self) -> None:
        self.closed = True

    @property
    def events(self) -> list[dict[str, Any]]:
        """JSON-события (без keep-alive)."""
        return [
            json.loads(frame[len("data: "):].strip())
            for frame in self.frames
            if frame.startswith("data: ")
        ]

    @property
    def keepalives(self) -> int:
        return sum(1 for frame in self.frames if frame.startswith(":"))


class FailingChannel(RecordingChannel):
    """Канал, у которого оборвалось соединение."""

    async def send(self, frame: str) -> None:
        raise ConnectionResetError("connection reset by peer")


# =============================================================================
# ФИКСТУРЫ КОНФИГУРАЦИИ
# =============================================================================

@pytest.fixture(scope="session")
def project_root() -> Path:
    """Корневая директория проекта."""
    return Path(__file__).parent.parent


@pytest.fixture
def mock_config() -> dict[str, Any]:
    """Мок конфигурации для тестов."""
    return {
        "PROJECT_NAME": "ride_tracking_test",
        "VERSION": "1.0.0-test",
        "DEBUG": True,
        "LOG_LEVEL": "DEBUG",
        "ENVIRONMENT": "test",
        "TRACKING_SERVICE_HOST": "localhost",
        "TRACKING_SERVICE_PORT": 9090,
        "LOG_TO_FILE": False,
        "LOG_FILE_PATH": "logs/test.log",
        "LOG_FORMAT": "json",
        "STALE_THRESHOLD_SECONDS": 120,
        "KEEPALIVE_INTERVAL_SECONDS": 10,
        "MAX_SPEED_KMH": 150,
        "SUBSCRIBER_QUEUE_SIZE": 5,
        "CLIENT_MIN_PUSH_INTERVAL_SECONDS": 2.0,
        "CORS_ORIGINS": ["https://app.example.com"],
    }


@pytest.fixture
def temp_config_file(tmp_path: Path, mock_config: dict[str, Any]) -> Path:
    """Создаёт временный файл конфигурации."""
    config_file = tmp_path / "config.json"
    config_file.write_text(json.dumps(mock_config, ensure_ascii=False, indent=2))
    return config_file


@pytest.fixture
def test_settings() -> Settings:
    """Настройки приложения: редкий keep-alive и маленькая очередь подписчика."""
    return Settings(
        tracking=TrackingSettings(
            STALE_THRESHOLD_SECONDS=300,
            KEEPALIVE_INTERVAL_SECONDS=3600,
            MAX_SPEED_KMH=200,
            SUBSCRIBER_QUEUE_SIZE=10,
        ),
    )


# =============================================================================
# ФИКСТУРЫ ТРЕКИНГА
# =============================================================================

@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(clock: FakeClock) -> PositionStore:
    return PositionStore(stale_after=timedelta(minutes=5), clock=clock)


@pytest.fixture
def dispatcher(store: PositionStore) -> StreamDispatcher:
    # Длинный интервал: keep-alive не мешает проверкам событий
    return StreamDispatcher(store, keepalive_interval=3600)


@pytest.fixture
def tracking_service(store: PositionStore, dispatcher: StreamDispatcher) -> TrackingService:
    return TrackingService(store, dispatcher, max_speed_kmh=200)


@pytest.fixture
def make_channel() -> type[RecordingChannel]:
    """Фабрика записывающих каналов."""
    return RecordingChannel


@pytest.fixture
def failing_channel() -> FailingChannel:
    return FailingChannel()
