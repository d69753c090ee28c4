# src/web_client/infra/api_clients.py
"""
HTTP-клиенты к сервису трекинга.

TrackingClient используется приложением водителя (публикация позиций)
и пассажира (чтение и live-поток).
"""

from __future__ import annotations

import json
import time
from typing import Any, AsyncIterator, Callable, Dict, Optional

import httpx

from src.common.logger import log_warning
from src.config import settings
from src.services.live_tracking.exceptions import UnsupportedTransportError
from src.shared.models.tracking_dto import TrackingSnapshot


class BaseClient:
    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url
        self.timeout = timeout
        self.client = httpx.AsyncClient(base_url=base_url, timeout=timeout, transport=transport)

    async def close(self):
        await self.client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        await self.close()

    async def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        response = await self.client.get(path, params=params)
        response.raise_for_status()
        return response.json()

    async def _post(self, path: str, json: Optional[Dict[str, Any]] = None) -> Any:
        response = await self.client.post(path, json=json)
        response.raise_for_status()
        return response.json()

    async def _delete(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        response = await self.client.delete(path, params=params)
        response.raise_for_status()
        return response.json()


def parse_sse_data(lines: list[str]) -> Optional[str]:
    """
    Собрать данные одного SSE-события из его строк.

    Комментарии (``: keep-alive``) и прочие поля игнорируются.
    """
    data = [line[5:].removeprefix(" ") for line in lines if line.startswith("data:")]
    if not data:
        return None
    return "\n".join(data)


class TrackingClient(BaseClient):
    """
    Клиент live-трекинга.

    Публикации водителя ограничиваются по частоте на каждую поездку.
    Переподключение потока решает вызывающий код: при разрыве
    достаточно снова вызвать stream_trip().
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        min_push_interval: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        if base_url is None:
            base_url = (
                f"http://{settings.deployment.TRACKING_SERVICE_HOST}:"
                f"{settings.deployment.TRACKING_SERVICE_PORT}/api/v1/tracking"
            )
        if min_push_interval is None:
            min_push_interval = settings.tracking.CLIENT_MIN_PUSH_INTERVAL_SECONDS
        super().__init__(base_url, transport=transport)
        self.min_push_interval = min_push_interval
        self._clock = clock
        self._last_push_by_trip: dict[str, float] = {}

    async def publish_driver_location(
        self,
        trip_id: str,
        lat: float,
        lng: float,
        speed: Optional[float] = None,
        heading: Optional[float] = None,
    ) -> Optional[TrackingSnapshot]:
        """
        Отправить позицию водителя.

        Returns:
            Сохранённый снимок или None, если вызов отброшен ограничением частоты
        """
        now = self._clock()
        last_push = self._last_push_by_trip.get(trip_id)
        if last_push is not None and now - last_push < self.min_push_interval:
            return None
        self._last_push_by_trip[trip_id] = now

        payload: Dict[str, Any] = {"lat": lat, "lng": lng}
        if speed is not None:
            payload["speed"] = speed
        if heading is not None:
            payload["heading"] = heading

        data = await self._post(f"/{trip_id}", json=payload)
        return TrackingSnapshot.model_validate(data)

    async def stop_driver_tracking(self, trip_id: str, reason: Optional[str] = None) -> None:
        """Завершить трекинг поездки на сервере."""
        params = {"reason": reason} if reason else None
        await self._delete(f"/{trip_id}", params=params)
        self._last_push_by_trip.pop(trip_id, None)

    async def get_latest_location(self, trip_id: str) -> Optional[TrackingSnapshot]:
        """Последняя позиция или None, если актуальной нет."""
        try:
            data = await self._get(f"/{trip_id}")
        except httpx.HTTPStatusError as e:
            if e.response.status_code == 404:
                return None
            raise
        return TrackingSnapshot.model_validate(data)

    async def stream_trip(self, trip_id: str) -> AsyncIterator[TrackingSnapshot]:
        """
        Читать live-поток поездки.

        Поток завершается после события ``ended``.

        Raises:
            UnsupportedTransportError: сервер не отдал text/event-stream
        """
        async with self.client.stream("GET", f"/{trip_id}/stream", timeout=None) as response:
            response.raise_for_status()
            content_type = response.headers.get("content-type", "")
            if not content_type.startswith("text/event-stream"):
                raise UnsupportedTransportError(
                    f"Live-поток не поддерживается: получен {content_type or 'ответ без типа'}"
                )

            event_lines: list[str] = []
            async for line in response.aiter_lines():
                if line:
                    event_lines.append(line)
                    continue

                data = parse_sse_data(event_lines)
                event_lines = []
                if data is None:
                    continue

                try:
                    snapshot = TrackingSnapshot.model_validate(json.loads(data))
                except ValueError:
                    await log_warning("Некорректный payload в SSE-потоке", extra={"trip_id": trip_id})
                    continue

                yield snapshot
                if snapshot.ended:
                    return
