# src/services/live_tracking/routes.py
"""
HTTP-маршруты live-трекинга.

- POST   /tracking/{trip_id}         — опубликовать позицию водителя
- GET    /tracking/{trip_id}         — последняя позиция
- GET    /tracking/{trip_id}/stream  — live-поток (text/event-stream)
- DELETE /tracking/{trip_id}         — завершить трекинг
"""

from __future__ import annotations

from typing import AsyncIterator

from fastapi import APIRouter, Depends, Query
from fastapi.responses import StreamingResponse

from src.config.loader import TrackingSettings
from src.services.live_tracking.dependencies import get_tracking_service, get_tracking_settings
from src.services.live_tracking.service import TrackingService
from src.services.live_tracking.stream_dispatcher import QueueChannel
from src.shared.models.common import ErrorResponse
from src.shared.models.tracking_dto import EndTrackingResponse, PositionUpdateRequest, TrackingSnapshot


router = APIRouter(prefix="/tracking", tags=["Tracking"])

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    # Отключает буферизацию ответа в nginx
    "X-Accel-Buffering": "no",
}


@router.post(
    "/{trip_id}",
    response_model=TrackingSnapshot,
    response_model_exclude_none=True,
    responses={400: {"model": ErrorResponse}},
    summary="Опубликовать позицию водителя",
)
async def publish_position(
    trip_id: str,
    update: PositionUpdateRequest,
    service: TrackingService = Depends(get_tracking_service),
) -> TrackingSnapshot:
    """Сохраняет позицию и рассылает её подписчикам поездки."""
    return await service.publish_position(
        trip_id,
        lat=update.lat,
        lng=update.lng,
        speed=update.speed,
        heading=update.heading,
    )


@router.get(
    "/{trip_id}",
    response_model=TrackingSnapshot,
    response_model_exclude_none=True,
    responses={404: {"model": ErrorResponse, "description": "Нет актуальной позиции"}},
    summary="Последняя позиция поездки",
)
async def get_latest_position(
    trip_id: str,
    service: TrackingService = Depends(get_tracking_service),
) -> TrackingSnapshot:
    return service.get_latest_position(trip_id)


@router.get(
    "/{trip_id}/stream",
    response_class=StreamingResponse,
    responses={200: {"content": {"text/event-stream": {}}}},
    summary="Live-поток позиций",
)
async def stream_positions(
    trip_id: str,
    service: TrackingService = Depends(get_tracking_service),
    tracking_settings: TrackingSettings = Depends(get_tracking_settings),
) -> StreamingResponse:
    """
    Открыть поток Server-Sent Events.

    Сразу отправляет последнюю позицию (если есть), затем каждое обновление
    и периодический keep-alive, пока клиент не отключится.
    """
    channel = QueueChannel(maxsize=tracking_settings.SUBSCRIBER_QUEUE_SIZE)
    await service.open_stream(trip_id, channel)

    return StreamingResponse(
        stream_frames(service, trip_id, channel),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )


async def stream_frames(service: TrackingService, trip_id: str, channel: QueueChannel) -> AsyncIterator[str]:
    """Отдавать кадры канала; при разрыве соединения отписаться."""
    try:
        async for frame in channel:
            yield frame
    finally:
        await service.close_stream(trip_id, channel)


@router.delete(
    "/{trip_id}",
    response_model=EndTrackingResponse,
    summary="Завершить трекинг",
)
async def end_tracking(
    trip_id: str,
    reason: str | None = Query(default=None, max_length=200),
    service: TrackingService = Depends(get_tracking_service),
) -> EndTrackingResponse:
    """Удаляет позицию и отправляет подписчикам событие завершения."""
    snapshot = await service.end_tracking(trip_id, reason)
    return EndTrackingResponse(trip_id=snapshot.trip_id)
