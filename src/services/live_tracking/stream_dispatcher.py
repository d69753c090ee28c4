# src/services/live_tracking/stream_dispatcher.py
"""
Диспетчер live-потоков.
Управляет подписками пассажиров и рассылкой позиций по поездкам.

Формат кадров (Server-Sent Events):
- событие: ``data: <json>\\n\\n``
- keep-alive: комментарий ``: keep-alive\\n\\n``
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Protocol

from src.common.constants import CloseReason, SubscriptionState
from src.common.logger import log_debug, log_info, log_warning
from src.services.live_tracking.exceptions import ChannelWriteError
from src.services.live_tracking.position_store import PositionStore
from src.shared.models.tracking_dto import TrackingSnapshot


DEFAULT_KEEPALIVE_INTERVAL = 25.0
KEEPALIVE_FRAME = ": keep-alive\n\n"


def format_event(snapshot: TrackingSnapshot) -> str:
    """Сформировать SSE-кадр с JSON-снимком."""
    return f"data: {snapshot.to_json()}\n\n"


class SubscriberChannel(Protocol):
    """Канал доставки кадров одному подписчику."""

    async def send(self, frame: str) -> None: ...

    async def close(self) -> None: ...


class QueueChannel:
    """
    Канал на ограниченной asyncio.Queue.

    Запись не блокирует: переполнение (медленный клиент) и запись
    в закрытый канал считаются ошибкой записи.
    HTTP-ответ читает кадры через ``async for``. После закрытия
    уже буферизованные кадры дочитываются, затем итерация завершается.
    """

    def __init__(self, maxsize: int = 100) -> None:
        self._queue: asyncio.Queue[str | None] = asyncio.Queue(maxsize=maxsize)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def send(self, frame: str) -> None:
        if self._closed:
            raise ChannelWriteError("Канал подписчика закрыт")
        try:
            self._queue.put_nowait(frame)
        except asyncio.QueueFull as e:
            raise ChannelWriteError("Подписчик не успевает читать поток") from e

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True

        # Маркер будит читателя, ждущего на пустой очереди.
        # Полная очередь дочитывается до конца без маркера
        if not self._queue.full():
            self._queue.put_nowait(None)

    def __aiter__(self) -> AsyncIterator[str]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[str]:
        while True:
            if self._closed and self._queue.empty():
                return
            frame = await self._queue.get()
            if frame is None:
                return
            yield frame


@dataclass(eq=False)
class Subscription:
    """Открытая подписка на поездку."""
    trip_id: str
    channel: SubscriberChannel
    state: SubscriptionState = SubscriptionState.CONNECTING
    connected_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    close_reason: CloseReason | None = None
    ended_received: bool = False
    keepalive_task: asyncio.Task | None = None


class StreamDispatcher:
    """
    Диспетчер подписок на позиции поездок.

    Поддерживает:
    - Подписку с немедленной отправкой последней позиции
    - Рассылку обновлений и события завершения всем подписчикам поездки
    - Периодический keep-alive для каждой подписки
    - Изоляцию ошибок: сбойный канал отключается, остальные получают данные

    Закрытие соединения после события завершения остаётся за клиентом.
    Переподключение также остаётся за клиентом.
    """

    def __init__(
        self,
        store: PositionStore,
        keepalive_interval: float = DEFAULT_KEEPALIVE_INTERVAL,
    ) -> None:
        self._store = store
        self._keepalive_interval = keepalive_interval

        # trip_id -> channel -> Subscription (порядок вставки сохраняется)
        self._subscriptions: dict[str, dict[SubscriberChannel, Subscription]] = {}

        # Для статистики
        self._total_subscriptions = 0
        self._total_messages_sent = 0
        self._write_failures = 0

        store.add_listener(self)

    async def subscribe(self, trip_id: str, channel: SubscriberChannel) -> Subscription:
        """
        Подписать канал на поездку.

        Если есть актуальная позиция, она сразу пишется в канал.
        Повторная подписка того же канала возвращает существующую подписку.
        """
        existing = self._subscriptions.get(trip_id, {}).get(channel)
        if existing is not None:
            return existing

        latest = self._store.get(trip_id)

        subscription = Subscription(trip_id=trip_id, channel=channel)
        self._subscriptions.setdefault(trip_id, {})[channel] = subscription
        self._total_subscriptions += 1

        if latest is not None:
            delivered = await self._write(subscription, format_event(latest.to_snapshot()))
            if not delivered:
                return subscription

        subscription.state = SubscriptionState.LIVE
        subscription.keepalive_task = asyncio.create_task(self._keepalive(subscription))

        await log_debug(
            "Подписчик подключен к потоку",
            extra={"trip_id": trip_id, "replayed": latest is not None},
        )
        return subscription

    async def unsubscribe(
        self,
        trip_id: str,
        channel: SubscriberChannel,
        reason: CloseReason = CloseReason.CLIENT_DISCONNECT,
    ) -> bool:
        """
        Отписать канал (закрытие или ошибка соединения).

        Returns:
            True если подписка существовала
        """
        subscription = self._subscriptions.get(trip_id, {}).get(channel)
        if subscription is None:
            return False

        await self._remove(subscription, reason)
        return True

    async def notify(self, trip_id: str, snapshot: TrackingSnapshot) -> int:
        """
        Отправить снимок всем подписчикам поездки.

        Returns:
            Количество успешных доставок
        """
        return await self._fan_out(trip_id, format_event(snapshot))

    async def notify_ended(self, trip_id: str, snapshot: TrackingSnapshot) -> int:
        """
        Отправить событие завершения всем подписчикам поездки.

        Каналы не закрываются принудительно.
        """
        if not snapshot.ended:
            snapshot = snapshot.model_copy(update={"ended": True})

        delivered = await self._fan_out(trip_id, format_event(snapshot), ended=True)

        await log_info(
            "Трекинг поездки завершён",
            extra={"trip_id": trip_id, "reason": snapshot.reason, "delivered": delivered},
        )
        return delivered

    async def close_all(self) -> None:
        """Закрыть все подписки (остановка сервиса)."""
        subscriptions = [
            subscription
            for channels in self._subscriptions.values()
            for subscription in channels.values()
        ]
        for subscription in subscriptions:
            await self._remove(subscription, CloseReason.SHUTDOWN)

    def subscriber_count(self, trip_id: str) -> int:
        """Количество подписчиков поездки."""
        return len(self._subscriptions.get(trip_id, {}))

    def get_stats(self) -> dict[str, Any]:
        """Получить статистику."""
        return {
            "active_subscriptions": sum(len(c) for c in self._subscriptions.values()),
            "trips_with_subscribers": len(self._subscriptions),
            "total_subscriptions_ever": self._total_subscriptions,
            "total_messages_sent": self._total_messages_sent,
            "write_failures": self._write_failures,
        }

    async def _fan_out(self, trip_id: str, frame: str, ended: bool = False) -> int:
        channels = self._subscriptions.get(trip_id)
        if not channels:
            return 0

        delivered = 0
        # Копия: сбойные подписки удаляются во время обхода
        for subscription in list(channels.values()):
            if await self._write(subscription, frame):
                delivered += 1
                if ended:
                    subscription.ended_received = True

        return delivered

    async def _write(self, subscription: Subscription, frame: str) -> bool:
        """Записать кадр; при ошибке подписка удаляется."""
        try:
            await subscription.channel.send(frame)
        except Exception as e:
            self._write_failures += 1
            await log_warning(
                "Не удалось записать в поток подписчика",
                extra={"trip_id": subscription.trip_id, "error": repr(e)},
            )
            await self._remove(subscription, CloseReason.WRITE_ERROR)
            return False

        self._total_messages_sent += 1
        return True

    async def _remove(self, subscription: Subscription, reason: CloseReason) -> None:
        channels = self._subscriptions.get(subscription.trip_id)
        if channels is None or channels.get(subscription.channel) is not subscription:
            return

        del channels[subscription.channel]
        if not channels:
            del self._subscriptions[subscription.trip_id]

        subscription.state = SubscriptionState.CLOSED
        subscription.close_reason = reason

        task = subscription.keepalive_task
        if task is not None and task is not asyncio.current_task():
            task.cancel()

        try:
            await subscription.channel.close()
        except Exception as e:
            await log_debug(
                "Ошибка при закрытии канала подписчика",
                extra={"trip_id": subscription.trip_id, "error": repr(e)},
            )

        await log_debug(
            "Подписчик отключен от потока",
            extra={"trip_id": subscription.trip_id, "reason": reason.value},
        )

    async def _keepalive(self, subscription: Subscription) -> None:
        """Периодически писать keep-alive, пока подписка активна."""
        while subscription.state is SubscriptionState.LIVE:
            await asyncio.sleep(self._keepalive_interval)
            if subscription.state is not SubscriptionState.LIVE:
                break
            await self._write(subscription, KEEPALIVE_FRAME)
