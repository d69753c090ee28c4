# src/common/constants.py
"""
Общие константы и перечисления.
"""

from enum import Enum


class TypeMsg(str, Enum):
    """Типы сообщений для логирования."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class SubscriptionState(str, Enum):
    """Состояния подписки на live-поток."""
    CONNECTING = "connecting"
    LIVE = "live"
    CLOSED = "closed"


class CloseReason(str, Enum):
    """Причины закрытия подписки."""
    CLIENT_DISCONNECT = "client_disconnect"
    WRITE_ERROR = "write_error"
    SHUTDOWN = "shutdown"
