# src/services/__init__.py
"""
Сервисы приложения.

- live_tracking: приём позиций водителя и SSE-поток для пассажиров
"""

__all__: list[str] = []
