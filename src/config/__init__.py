# src/config/__init__.py
"""
Модуль конфигурации.
Экспортирует настройки приложения (config/config.json + переменные окружения).
"""

from src.config.loader import Settings, TrackingSettings, get_settings, settings

__all__ = ["Settings", "TrackingSettings", "get_settings", "settings"]
