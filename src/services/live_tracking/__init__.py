# src/services/live_tracking/__init__.py
"""
Live Tracking — сервис live-трекинга поездок.

Обеспечивает:
- Приём GPS-координат водителя (HTTP)
- Хранение только последней позиции на поездку с истечением по давности
- Рассылку позиций пассажирам через Server-Sent Events
- Keep-alive для долгоживущих соединений
"""
