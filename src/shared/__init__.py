# src/shared/__init__.py
"""
Общий код сервиса и клиентов.

Модули:
- models: DTO и Pydantic-модели (wire-формат трекинга, ответы об ошибках)
"""

__all__: list[str] = []
