#!/usr/bin/env python3
"""
Entrypoint для Live Tracking.

Запуск:
    python entrypoints/entrypoint_live_tracking.py

Порт по умолчанию: 8090 (TRACKING_SERVICE_PORT)
"""

import sys
from pathlib import Path

# Добавляем корневую директорию проекта в путь
project_root = Path(__file__).parent.parent.resolve()
sys.path.insert(0, str(project_root))

import uvicorn

from src.config import settings


def main() -> None:
    """Запустить Live Tracking."""
    # Состояние в памяти процесса: только один worker
    uvicorn.run(
        "src.services.live_tracking.app:app",
        host="0.0.0.0",
        port=settings.deployment.TRACKING_SERVICE_PORT,
        workers=1,
        reload=settings.system.DEBUG,
        log_level=settings.system.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    main()
