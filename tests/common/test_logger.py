# tests/common/test_logger.py
"""
Unit тесты для модуля логирования (src/common/logger.py).
"""

import json
import logging
import sys
from pathlib import Path
from unittest.mock import Mock, patch, MagicMock

import pytest

from src.common.logger import (
    DEFAULT_LOGGER_NAME,
    DateBasedRotatingFileHandler,
    JsonFormatter,
    ColoredFormatter,
    get_logger,
    setup_logging,
    log_info,
    log_debug,
    log_warning,
    log_error,
    _get_caller_info,
    _loggers,
)
from src.common.constants import TypeMsg


def make_record(level: int = logging.INFO, msg: str = "Test message", exc_info=None) -> logging.LogRecord:
    record = logging.LogRecord(
        name="test_logger",
        level=level,
        pathname="test.py",
        lineno=10,
        msg=msg,
        args=(),
        exc_info=exc_info,
    )
    record.module = "test_module"
    record.funcName = "test_function"
    return record


class TestJsonFormatter:
    """Тесты для JsonFormatter."""

    def test_format_basic_record(self) -> None:
        """Тест форматирования базовой записи."""
        result = json.loads(JsonFormatter().format(make_record()))

        assert result["level"] == "INFO"
        assert result["message"] == "Test message"
        assert result["module"] == "test_module"
        assert result["function"] == "test_function"
        assert result["line"] == 10
        assert result["timestamp"].endswith("Z")

    def test_format_with_extra_data(self) -> None:
        """Тест форматирования записи с дополнительными данными."""
        record = make_record(logging.WARNING)
        record.extra_data = {"trip_id": "R1", "delivered": 2}

        result = json.loads(JsonFormatter().format(record))

        assert result["extra"] == {"trip_id": "R1", "delivered": 2}

    def test_format_with_exception(self) -> None:
        """Тест форматирования записи с исключением."""
        try:
            raise ValueError("Test exception")
        except ValueError:
            exc_info = sys.exc_info()

        result = JsonFormatter().format(make_record(logging.ERROR, "Error occurred", exc_info))

        assert '"exception"' in result
        assert "ValueError" in result
        assert "Test exception" in result


class TestColoredFormatter:
    """Тесты для ColoredFormatter."""

    def test_format_basic_record(self) -> None:
        result = ColoredFormatter().format(make_record())

        assert "INFO" in result
        assert "Test message" in result
        assert "\033[" in result  # ANSI код присутствует

    def test_format_with_caller_info(self) -> None:
        """Тест форматирования с информацией о вызывающей функции."""
        record = make_record(logging.DEBUG)
        record.extra_data = {
            "caller_function": "my_function",
            "caller_module": "my_module",
            "caller_file": "my_file.py",
            "caller_line": 42,
        }

        result = ColoredFormatter().format(record)

        assert "my_module.my_function()" in result
        assert "my_file.py:42" in result

    def test_format_with_extra_fields(self) -> None:
        """Поля extra без caller_ выводятся в конце строки."""
        record = make_record()
        record.extra_data = {"caller_function": "f", "trip_id": "R1"}

        result = ColoredFormatter().format(record)

        assert "'trip_id': 'R1'" in result
        assert "caller_function" not in result


class TestDateBasedRotatingFileHandler:
    """Тесты ротации файла логов."""

    def test_writes_to_fixed_file(self, tmp_path: Path) -> None:
        handler = DateBasedRotatingFileHandler(log_dir=str(tmp_path), max_bytes=1024, logger_name="app")
        try:
            handler.emit(make_record())
        finally:
            handler.close()

        assert (tmp_path / "app.log").exists()

    def test_rollover_archives_file(self, tmp_path: Path) -> None:
        handler = DateBasedRotatingFileHandler(log_dir=str(tmp_path), max_bytes=1024, logger_name="app")
        try:
            handler.emit(make_record())
            handler.doRollover()
        finally:
            handler.close()

        archived = list(tmp_path.glob("app_*.log"))
        assert len(archived) == 1
        assert (tmp_path / "app.log").exists()

    def test_rollover_keeps_backup_count_archives(self, tmp_path: Path) -> None:
        """Старые архивы сверх backup_count удаляются."""
        for second in range(1, 4):
            (tmp_path / f"app_2020-01-01_00-00-0{second}.log").write_text("old")

        handler = DateBasedRotatingFileHandler(
            log_dir=str(tmp_path), max_bytes=1024, logger_name="app", backup_count=2
        )
        try:
            handler.emit(make_record())
            handler.doRollover()
        finally:
            handler.close()

        archived = sorted(path.name for path in tmp_path.glob("app_*.log"))
        assert len(archived) == 2
        assert archived[0] == "app_2020-01-01_00-00-03.log"
        assert not archived[1].startswith("app_2020")

    def test_zero_backup_count_keeps_all_archives(self, tmp_path: Path) -> None:
        for second in range(1, 4):
            (tmp_path / f"app_2020-01-01_00-00-0{second}.log").write_text("old")

        handler = DateBasedRotatingFileHandler(log_dir=str(tmp_path), max_bytes=1024, logger_name="app")
        try:
            handler.doRollover()
        finally:
            handler.close()

        assert len(list(tmp_path.glob("app_*.log"))) == 4


class TestGetLogger:
    """Тесты для get_logger."""

    def setup_method(self) -> None:
        """Очистка кэша логгеров перед каждым тестом."""
        _loggers.clear()
        # Очистка хендлеров у существующих логгеров
        for logger in logging.Logger.manager.loggerDict.values():
            if isinstance(logger, logging.Logger):
                logger.handlers.clear()

    def test_get_logger_creates_new_logger(self) -> None:
        """Тест создания нового логгера."""
        logger = get_logger("test_logger")

        assert logger.name == "test_logger"
        assert len(logger.handlers) >= 1
        assert logger.propagate is False

    def test_get_logger_returns_cached_logger(self) -> None:
        """Тест возврата кэшированного логгера."""
        logger1 = get_logger("test_logger")
        logger2 = get_logger("test_logger")

        assert logger1 is logger2

    @patch("src.config.settings")
    def test_get_logger_uses_settings(self, mock_settings: Mock) -> None:
        """Тест использования настроек из конфига."""
        mock_settings.logging.LOG_LEVEL = "WARNING"
        mock_settings.logging.LOG_FORMAT = "json"
        mock_settings.logging.LOG_TO_FILE = False
        mock_settings.logging.LOG_FILE_PATH = "logs/test.log"
        mock_settings.logging.LOG_MAX_BYTES = 10485760

        logger = get_logger("test_with_settings")

        assert logger.level == logging.WARNING
        assert isinstance(logger.handlers[0].formatter, JsonFormatter)

    @patch("src.config.settings")
    def test_file_handlers_use_backup_count(self, mock_settings: Mock, tmp_path: Path) -> None:
        """LOG_BACKUP_COUNT передаётся файловым хендлерам."""
        mock_settings.logging.LOG_LEVEL = "INFO"
        mock_settings.logging.LOG_FORMAT = "json"
        mock_settings.logging.LOG_TO_FILE = True
        mock_settings.logging.LOG_FILE_PATH = str(tmp_path / "app.log")
        mock_settings.logging.LOG_MAX_BYTES = 1024
        mock_settings.logging.LOG_BACKUP_COUNT = 3

        with patch("src.common.logger._GLOBAL_FILE_HANDLER", None), \
                patch("src.common.logger._GLOBAL_ERROR_HANDLER", None):
            logger = get_logger("test_backup_count")
            file_handlers = [h for h in logger.handlers if isinstance(h, DateBasedRotatingFileHandler)]
            try:
                assert len(file_handlers) == 2
                assert all(h.backup_count == 3 for h in file_handlers)
            finally:
                for handler in file_handlers:
                    handler.close()
                logger.handlers.clear()

    def test_get_logger_handles_missing_settings(self) -> None:
        """Тест работы при отсутствии настроек."""
        # settings импортируется внутри функции, поэтому патчим модуль src.config
        with patch.dict("sys.modules", {"src.config": None}):
            logger = get_logger("test_no_settings")

            assert logger.level == logging.DEBUG


class TestSetupLogging:
    """Тесты для setup_logging."""

    def setup_method(self) -> None:
        _loggers.clear()

    def test_setup_logging_initializes_system(self) -> None:
        """Тест инициализации системы логирования."""
        with patch("src.common.logger._LOGGING_INITIALIZED", False):
            setup_logging()

        assert DEFAULT_LOGGER_NAME in _loggers

    def test_setup_logging_sets_third_party_levels(self) -> None:
        """Тест установки уровней для сторонних библиотек."""
        with patch("src.common.logger._LOGGING_INITIALIZED", False):
            setup_logging()

        assert logging.getLogger("httpx").level == logging.WARNING
        assert logging.getLogger("uvicorn.access").level == logging.WARNING


class TestGetCallerInfo:
    """Тесты для _get_caller_info."""

    def test_get_caller_info_returns_dict(self) -> None:
        info = _get_caller_info()

        assert isinstance(info, dict)

    @pytest.mark.asyncio
    async def test_log_debug_reports_real_caller(self) -> None:
        """Кадр log_debug пропускается: в записи указан вызывающий код."""
        async def tracked_caller() -> None:
            await log_debug("Debug message")

        with patch.object(logging.Logger, "debug") as mock_debug:
            await tracked_caller()

        extra_data = mock_debug.call_args[1]["extra"]["extra_data"]
        assert extra_data["caller_function"] == "tracked_caller"


class TestLogFunctions:
    """Тесты для асинхронных функций логирования."""

    def setup_method(self) -> None:
        _loggers.clear()

    @pytest.mark.asyncio
    async def test_log_info_basic(self) -> None:
        """Тест базового логирования INFO."""
        with patch.object(logging.Logger, "info") as mock_info:
            await log_info("Test message")

            mock_info.assert_called_once()
            assert "Test message" in mock_info.call_args[0]

    @pytest.mark.asyncio
    async def test_log_info_with_type_msg(self) -> None:
        """Тест логирования с разными типами сообщений."""
        with patch.object(logging.Logger, "debug") as mock_debug:
            await log_info("Debug message", type_msg=TypeMsg.DEBUG)
            mock_debug.assert_called_once()

        with patch.object(logging.Logger, "warning") as mock_warning:
            await log_info("Warning message", type_msg=TypeMsg.WARNING)
            mock_warning.assert_called_once()

        with patch.object(logging.Logger, "critical") as mock_critical:
            await log_info("Critical message", type_msg=TypeMsg.CRITICAL)
            mock_critical.assert_called_once()

    @pytest.mark.asyncio
    async def test_log_info_with_extra(self) -> None:
        """Тест логирования с дополнительными данными."""
        with patch.object(logging.Logger, "info") as mock_info:
            await log_info("Test message", extra={"trip_id": "R1"})

            extra_data = mock_info.call_args[1]["extra"]["extra_data"]
            assert extra_data["trip_id"] == "R1"

    @pytest.mark.asyncio
    async def test_log_warning(self) -> None:
        with patch.object(logging.Logger, "warning") as mock_warning:
            await log_warning("Warning message")

            mock_warning.assert_called_once()

    @pytest.mark.asyncio
    async def test_log_error_with_exc_info(self) -> None:
        """Тест логирования ошибки с трейсбеком."""
        with patch.object(logging.Logger, "error") as mock_error:
            await log_error("Error message", exc_info=True)

            mock_error.assert_called_once()
            assert mock_error.call_args[1].get("exc_info") is True

    @pytest.mark.asyncio
    async def test_log_info_with_custom_logger_name(self) -> None:
        """Тест логирования с пользовательским именем логгера."""
        with patch("src.common.logger.get_logger") as mock_get_logger:
            mock_logger = MagicMock()
            mock_get_logger.return_value = mock_logger

            await log_info("Test message", logger_name="custom_logger")

            mock_get_logger.assert_called_once_with("custom_logger")
            mock_logger.info.assert_called_once()
