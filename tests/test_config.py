# 操作日志组件 - 配置与装配测试
"""配置加载、组件装配、日志配置测试"""

import logging

import pytest
import structlog
from pydantic import ValidationError

from oplog.bootstrap import build_components
from oplog.config import DEFAULT_EXCLUDED_PATHS, LogSettings, ThreadPoolSettings, get_settings
from oplog.handlers import RECORD_LOGGER_NAME, DefaultLogHandler
from oplog.log_config import _INSTALLED_MARK, COMPONENT_LOGGER_NAME, setup_logging
from oplog.models import LogType
from oplog.utils import create_log_record


class TestLogSettings:
    """日志配置测试"""

    def test_defaults(self):
        """测试默认配置"""
        settings = LogSettings()

        assert settings.enabled is True
        assert settings.operation_enabled is True
        assert settings.access_enabled is True
        assert settings.exception_enabled is True
        assert settings.access_log_all_routes is False
        assert settings.record_request_params is True
        assert settings.record_response_result is True
        assert settings.record_headers is False
        assert settings.max_response_length == 2000
        assert settings.max_request_length == 2000
        assert settings.slow_request_threshold == 3000
        assert settings.excluded_paths == DEFAULT_EXCLUDED_PATHS
        assert "password" in settings.sensitive_fields
        assert settings.async_dispatch is True
        assert settings.thread_pool.core_size == 2
        assert settings.thread_pool.max_size == 5
        assert settings.thread_pool.queue_capacity == 100
        assert settings.thread_pool.thread_name_prefix == "oplog-"
        assert settings.thread_pool.await_termination_seconds == 60

    def test_env_override(self, monkeypatch):
        """测试环境变量覆盖"""
        monkeypatch.setenv("OPLOG_APP_NAME", "chronicle-api")
        monkeypatch.setenv("OPLOG_SLOW_REQUEST_THRESHOLD", "500")
        monkeypatch.setenv("OPLOG_RECORD_HEADERS", "true")
        monkeypatch.setenv("OPLOG_EXCLUDED_PATHS", '["/internal/**"]')
        monkeypatch.setenv("OPLOG_THREAD_POOL__CORE_SIZE", "3")

        settings = LogSettings()

        assert settings.app_name == "chronicle-api"
        assert settings.slow_request_threshold == 500
        assert settings.record_headers is True
        assert settings.excluded_paths == ["/internal/**"]
        assert settings.thread_pool.core_size == 3
        assert settings.thread_pool.max_size == 5

    def test_read_only(self):
        """测试加载后只读"""
        settings = LogSettings()

        with pytest.raises(ValidationError):
            settings.enabled = False

    def test_invalid_thread_pool(self):
        with pytest.raises(ValidationError):
            ThreadPoolSettings(core_size=4, max_size=2)
        with pytest.raises(ValidationError):
            ThreadPoolSettings(queue_capacity=0)

    def test_negative_threshold_rejected(self):
        with pytest.raises(ValidationError):
            LogSettings(slow_request_threshold=-1)

    def test_get_settings_cached(self):
        get_settings.cache_clear()
        try:
            assert get_settings() is get_settings()
        finally:
            get_settings.cache_clear()


class TestBuildComponents:
    """组件装配测试"""

    def test_sync_components(self, make_settings, recorder):
        components = build_components(make_settings(), handlers=[recorder])

        assert components.dispatcher.is_async is False
        assert components.dispatcher.executor is None
        assert components.dispatcher.handlers == (recorder,)
        assert components.access.dispatcher is components.dispatcher
        assert components.operation.settings is components.settings
        assert components.shutdown() is True

    def test_async_components(self, make_settings, recorder):
        """测试异步分发时创建线程池"""
        settings = make_settings(
            async_dispatch=True,
            thread_pool={"core_size": 1, "max_size": 2, "queue_capacity": 10, "thread_name_prefix": "oplog-it-"},
        )
        components = build_components(settings, handlers=[recorder])

        pool = components.dispatcher.executor
        assert components.dispatcher.is_async is True
        assert pool.core_size == 1
        assert pool.max_size == 2
        assert pool.thread_name_prefix == "oplog-it-"

        components.operation.wrap(lambda: "done")()

        assert components.shutdown(timeout=5) is True
        assert len(recorder.records) == 1

    def test_default_handler(self, make_settings):
        components = build_components(make_settings())

        assert isinstance(components.dispatcher.handlers[0], DefaultLogHandler)


@pytest.fixture
def restore_logging():
    saved = {}
    for name in (None, RECORD_LOGGER_NAME):
        logger = logging.getLogger(name)
        saved[name] = (list(logger.handlers), logger.level)
    yield
    for name, (handlers, level) in saved.items():
        logger = logging.getLogger(name)
        for handler in list(logger.handlers):
            if handler not in handlers and getattr(handler, _INSTALLED_MARK, False):
                logger.removeHandler(handler)
                handler.close()
        logger.setLevel(level)
    logging.getLogger(COMPONENT_LOGGER_NAME).setLevel(logging.NOTSET)
    structlog.reset_defaults()


def _flush(*loggers):
    for logger in loggers:
        for handler in logger.handlers:
            handler.flush()


class TestSetupLogging:
    """日志配置测试"""

    def test_level_and_handlers(self, restore_logging):
        before = len(logging.getLogger().handlers)

        root = setup_logging(level="debug")

        assert root.level == logging.DEBUG
        assert len(root.handlers) == before + 1
        assert logging.getLogger("httpx").level == logging.WARNING

    def test_repeated_setup(self, restore_logging, tmp_path):
        """测试重复调用不重复挂载处理器"""
        root = logging.getLogger()
        before = len(root.handlers)

        setup_logging(level="INFO", log_file=str(tmp_path / "all.log"))
        setup_logging(level="WARNING", log_file=str(tmp_path / "all.log"))

        assert len(root.handlers) == before + 2
        assert root.level == logging.WARNING

        setup_logging(level="INFO")

        assert len(root.handlers) == before + 1

    def test_record_file_replaced(self, restore_logging, tmp_path):
        """测试重新配置时替换日志记录文件"""
        first = tmp_path / "records-1.log"
        second = tmp_path / "records-2.log"
        record_logger = logging.getLogger(RECORD_LOGGER_NAME)
        before = len(record_logger.handlers)

        setup_logging(record_file=str(first))
        setup_logging(record_file=str(second))

        files = [h.baseFilename for h in record_logger.handlers if isinstance(h, logging.FileHandler)]
        assert files == [str(second)]
        assert len(record_logger.handlers) == before + 1

    def test_records_written_to_record_file(self, restore_logging, tmp_path):
        """测试默认处理器的输出写入日志记录文件"""
        record_file = tmp_path / "records.log"
        setup_logging(level="INFO", json_format=True, record_file=str(record_file))

        record = create_log_record(LogType.ACCESS, app_name="chronicle-api")
        record.success = True
        DefaultLogHandler().handle(record)
        structlog.get_logger("oplog.dispatcher").info("日志分发器已关闭")
        _flush(logging.getLogger(RECORD_LOGGER_NAME))

        lines = record_file.read_text(encoding="utf-8").splitlines()
        assert len(lines) == 1
        assert f'"log_id": "{record.log_id}"' in lines[0]
        assert '"logger": "oplog.default"' in lines[0]

    def test_component_level(self, restore_logging):
        """测试组件日志级别单独设置，重新配置后恢复跟随根日志"""
        setup_logging(level="INFO", component_level="debug")

        assert logging.getLogger(COMPONENT_LOGGER_NAME).level == logging.DEBUG
        assert logging.getLogger("oplog.dispatcher").isEnabledFor(logging.DEBUG)

        setup_logging(level="INFO")

        assert logging.getLogger(COMPONENT_LOGGER_NAME).level == logging.NOTSET
        assert not logging.getLogger("oplog.dispatcher").isEnabledFor(logging.DEBUG)

    def test_json_to_file(self, restore_logging, tmp_path):
        """测试JSON格式写入日志文件"""
        log_file = tmp_path / "oplog.log"
        setup_logging(level="INFO", json_format=True, log_file=str(log_file))

        structlog.get_logger("oplog.test").info("日志系统初始化", app="测试")
        _flush(logging.getLogger())

        content = log_file.read_text(encoding="utf-8")
        assert '"event": "日志系统初始化"' in content
        assert '"app": "测试"' in content
