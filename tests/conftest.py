# 操作日志组件 - 测试配置
"""公共fixture"""

import threading

import pytest

from oplog.config import LogSettings
from oplog.context import RequestInfo
from oplog.dispatcher import LogDispatcher
from oplog.handlers import LogHandler


class RecordingHandler(LogHandler):
    """记录收到的日志，测试用"""

    def __init__(self, priority: int = 0, name: str = "recorder", journal: list = None):
        self.priority = priority
        self.name = name
        self.records = []
        self.journal = journal
        self._lock = threading.Lock()

    def handle(self, record):
        with self._lock:
            self.records.append(record)
            if self.journal is not None:
                self.journal.append(self.name)

    def order(self) -> int:
        return self.priority


class FailingHandler(LogHandler):
    """总是失败的处理器"""

    def __init__(self, priority: int = 0):
        self.priority = priority
        self.calls = 0

    def handle(self, record):
        self.calls += 1
        raise RuntimeError("handler broken")

    def order(self) -> int:
        return self.priority


@pytest.fixture
def make_settings():
    """同步分发的配置工厂"""
    def _make(**overrides):
        values = {"app_name": "test-app", "async_dispatch": False}
        values.update(overrides)
        return LogSettings(**values)
    return _make


@pytest.fixture
def settings(make_settings):
    return make_settings()


@pytest.fixture
def recorder():
    return RecordingHandler()


@pytest.fixture
def dispatcher(recorder):
    return LogDispatcher([recorder])


@pytest.fixture
def request_info():
    return RequestInfo(
        method="GET",
        uri="/api/v1/users",
        headers={
            "host": "testserver",
            "user-agent": "pytest-agent",
            "authorization": "Bearer secret-token",
        },
        params={"q": ["北京"], "page": ["1"]},
        client_ip="10.0.0.8",
        user_agent="pytest-agent",
    )
