# 操作日志组件 - 日志模型测试
"""LogRecord 生命周期测试"""

import json
from datetime import datetime

import pytest

from oplog.exceptions import RecordFrozenError
from oplog.models import LogRecord, LogType, OperationType


class TestLogRecord:
    """日志记录测试"""

    def test_create_time_unset_before_finalize(self):
        """测试完成前没有创建时间"""
        record = LogRecord(log_id="abc", log_type=LogType.OPERATION)

        assert record.create_time is None
        assert record.execution_time is None
        assert record.success is True
        assert record.frozen is False

    def test_finalize_fast_request(self):
        """测试50ms请求不是慢请求"""
        record = LogRecord(log_id="a")
        record.finalize(50, 3000)

        assert record.execution_time == 50
        assert record.slow_request is False
        assert record.success is True
        assert isinstance(record.create_time, datetime)

    def test_finalize_slow_request(self):
        """测试5000ms请求是慢请求"""
        record = LogRecord(log_id="b")
        record.finalize(5000, 3000)

        assert record.slow_request is True

    def test_threshold_is_exclusive(self):
        """测试等于阈值不算慢请求"""
        record = LogRecord().finalize(3000, 3000)

        assert record.slow_request is False

    def test_negative_execution_time_clamped(self):
        """测试负耗时按0处理"""
        record = LogRecord().finalize(-5, 3000)

        assert record.execution_time == 0

    def test_frozen_record_rejects_mutation(self):
        """测试冻结后不能修改"""
        record = LogRecord(log_id="c").finalize(1, 3000)

        with pytest.raises(RecordFrozenError):
            record.success = False
        with pytest.raises(AttributeError):
            record.create_time = datetime.now()

        assert record.success is True

    def test_frozen_mappings_are_read_only(self):
        """测试冻结后映射字段只读"""
        record = LogRecord(
            request_headers={"accept": "*/*"},
            extra_info={"trace": "t-1"}
        )
        record.finalize(1, 3000)

        with pytest.raises(TypeError):
            record.request_headers["accept"] = "text/html"
        with pytest.raises(TypeError):
            record.extra_info["trace"] = "t-2"
        assert record.request_headers["accept"] == "*/*"

    def test_finalize_twice_fails(self):
        """测试创建时间只设置一次"""
        record = LogRecord().finalize(1, 3000)
        first = record.create_time

        with pytest.raises(RecordFrozenError):
            record.finalize(2, 3000)
        assert record.create_time == first

    def test_to_dict(self):
        """测试转换为字典"""
        record = LogRecord(
            log_id="d",
            log_type=LogType.EXCEPTION,
            request_headers={"x-a": "1"},
        ).finalize(10, 3000)

        data = record.to_dict()

        assert data["log_type"] == "exception"
        assert data["request_headers"] == {"x-a": "1"}
        assert isinstance(data["create_time"], str)
        assert "_frozen" not in data
        assert json.loads(record.to_json())["log_id"] == "d"

    def test_to_simple_log(self):
        """测试单行摘要"""
        record = LogRecord(
            log_type=LogType.ACCESS,
            request_method="GET",
            request_uri="/api/v1/docs",
            client_ip="1.2.3.4",
            success=False,
        ).finalize(5000, 3000)

        line = record.to_simple_log()

        assert line.startswith("[访问日志]")
        assert "GET /api/v1/docs" in line
        assert "匿名" in line
        assert "5000ms" in line
        assert "慢请求" in line
        assert "失败" in line


class TestEnums:
    """枚举测试"""

    def test_log_type_desc(self):
        assert LogType.OPERATION.desc == "操作日志"
        assert LogType.SECURITY.desc == "安全日志"

    def test_operation_type_desc(self):
        assert OperationType.EXPORT.desc == "导出"
        assert OperationType("DELETE") is OperationType.DELETE
