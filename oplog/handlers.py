# 操作日志组件 - 日志处理器
"""日志处理器接口与默认实现"""

from abc import ABC, abstractmethod

import structlog

from .models import LogRecord

# 数字越小优先级越高
HIGHEST_PRECEDENCE = -(2 ** 31)
LOWEST_PRECEDENCE = 2 ** 31 - 1

# DefaultLogHandler 输出日志记录用的 logger
RECORD_LOGGER_NAME = "oplog.default"

_BORDER = "═" * 64


class LogHandler(ABC):
    """
    日志处理器接口

    自定义实现以定制日志的去向（数据库、消息队列等）。
    收到的记录已冻结，处理器只读不写。
    """

    @abstractmethod
    def handle(self, record: LogRecord) -> None:
        """处理日志记录"""
        pass

    def order(self) -> int:
        """处理器优先级，数字越小越先执行"""
        return LOWEST_PRECEDENCE


class DefaultLogHandler(LogHandler):
    """默认日志处理器，输出到结构化日志"""

    def __init__(self, logger=None):
        self.logger = logger or structlog.get_logger(RECORD_LOGGER_NAME)

    def handle(self, record: LogRecord) -> None:
        if not record.success:
            self.logger.error(self._failure_block(record), log_id=record.log_id)
        elif record.slow_request:
            self.logger.warning(self._slow_block(record), log_id=record.log_id)
        else:
            self.logger.info(record.to_simple_log(), log_id=record.log_id)

    def order(self) -> int:
        return LOWEST_PRECEDENCE

    @staticmethod
    def _block(lines) -> str:
        body = "\n".join(f"║ {line}" for line in lines)
        return f"╔{_BORDER}\n{body}\n╚{_BORDER}"

    def _failure_block(self, record: LogRecord) -> str:
        return self._block([
            f"异常日志 [{record.log_type.desc}]",
            f"请求: {record.request_method} {record.request_uri}",
            f"用户: {record.username or '匿名'} ({record.user_id or 'N/A'})",
            f"IP: {record.client_ip}",
            f"模块: {record.module or 'N/A'}",
            f"操作: {record.description or 'N/A'}",
            f"耗时: {record.execution_time}ms",
            f"异常: {record.exception}",
        ])

    def _slow_block(self, record: LogRecord) -> str:
        return self._block([
            f"慢请求 [{record.log_type.desc}]",
            f"请求: {record.request_method} {record.request_uri}",
            f"用户: {record.username or '匿名'} ({record.user_id or 'N/A'})",
            f"IP: {record.client_ip}",
            f"耗时: {record.execution_time}ms",
            f"参数: {record.request_params}",
        ])
