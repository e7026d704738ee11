# 操作日志组件
"""访问日志、操作日志、异常日志的拦截、记录与分发"""

from .bootstrap import LogComponents, build_components
from .config import LogSettings, ThreadPoolSettings, get_settings
from .context import (
    Identity,
    IdentityProvider,
    RequestInfo,
    get_current_request,
    request_scope,
)
from .dispatcher import LogDispatcher
from .exceptions import OplogError, RecordFrozenError
from .executor import BoundedThreadPool
from .handlers import LOWEST_PRECEDENCE, RECORD_LOGGER_NAME, DefaultLogHandler, LogHandler
from .interceptors import (
    AccessLog,
    AccessLogInterceptor,
    ExceptionInterceptor,
    OperationLog,
    OperationLogInterceptor,
)
from .log_config import setup_logging
from .middleware import ExceptionLogMiddleware, RequestContextMiddleware
from .models import LogRecord, LogType, OperationType
from .routing import access_log_route_class

__all__ = [
    # 装配
    "LogComponents",
    "build_components",
    "LogSettings",
    "ThreadPoolSettings",
    "get_settings",
    "setup_logging",
    # 上下文
    "Identity",
    "IdentityProvider",
    "RequestInfo",
    "get_current_request",
    "request_scope",
    # 模型
    "LogRecord",
    "LogType",
    "OperationType",
    # 处理与分发
    "LogHandler",
    "DefaultLogHandler",
    "LOWEST_PRECEDENCE",
    "RECORD_LOGGER_NAME",
    "LogDispatcher",
    "BoundedThreadPool",
    # 拦截器
    "AccessLog",
    "OperationLog",
    "AccessLogInterceptor",
    "OperationLogInterceptor",
    "ExceptionInterceptor",
    "ExceptionLogMiddleware",
    "RequestContextMiddleware",
    "access_log_route_class",
    # 异常
    "OplogError",
    "RecordFrozenError",
]
