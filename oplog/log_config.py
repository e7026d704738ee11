# 操作日志组件 - 日志配置
"""
结构化日志配置

组件诊断日志（``oplog.*``）和 DefaultLogHandler 输出的日志记录（``oplog.default``）
都经 structlog 交给标准库 logging。本模块挂上的处理器带标记，重复调用
setup_logging 时先摘掉上一次的，不会重复输出。
"""

import logging
import sys
from typing import List, Optional

import structlog

from .handlers import RECORD_LOGGER_NAME

COMPONENT_LOGGER_NAME = "oplog"

NOISY_LOGGERS = ("uvicorn", "uvicorn.access", "httpx", "httpcore")

_INSTALLED_MARK = "_oplog_installed"


def _processors(json_format: bool) -> List:
    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]
    if json_format:
        processors.append(structlog.processors.format_exc_info)
        processors.append(structlog.processors.JSONRenderer(ensure_ascii=False))
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty()))
    return processors


def _attach(logger: logging.Logger, handler: logging.Handler) -> None:
    handler.setFormatter(logging.Formatter("%(message)s"))
    setattr(handler, _INSTALLED_MARK, True)
    logger.addHandler(handler)


def _detach_installed(logger: logging.Logger) -> None:
    for handler in list(logger.handlers):
        if getattr(handler, _INSTALLED_MARK, False):
            logger.removeHandler(handler)
            handler.close()


def setup_logging(
    level: str = "INFO",
    json_format: bool = False,
    log_file: Optional[str] = None,
    record_file: Optional[str] = None,
    component_level: Optional[str] = None
) -> logging.Logger:
    """
    配置结构化日志，可重复调用

    Args:
        level: 根日志级别
        json_format: 是否输出JSON格式
        log_file: 全部日志额外写入的文件
        record_file: 日志记录单独写入的文件，只接 ``oplog.default``
        component_level: ``oplog`` 组件日志级别，为空时跟随根日志

    Returns:
        根 logger
    """
    structlog.configure(
        processors=_processors(json_format),
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    root_logger = logging.getLogger()
    record_logger = logging.getLogger(RECORD_LOGGER_NAME)
    _detach_installed(root_logger)
    _detach_installed(record_logger)

    root_logger.setLevel(level.upper())
    _attach(root_logger, logging.StreamHandler(sys.stdout))
    if log_file:
        _attach(root_logger, logging.FileHandler(log_file, encoding="utf-8"))

    # 日志记录仍向上传播到控制台
    if record_file:
        _attach(record_logger, logging.FileHandler(record_file, encoding="utf-8"))

    component_logger = logging.getLogger(COMPONENT_LOGGER_NAME)
    component_logger.setLevel(component_level.upper() if component_level else logging.NOTSET)

    for logger_name in NOISY_LOGGERS:
        logging.getLogger(logger_name).setLevel(logging.WARNING)

    return root_logger
