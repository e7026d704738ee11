# 操作日志组件 - 日志分发器
"""将完成的日志记录分发给所有处理器"""

from typing import Optional, Sequence, Tuple

import structlog

from .executor import BoundedThreadPool
from .handlers import DefaultLogHandler, LogHandler
from .models import LogRecord

logger = structlog.get_logger()


class LogDispatcher:
    """
    日志分发器

    处理器按 order() 升序执行，order 相同保持注册顺序；构建后处理器列表不再变化。
    单个处理器失败只记录内部日志，不影响其他处理器，也不影响业务调用。
    """

    def __init__(
        self,
        handlers: Sequence[LogHandler] = None,
        executor: Optional[BoundedThreadPool] = None,
        async_dispatch: bool = False
    ):
        handlers = list(handlers or [])
        if not handlers:
            handlers = [DefaultLogHandler()]
        # sorted 是稳定排序
        self._handlers: Tuple[LogHandler, ...] = tuple(sorted(handlers, key=lambda h: h.order()))
        self._executor = executor
        self._async = async_dispatch and executor is not None

    @property
    def handlers(self) -> Tuple[LogHandler, ...]:
        return self._handlers

    @property
    def executor(self) -> Optional[BoundedThreadPool]:
        return self._executor

    @property
    def is_async(self) -> bool:
        return self._async

    def dispatch(self, record: LogRecord) -> None:
        """分发日志记录，异步模式下提交到线程池"""
        if self._async:
            try:
                self._executor.submit(self._fan_out, record)
            except Exception as e:
                logger.error("提交日志任务失败，改为同步处理", error=str(e))
                self._fan_out(record)
        else:
            self._fan_out(record)

    def _fan_out(self, record: LogRecord) -> None:
        for handler in self._handlers:
            try:
                handler.handle(record)
            except Exception as e:
                logger.error(
                    "日志处理器执行失败",
                    handler=type(handler).__name__,
                    log_id=record.log_id,
                    error=str(e),
                    exc_info=True,
                )

    def shutdown(self, timeout: float = None) -> bool:
        """关闭分发器持有的线程池"""
        if self._executor is None:
            return True
        return self._executor.shutdown(timeout)
