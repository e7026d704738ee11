# 操作日志组件 - 日志线程池
"""有界线程池：核心/最大线程数、有界队列、队列满时由调用方执行"""

import functools
import itertools
import threading
import time
from queue import Empty, Full, Queue
from typing import Callable, Set

import structlog

logger = structlog.get_logger()

_POLL_INTERVAL = 0.1


class BoundedThreadPool:
    """
    有界线程池

    提交顺序：核心线程未满则新建线程；否则入队；队列满且未到最大线程数则新建线程；
    都满了就在调用方线程直接执行（不丢弃、不拒绝）。
    关闭后新提交的任务同样在调用方执行。
    """

    def __init__(
        self,
        core_size: int = 2,
        max_size: int = 5,
        queue_capacity: int = 100,
        thread_name_prefix: str = "oplog-",
        keep_alive_seconds: float = 60.0
    ):
        if core_size < 1:
            raise ValueError("core_size 必须大于 0")
        if max_size < core_size:
            raise ValueError("max_size 不能小于 core_size")
        if queue_capacity < 1:
            raise ValueError("queue_capacity 必须大于 0")

        self.core_size = core_size
        self.max_size = max_size
        self.queue_capacity = queue_capacity
        self.thread_name_prefix = thread_name_prefix
        self.keep_alive_seconds = keep_alive_seconds

        self._queue: Queue = Queue(maxsize=queue_capacity)
        self._workers: Set[threading.Thread] = set()
        self._lock = threading.Lock()
        self._counter = itertools.count(1)
        self._shutdown = False
        self._caller_runs = 0

    @classmethod
    def from_settings(cls, settings) -> "BoundedThreadPool":
        """从 ThreadPoolSettings 创建"""
        return cls(
            core_size=settings.core_size,
            max_size=settings.max_size,
            queue_capacity=settings.queue_capacity,
            thread_name_prefix=settings.thread_name_prefix,
            keep_alive_seconds=settings.keep_alive_seconds,
        )

    @property
    def pool_size(self) -> int:
        with self._lock:
            return len(self._workers)

    @property
    def queue_size(self) -> int:
        return self._queue.qsize()

    @property
    def caller_runs(self) -> int:
        """在调用方线程执行的任务数"""
        return self._caller_runs

    @property
    def is_shutdown(self) -> bool:
        return self._shutdown

    def submit(self, fn: Callable, *args, **kwargs) -> None:
        """提交任务"""
        task = functools.partial(fn, *args, **kwargs)
        with self._lock:
            if not self._shutdown:
                if len(self._workers) < self.core_size:
                    self._spawn(task)
                    return
                try:
                    self._queue.put_nowait(task)
                    return
                except Full:
                    if len(self._workers) < self.max_size:
                        self._spawn(task)
                        return
            self._caller_runs += 1

        if not self._shutdown:
            logger.debug("日志线程池已满，由调用方执行", queue_capacity=self.queue_capacity)
        self._run(task)

    def _spawn(self, first_task: Callable) -> None:
        worker = threading.Thread(
            target=self._work,
            args=(first_task,),
            name=f"{self.thread_name_prefix}{next(self._counter)}",
            daemon=True,
        )
        self._workers.add(worker)
        worker.start()

    def _work(self, first_task: Callable) -> None:
        current = threading.current_thread()
        task = first_task
        idle = 0.0
        try:
            while True:
                if task is not None:
                    self._run(task)
                    task = None
                    idle = 0.0
                try:
                    task = self._queue.get(timeout=_POLL_INTERVAL)
                except Empty:
                    if self._shutdown:
                        return
                    idle += _POLL_INTERVAL
                    if idle >= self.keep_alive_seconds:
                        with self._lock:
                            if len(self._workers) > self.core_size:
                                self._workers.discard(current)
                                return
                        idle = 0.0
        finally:
            with self._lock:
                self._workers.discard(current)

    @staticmethod
    def _run(task: Callable) -> None:
        try:
            task()
        except Exception as e:
            logger.error("日志线程池任务执行失败", error=str(e), exc_info=True)

    def shutdown(self, timeout: float = None) -> bool:
        """
        关闭线程池，等待已排队的任务执行完

        Args:
            timeout: 最长等待秒数，None 表示一直等

        Returns:
            是否在超时前全部执行完
        """
        with self._lock:
            self._shutdown = True
            workers = list(self._workers)

        deadline = None if timeout is None else time.monotonic() + timeout
        for worker in workers:
            remaining = None if deadline is None else max(0.0, deadline - time.monotonic())
            worker.join(remaining)

        drained = not any(w.is_alive() for w in workers) and self._queue.empty()
        if not drained:
            logger.warning("日志线程池关闭超时", pending=self._queue.qsize())
        else:
            logger.info("日志线程池已关闭")
        return drained
