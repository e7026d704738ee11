# 操作日志组件 - 日志拦截器
"""
访问日志、操作日志、异常日志拦截器

拦截器包装一次调用：入口处创建日志记录，调用结束（成功或失败）后补全耗时并冻结，
再交给分发器。日志只是旁路，被包装调用的返回值和异常原样透传。

用法::

    access = AccessLogInterceptor(settings, dispatcher)

    @router.get("/users/{user_id}")
    @access.log(description="查询用户")
    async def get_user(user_id: int):
        ...
"""

import functools
import inspect
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Union

import structlog

from .config import LogSettings
from .context import IdentityProvider, RequestInfo, get_current_request
from .dispatcher import LogDispatcher
from .models import LogRecord, LogType, OperationType
from .utils import (
    create_log_record,
    get_request_headers,
    get_request_params,
    get_stack_trace,
    mask_sensitive,
    should_exclude,
    to_json,
    truncate,
)

logger = structlog.get_logger()

GENERIC_ERROR_MESSAGE = "服务器内部错误"


@dataclass(frozen=True)
class AccessLog:
    """访问日志描述，None 表示使用全局配置"""
    description: str = ""
    record_params: Optional[bool] = None
    record_result: Optional[bool] = None
    record_headers: Optional[bool] = None
    record_exception: Optional[bool] = None


@dataclass(frozen=True)
class OperationLog:
    """操作日志描述，None 表示使用全局配置"""
    module: str = ""
    type: OperationType = OperationType.OTHER
    description: str = ""
    record_params: Optional[bool] = None
    record_result: Optional[bool] = None
    record_exception: Optional[bool] = None


Descriptor = Union[AccessLog, OperationLog]

# 包装后的函数上记录已加的日志类型
_LOGGED_AS = "__oplog_log_type__"


def is_access_logged(func: Callable) -> bool:
    """函数是否已经加了访问日志装饰器"""
    return LogType.ACCESS in getattr(func, _LOGGED_AS, ())


def _choose(override: Optional[bool], default: bool) -> bool:
    return default if override is None else override


def error_payload(error: BaseException) -> Dict[str, Any]:
    """统一错误响应体"""
    return {
        "success": False,
        "code": 500,
        "message": str(error) or GENERIC_ERROR_MESSAGE,
        "timestamp": int(time.time() * 1000),
    }


class BaseLogInterceptor:
    """拦截器基类"""

    log_type: LogType = LogType.ACCESS

    def __init__(
        self,
        settings: LogSettings,
        dispatcher: LogDispatcher,
        identity_provider: Optional[IdentityProvider] = None,
        request_accessor: Callable[[], Optional[RequestInfo]] = get_current_request
    ):
        self.settings = settings
        self.dispatcher = dispatcher
        self.identity_provider = identity_provider
        self._request_accessor = request_accessor

    def _current_request(self) -> Optional[RequestInfo]:
        try:
            return self._request_accessor()
        except Exception as e:
            logger.debug("获取当前请求失败", error=str(e))
            return None

    def _category_enabled(self) -> bool:
        raise NotImplementedError

    def _should_log(self, request: Optional[RequestInfo]) -> bool:
        if not (self.settings.enabled and self._category_enabled()):
            return False
        if request is not None and should_exclude(request.uri, self.settings.excluded_paths):
            return False
        return True

    def _new_record(self, request: Optional[RequestInfo]) -> LogRecord:
        record = create_log_record(
            self.log_type,
            request,
            identity_provider=self.identity_provider,
            app_name=self.settings.app_name,
        )
        return record

    def _params_of(self, request: Optional[RequestInfo]) -> str:
        if request is None:
            return ""
        return get_request_params(request, self.settings.sensitive_fields)

    def _headers_of(self, request: RequestInfo) -> Dict[str, str]:
        headers = mask_sensitive(get_request_headers(request), self.settings.sensitive_fields)
        return {
            key: truncate(value, self.settings.max_request_length)
            for key, value in headers.items()
        }

    def _finish(self, record: LogRecord, execution_time: float) -> None:
        """收尾：耗时、慢请求、创建时间，冻结后分发"""
        try:
            record.finalize(int(execution_time), self.settings.slow_request_threshold)
            self.dispatcher.dispatch(record)
        except Exception as e:
            logger.warning("日志记录收尾失败", log_id=record.log_id, error=str(e))


class CallLogInterceptor(BaseLogInterceptor):
    """包装业务调用的拦截器，支持普通函数和协程函数"""

    descriptor_class = AccessLog

    def log(self, descriptor: Union[Descriptor, Callable, None] = None, **options):
        """
        装饰器

        可直接使用 ``@interceptor.log``，也可传入描述对象或描述字段：
        ``@interceptor.log(description="导出")``。
        """
        if callable(descriptor):
            return self.wrap(descriptor)
        if descriptor is None:
            descriptor = self.descriptor_class(**options)

        def decorator(func: Callable) -> Callable:
            return self.wrap(func, descriptor)
        return decorator

    def wrap(
        self,
        func: Callable,
        descriptor: Optional[Descriptor] = None,
        target: Optional[Callable] = None
    ) -> Callable:
        """
        包装调用

        Args:
            func: 被包装的调用
            descriptor: 日志描述，默认全部使用全局配置
            target: 记录类名、方法名时使用的函数，默认为 func 本身
        """
        descriptor = descriptor or self.descriptor_class()
        target = target or func

        if inspect.iscoroutinefunction(func):
            @functools.wraps(func)
            async def async_wrapper(*args, **kwargs):
                request = self._current_request()
                if not self._should_log(request):
                    return await func(*args, **kwargs)

                start = time.perf_counter()
                record = self._enter(target, args, kwargs, descriptor, request)
                if record is None:
                    return await func(*args, **kwargs)
                try:
                    result = await func(*args, **kwargs)
                except BaseException as e:
                    self._on_failure(record, e, descriptor)
                    raise
                else:
                    self._on_success(record, result, descriptor)
                    return result
                finally:
                    self._finish(record, (time.perf_counter() - start) * 1000)
            self._mark(async_wrapper, func)
            return async_wrapper

        @functools.wraps(func)
        def sync_wrapper(*args, **kwargs):
            request = self._current_request()
            if not self._should_log(request):
                return func(*args, **kwargs)

            start = time.perf_counter()
            record = self._enter(target, args, kwargs, descriptor, request)
            if record is None:
                return func(*args, **kwargs)
            try:
                result = func(*args, **kwargs)
            except BaseException as e:
                self._on_failure(record, e, descriptor)
                raise
            else:
                self._on_success(record, result, descriptor)
                return result
            finally:
                self._finish(record, (time.perf_counter() - start) * 1000)
        self._mark(sync_wrapper, func)
        return sync_wrapper

    def _mark(self, wrapper: Callable, func: Callable) -> None:
        # 多个装饰器叠加时保留内层已加的类型
        logged = frozenset(getattr(func, _LOGGED_AS, ())) | {self.log_type}
        setattr(wrapper, _LOGGED_AS, logged)

    def _enter(self, func, args, kwargs, descriptor, request) -> Optional[LogRecord]:
        try:
            record = self._new_record(request)
            record.method_name = getattr(func, "__name__", None)
            owner = getattr(func, "__qualname__", "").rpartition(".")[0]
            module = getattr(func, "__module__", None)
            record.class_name = f"{module}.{owner}" if owner else module
            self._prepare(record, args, kwargs, descriptor, request)
            return record
        except Exception as e:
            logger.warning("创建日志记录失败，跳过本次日志", error=str(e))
            return None

    def _prepare(self, record, args, kwargs, descriptor, request) -> None:
        raise NotImplementedError

    def _on_success(self, record: LogRecord, result: Any, descriptor: Descriptor) -> None:
        try:
            record.success = True
            status = getattr(result, "status_code", None)
            record.response_status = status if isinstance(status, int) else 200
            if _choose(descriptor.record_result, self.settings.record_response_result):
                record.response_result = truncate(
                    _render_result(result),
                    self.settings.max_response_length
                )
        except Exception as e:
            logger.warning("记录响应结果失败", log_id=record.log_id, error=str(e))

    def _on_failure(self, record: LogRecord, error: BaseException, descriptor: Descriptor) -> None:
        try:
            record.success = False
            record.exception = str(error) or type(error).__name__
            if _choose(descriptor.record_exception, True):
                record.stack_trace = get_stack_trace(error)
        except Exception as e:
            logger.warning("记录异常信息失败", log_id=record.log_id, error=str(e))


def _render_result(result: Any) -> str:
    body = getattr(result, "body", None)
    if isinstance(body, (bytes, bytearray)):
        return bytes(body).decode("utf-8", errors="replace")
    return to_json(result)


def _render_args(args, kwargs, sensitive_fields) -> str:
    parts = [to_json(arg) for arg in args if not _is_transport_object(arg)]
    masked = mask_sensitive(kwargs, sensitive_fields)
    parts.extend(
        f"{key}={to_json(value)}"
        for key, value in masked.items()
        if not _is_transport_object(value)
    )
    return ", ".join(parts)


def _is_transport_object(value: Any) -> bool:
    # Starlette Request/WebSocket 之类的对象序列化没有意义
    return hasattr(value, "scope") and hasattr(value, "receive")


class AccessLogInterceptor(CallLogInterceptor):
    """访问日志拦截器，只在有当前请求时记录"""

    log_type = LogType.ACCESS
    descriptor_class = AccessLog

    def _category_enabled(self) -> bool:
        return self.settings.access_enabled

    def _should_log(self, request: Optional[RequestInfo]) -> bool:
        return request is not None and super()._should_log(request)

    def _prepare(self, record, args, kwargs, descriptor, request) -> None:
        record.description = descriptor.description or None
        if _choose(descriptor.record_params, self.settings.record_request_params):
            record.request_params = truncate(
                self._params_of(request),
                self.settings.max_request_length
            )
        if _choose(descriptor.record_headers, self.settings.record_headers):
            record.request_headers = self._headers_of(request)


class OperationLogInterceptor(CallLogInterceptor):
    """操作日志拦截器，没有请求上下文时（如后台任务）同样记录"""

    log_type = LogType.OPERATION
    descriptor_class = OperationLog

    def _category_enabled(self) -> bool:
        return self.settings.operation_enabled

    def _prepare(self, record, args, kwargs, descriptor, request) -> None:
        record.module = descriptor.module or None
        record.operation_type = OperationType(descriptor.type).value
        record.description = descriptor.description or None
        if _choose(descriptor.record_params, self.settings.record_request_params):
            params = self._params_of(request)
            if not params:
                params = _render_args(args, kwargs, self.settings.sensitive_fields)
            record.request_params = truncate(params, self.settings.max_request_length)
        if request is not None and self.settings.record_headers:
            record.request_headers = self._headers_of(request)


class ExceptionInterceptor(BaseLogInterceptor):
    """
    异常日志拦截器

    未处理异常统一转为错误响应体；响应已提交时只记录日志，不再产生响应。
    """

    log_type = LogType.EXCEPTION

    def _category_enabled(self) -> bool:
        return self.settings.exception_enabled

    def handle(
        self,
        error: BaseException,
        request: Optional[RequestInfo] = None
    ) -> Optional[Dict[str, Any]]:
        """
        处理异常

        Args:
            error: 未处理的异常
            request: 请求上下文，默认取当前请求

        Returns:
            错误响应体；响应已提交时返回 None
        """
        request = request or self._current_request()

        if self._should_log(request):
            self._record(error, request)

        if request is not None and request.committed:
            logger.warning("响应已提交，只记录日志不返回响应", error=str(error))
            return None
        return error_payload(error)

    def wrap(self, func: Callable) -> Callable:
        """包装调用，异常转为错误响应体返回"""
        if inspect.iscoroutinefunction(func):
            @functools.wraps(func)
            async def async_wrapper(*args, **kwargs):
                try:
                    return await func(*args, **kwargs)
                except Exception as e:
                    return self.handle(e)
            return async_wrapper

        @functools.wraps(func)
        def sync_wrapper(*args, **kwargs):
            try:
                return func(*args, **kwargs)
            except Exception as e:
                return self.handle(e)
        return sync_wrapper

    def _record(self, error: BaseException, request: Optional[RequestInfo]) -> None:
        try:
            record = self._new_record(request)
            record.success = False
            record.response_status = 500
            record.exception = str(error) or type(error).__name__
            record.stack_trace = get_stack_trace(error)
            record.class_name, record.method_name = _raise_site(error)
            if self.settings.record_request_params and request is not None:
                record.request_params = truncate(
                    self._params_of(request),
                    self.settings.max_request_length
                )
            if self.settings.record_headers and request is not None:
                record.request_headers = self._headers_of(request)
        except Exception as e:
            logger.warning("创建异常日志失败", error=str(e))
            return

        elapsed = (time.perf_counter() - request.start_time) * 1000 if request else 0
        self._finish(record, elapsed)


def _raise_site(error: BaseException):
    tb = error.__traceback__
    if tb is None:
        return None, None
    while tb.tb_next is not None:
        tb = tb.tb_next
    frame = tb.tb_frame
    return frame.f_globals.get("__name__"), frame.f_code.co_name
