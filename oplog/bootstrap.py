# 操作日志组件 - 组件装配
"""根据配置构建分发器与拦截器，并挂载到FastAPI应用"""

from dataclasses import dataclass
from typing import Optional, Sequence, Type

import structlog
from fastapi.routing import APIRoute

from .config import LogSettings, get_settings
from .context import IdentityProvider
from .dispatcher import LogDispatcher
from .executor import BoundedThreadPool
from .handlers import LogHandler
from .interceptors import (
    AccessLogInterceptor,
    ExceptionInterceptor,
    OperationLogInterceptor,
    is_access_logged,
)
from .middleware import ExceptionLogMiddleware, RequestContextMiddleware
from .routing import access_log_route_class

logger = structlog.get_logger()


def _flag(value: bool) -> str:
    return "已启用" if value else "未启用"


@dataclass
class LogComponents:
    """日志组件集合"""
    settings: LogSettings
    dispatcher: LogDispatcher
    access: AccessLogInterceptor
    operation: OperationLogInterceptor
    exception: ExceptionInterceptor

    def install(self, app) -> None:
        """
        挂载中间件

        add_middleware 后加的在外层，请求上下文中间件必须包住异常中间件。
        开启 access_log_all_routes 时同时替换应用的路由类，需在注册路由之前调用。
        """
        app.add_middleware(ExceptionLogMiddleware, interceptor=self.exception)
        app.add_middleware(RequestContextMiddleware)

        if self.settings.access_log_all_routes:
            app.router.route_class = self.route_class()
            registered = [
                route.path for route in app.router.routes
                if isinstance(route, APIRoute) and not is_access_logged(route.endpoint)
            ]
            if registered:
                logger.warning("[日志系统] 以下路由在挂载前注册，不记录全局访问日志", paths=registered)
        logger.info("[日志系统] 中间件已挂载", access_log_all_routes=self.settings.access_log_all_routes)

    def route_class(self, base: Type[APIRoute] = APIRoute) -> Type[APIRoute]:
        """全局访问日志路由类，供 APIRouter(route_class=...) 使用"""
        return access_log_route_class(self.access, base)

    def shutdown(self, timeout: float = None) -> bool:
        """关闭分发器，等待队列中的日志处理完"""
        if timeout is None:
            timeout = self.settings.thread_pool.await_termination_seconds
        return self.dispatcher.shutdown(timeout)


def build_components(
    settings: Optional[LogSettings] = None,
    handlers: Optional[Sequence[LogHandler]] = None,
    identity_provider: Optional[IdentityProvider] = None
) -> LogComponents:
    """
    构建日志组件

    Args:
        settings: 日志配置，默认从环境变量加载
        handlers: 日志处理器，为空时使用默认处理器
        identity_provider: 身份提供者，可选

    Returns:
        LogComponents
    """
    settings = settings or get_settings()

    executor = None
    if settings.async_dispatch:
        executor = BoundedThreadPool.from_settings(settings.thread_pool)
    dispatcher = LogDispatcher(handlers, executor=executor, async_dispatch=settings.async_dispatch)

    logger.info(
        "日志系统初始化",
        enabled=_flag(settings.enabled),
        operation=_flag(settings.operation_enabled),
        access=_flag(settings.access_enabled),
        exception=_flag(settings.exception_enabled),
        async_dispatch=_flag(settings.async_dispatch),
        slow_request_threshold_ms=settings.slow_request_threshold,
        handlers=[type(h).__name__ for h in dispatcher.handlers],
    )

    return LogComponents(
        settings=settings,
        dispatcher=dispatcher,
        access=AccessLogInterceptor(settings, dispatcher, identity_provider),
        operation=OperationLogInterceptor(settings, dispatcher, identity_provider),
        exception=ExceptionInterceptor(settings, dispatcher, identity_provider),
    )
