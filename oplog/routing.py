# 操作日志组件 - 全局访问日志路由
"""
未加 ``@access.log`` 的路由同样记录访问日志

FastAPI 在注册路由时构建处理函数，这里替换路由类，在处理函数外包一层访问日志拦截。
已经加了访问日志装饰器的路由保持原样，不会重复记录。

用法::

    router = APIRouter(route_class=access_log_route_class(components.access))
"""

from typing import Callable, Type

from fastapi.routing import APIRoute

from .interceptors import AccessLog, AccessLogInterceptor, is_access_logged


def access_log_route_class(
    interceptor: AccessLogInterceptor,
    base: Type[APIRoute] = APIRoute
) -> Type[APIRoute]:
    """
    创建带访问日志的路由类

    Args:
        interceptor: 访问日志拦截器
        base: 基础路由类，已有自定义路由类时传入

    Returns:
        APIRoute 子类
    """

    class AccessLogRoute(base):
        def get_route_handler(self) -> Callable:
            handler = super().get_route_handler()
            if is_access_logged(self.endpoint):
                return handler
            return interceptor.wrap(handler, AccessLog(), target=self.endpoint)

    return AccessLogRoute
