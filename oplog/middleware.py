# 操作日志组件 - ASGI中间件
"""请求上下文绑定与全局异常兜底"""

import structlog
from fastapi.responses import JSONResponse
from starlette.requests import Request

from .context import RequestInfo, get_current_request, request_scope
from .interceptors import ExceptionInterceptor

logger = structlog.get_logger()

# 超过此长度或未声明长度的表单不读取请求体
MAX_FORM_BODY = 64 * 1024


async def _read_body(receive):
    """读完请求体，返回收到的消息"""
    messages = []
    while True:
        message = await receive()
        messages.append(message)
        if message["type"] != "http.request" or not message.get("more_body", False):
            return messages


def _replay(messages, receive):
    pending = list(messages)

    async def replay_receive():
        if pending:
            return pending.pop(0)
        return await receive()

    return replay_receive


def _form_body_wanted(info: RequestInfo) -> bool:
    if not info.is_form():
        return False
    try:
        length = int(info.get_header("content-length") or "")
    except ValueError:
        return False
    return 0 < length <= MAX_FORM_BODY


class RequestContextMiddleware:
    """
    请求上下文中间件

    为每个HTTP请求绑定 RequestInfo，发出响应头时标记为已提交，
    供拦截器判断响应是否还能改写。
    表单请求的请求体先读出并入请求参数，再原样交给下游。
    """

    def __init__(self, app):
        self.app = app

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            return await self.app(scope, receive, send)

        try:
            info = RequestInfo.from_request(Request(scope, receive))
        except Exception as e:
            logger.warning("解析请求上下文失败", error=str(e))
            return await self.app(scope, receive, send)

        if _form_body_wanted(info):
            messages = await _read_body(receive)
            body = b"".join(m.get("body", b"") for m in messages if m["type"] == "http.request")
            try:
                info.merge_form(body)
            except Exception as e:
                logger.warning("解析表单参数失败", error=str(e))
            receive = _replay(messages, receive)

        async def send_wrapper(message):
            if message["type"] == "http.response.start":
                info.mark_committed()
            await send(message)

        with request_scope(info):
            await self.app(scope, receive, send_wrapper)


class ExceptionLogMiddleware:
    """
    异常日志中间件

    未处理异常交给 ExceptionInterceptor：响应未提交时返回统一错误响应，
    已提交时只记录日志。需要放在 RequestContextMiddleware 内层。
    """

    def __init__(self, app, interceptor: ExceptionInterceptor):
        self.app = app
        self.interceptor = interceptor

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            return await self.app(scope, receive, send)

        try:
            await self.app(scope, receive, send)
        except Exception as exc:
            request = get_current_request()
            if request is None:
                request = RequestInfo.from_request(Request(scope, receive))
            payload = self.interceptor.handle(exc, request)
            if payload is None:
                return
            response = JSONResponse(status_code=500, content=payload)
            await response(scope, receive, send)
