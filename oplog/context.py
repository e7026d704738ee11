# 操作日志组件 - 请求上下文
"""当前请求访问器与身份提供者"""

import time
import uuid
from abc import ABC, abstractmethod
from contextlib import contextmanager
from contextvars import ContextVar, Token
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional
from urllib.parse import parse_qsl

import structlog

_current_request: ContextVar[Optional["RequestInfo"]] = ContextVar("oplog_request", default=None)

FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"


@dataclass
class RequestInfo:
    """HTTP请求上下文"""
    method: str
    uri: str
    headers: Dict[str, str] = field(default_factory=dict)
    params: Dict[str, List[str]] = field(default_factory=dict)
    client_ip: str = "unknown"
    user_agent: Optional[str] = None
    request_id: str = ""
    start_time: float = field(default_factory=time.perf_counter)
    # 响应头已发出
    committed: bool = False

    def __post_init__(self):
        if not self.request_id:
            self.request_id = str(uuid.uuid4())

    def mark_committed(self) -> None:
        self.committed = True

    def get_header(self, name: str) -> Optional[str]:
        name = name.lower()
        for key, value in self.headers.items():
            if key.lower() == name:
                return value
        return None

    def is_form(self) -> bool:
        content_type = self.get_header("content-type") or ""
        return content_type.split(";")[0].strip().lower() == FORM_CONTENT_TYPE

    def merge_form(self, body: bytes) -> None:
        """表单字段并入请求参数，排在查询参数之后"""
        for key, value in parse_qsl(body.decode("utf-8", errors="replace"), keep_blank_values=True):
            self.params.setdefault(key, []).append(value)

    @classmethod
    def from_request(cls, request) -> "RequestInfo":
        """从Starlette/FastAPI请求创建"""
        headers: Dict[str, str] = {}
        for key, value in request.headers.items():
            headers.setdefault(key, value)

        params: Dict[str, List[str]] = {}
        for key, value in request.query_params.multi_items():
            params.setdefault(key, []).append(value)

        return cls(
            method=request.method,
            uri=str(request.url.path),
            headers=headers,
            params=params,
            client_ip=_client_ip(request),
            user_agent=request.headers.get("User-Agent"),
            request_id=request.headers.get("X-Request-ID", ""),
        )


def _client_ip(request) -> str:
    """获取真实客户端IP，优先代理头"""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        ip = forwarded.split(",")[0].strip()
        if ip and ip.lower() != "unknown":
            return ip
    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip.strip()
    return request.client.host if request.client else "unknown"


def get_current_request() -> Optional[RequestInfo]:
    """获取当前请求，请求作用域之外返回None"""
    return _current_request.get()


def bind_request(request: RequestInfo) -> Token:
    """绑定当前请求，同时写入structlog上下文"""
    structlog.contextvars.bind_contextvars(request_id=request.request_id)
    return _current_request.set(request)


def reset_request(token: Token) -> None:
    structlog.contextvars.unbind_contextvars("request_id")
    _current_request.reset(token)


@contextmanager
def request_scope(request: RequestInfo) -> Iterator[RequestInfo]:
    """请求作用域上下文管理器"""
    token = bind_request(request)
    try:
        yield request
    finally:
        reset_request(token)


@dataclass(frozen=True)
class Identity:
    """当前操作人"""
    user_id: Optional[str] = None
    username: Optional[str] = None


class IdentityProvider(ABC):
    """
    身份提供者

    由认证模块实现并在构建组件时注入；未注入时日志不带操作人信息。
    """

    @abstractmethod
    def current_identity(self) -> Optional[Identity]:
        """返回当前操作人，未登录返回None"""
        pass
