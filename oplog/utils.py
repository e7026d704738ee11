# 操作日志组件 - 日志工具
"""请求解析、截断、序列化、路径排除等无状态工具函数"""

import dataclasses
import json
import re
import socket
import traceback
import uuid
from datetime import date, datetime
from enum import Enum
from functools import lru_cache
from typing import Any, Dict, Iterable, List, Mapping, Optional

import structlog

from .context import IdentityProvider, RequestInfo
from .models import LogRecord, LogType

logger = structlog.get_logger()

TRUNCATION_MARKER = "...(已截断)"


def generate_log_id() -> str:
    """生成日志ID"""
    return uuid.uuid4().hex


@lru_cache()
def get_server_host() -> str:
    """获取服务器主机名，进程内只解析一次"""
    try:
        return socket.gethostname()
    except OSError:
        return "unknown"


@lru_cache()
def get_server_ip() -> str:
    """获取服务器IP，进程内只解析一次"""
    try:
        return socket.gethostbyname(get_server_host())
    except OSError:
        return "unknown"


def get_request_headers(request: RequestInfo) -> Dict[str, str]:
    """获取请求头（保持顺序）"""
    return dict(request.headers)


def get_request_params(request: RequestInfo, sensitive_fields: Iterable[str] = ()) -> str:
    """
    获取请求参数

    Args:
        request: 请求上下文
        sensitive_fields: 需要脱敏的字段

    Returns:
        形如 ``a=1,2&b=3`` 的参数串，无参数时返回空串
    """
    params = mask_sensitive(request.params, sensitive_fields) if sensitive_fields else request.params
    if not params:
        return ""
    return "&".join(
        f"{key}={','.join(str(v) for v in values)}"
        for key, values in params.items()
    )


def get_stack_trace(error: BaseException) -> str:
    """获取异常堆栈信息"""
    return "".join(traceback.format_exception(type(error), error, error.__traceback__))


def truncate(text: Optional[str], max_length: int) -> Optional[str]:
    """
    截断字符串

    超过 max_length 时保留前 max_length 个字符并追加截断标记，None 原样返回。
    """
    if text is None or len(text) <= max_length:
        return text
    return text[:max_length] + TRUNCATION_MARKER


def _json_default(obj: Any) -> Any:
    if hasattr(obj, "model_dump"):
        return obj.model_dump()
    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        return dataclasses.asdict(obj)
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, (set, frozenset, tuple)):
        return list(obj)
    if isinstance(obj, bytes):
        return obj.decode("utf-8", errors="replace")
    if isinstance(obj, Mapping):
        return dict(obj)
    raise TypeError(f"{type(obj).__name__} 不支持JSON序列化")


def to_json(value: Any) -> str:
    """对象转JSON字符串，失败时退化为 str()，不抛出异常"""
    if value is None:
        return ""
    try:
        return json.dumps(value, ensure_ascii=False, default=_json_default)
    except Exception:
        try:
            return str(value)
        except Exception:
            return f"<{type(value).__name__}>"


def _glob_to_regex(pattern: str) -> str:
    parts = []
    for segment in pattern.split("**"):
        parts.append("[^/]*".join(re.escape(piece) for piece in segment.split("*")))
    return ".*".join(parts)


def should_exclude(uri: Optional[str], patterns: Iterable[str]) -> bool:
    """
    判断URI是否命中排除规则

    ``**`` 匹配任意字符（含 ``/``），``*`` 匹配除 ``/`` 外的任意字符，整串匹配。
    """
    if uri is None:
        return False
    for pattern in patterns:
        if re.fullmatch(_glob_to_regex(pattern), uri):
            return True
    return False


def _mask_value(value: Any) -> Any:
    if isinstance(value, str):
        if len(value) > 4:
            return value[:2] + "*" * (len(value) - 4) + value[-2:]
        return "*" * len(value)
    if isinstance(value, list):
        return [_mask_value(v) for v in value]
    return "***"


def mask_sensitive(data: Mapping[str, Any], sensitive_fields: Iterable[str]) -> Dict[str, Any]:
    """脱敏：键名包含敏感词的值打码，保留顺序"""
    sensitive: List[str] = [s.lower() for s in sensitive_fields]
    result = {}
    for key, value in data.items():
        key_lower = key.lower()
        if any(s in key_lower for s in sensitive):
            result[key] = _mask_value(value)
        else:
            result[key] = value
    return result


def create_log_record(
    log_type: LogType,
    request: Optional[RequestInfo] = None,
    identity_provider: Optional[IdentityProvider] = None,
    app_name: Optional[str] = None
) -> LogRecord:
    """
    创建日志记录

    Args:
        log_type: 日志类型
        request: 当前请求，后台任务等场景可为空
        identity_provider: 身份提供者，可选
        app_name: 应用名称

    Returns:
        只填充了上下文字段的日志记录
    """
    user_id = None
    username = None
    if identity_provider is not None:
        try:
            identity = identity_provider.current_identity()
            if identity is not None:
                user_id = str(identity.user_id) if identity.user_id is not None else None
                username = str(identity.username) if identity.username is not None else None
        except Exception as e:
            # 身份获取失败不影响日志
            logger.debug("获取当前用户失败", error=str(e))

    return LogRecord(
        log_id=generate_log_id(),
        log_type=log_type,
        app_name=app_name,
        user_id=user_id,
        username=username,
        server_ip=get_server_ip(),
        server_host=get_server_host(),
        client_ip=request.client_ip if request else None,
        request_uri=request.uri if request else None,
        request_method=request.method if request else None,
        user_agent=request.user_agent if request else None,
    )
