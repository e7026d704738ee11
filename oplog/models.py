# 操作日志组件 - 日志模型
"""日志记录实体与类型定义"""

import json
from dataclasses import dataclass, field, fields
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional

from .exceptions import RecordFrozenError


class LogType(str, Enum):
    """日志类型"""
    ACCESS = "access"
    OPERATION = "operation"
    EXCEPTION = "exception"
    SYSTEM = "system"
    SECURITY = "security"

    @property
    def desc(self) -> str:
        return _LOG_TYPE_DESC[self]


_LOG_TYPE_DESC = {
    LogType.ACCESS: "访问日志",
    LogType.OPERATION: "操作日志",
    LogType.EXCEPTION: "异常日志",
    LogType.SYSTEM: "系统日志",
    LogType.SECURITY: "安全日志",
}


class OperationType(str, Enum):
    """操作类型"""
    QUERY = "QUERY"
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    EXPORT = "EXPORT"
    IMPORT = "IMPORT"
    LOGIN = "LOGIN"
    LOGOUT = "LOGOUT"
    GRANT = "GRANT"
    UPLOAD = "UPLOAD"
    DOWNLOAD = "DOWNLOAD"
    OTHER = "OTHER"

    @property
    def desc(self) -> str:
        return _OPERATION_TYPE_DESC[self]


_OPERATION_TYPE_DESC = {
    OperationType.QUERY: "查询",
    OperationType.INSERT: "新增",
    OperationType.UPDATE: "更新",
    OperationType.DELETE: "删除",
    OperationType.EXPORT: "导出",
    OperationType.IMPORT: "导入",
    OperationType.LOGIN: "登录",
    OperationType.LOGOUT: "登出",
    OperationType.GRANT: "授权",
    OperationType.UPLOAD: "上传",
    OperationType.DOWNLOAD: "下载",
    OperationType.OTHER: "其他",
}


@dataclass
class LogRecord:
    """
    日志记录

    拦截入口处创建，随调用的成功/失败阶段逐步填充，
    finalize() 之后冻结，再交给分发器。冻结后的记录对所有处理器只读。
    """
    log_id: Optional[str] = None
    log_type: LogType = LogType.ACCESS

    # 上下文
    app_name: Optional[str] = None
    server_ip: Optional[str] = None
    server_host: Optional[str] = None
    request_uri: Optional[str] = None
    request_method: Optional[str] = None
    client_ip: Optional[str] = None
    user_agent: Optional[str] = None

    # 操作人
    user_id: Optional[str] = None
    username: Optional[str] = None

    # 操作信息
    module: Optional[str] = None
    operation_type: Optional[str] = None
    description: Optional[str] = None
    class_name: Optional[str] = None
    method_name: Optional[str] = None

    # 请求/响应
    request_params: Optional[str] = None
    request_headers: Optional[Mapping[str, str]] = None
    response_result: Optional[str] = None
    response_status: Optional[int] = None

    # 结果
    success: bool = True
    exception: Optional[str] = None
    stack_trace: Optional[str] = None

    # 耗时（毫秒）
    execution_time: Optional[int] = None
    slow_request: bool = False
    create_time: Optional[datetime] = None

    extra_info: Optional[Mapping[str, Any]] = None

    _frozen: bool = field(default=False, init=False, repr=False, compare=False)

    def __setattr__(self, name: str, value: Any) -> None:
        if self.__dict__.get("_frozen"):
            raise RecordFrozenError(name)
        object.__setattr__(self, name, value)

    @property
    def frozen(self) -> bool:
        return self._frozen

    def finalize(
        self,
        execution_time: int,
        slow_threshold: int,
        create_time: Optional[datetime] = None
    ) -> "LogRecord":
        """
        完成记录：写入耗时、慢请求标记和创建时间，然后冻结

        Args:
            execution_time: 执行耗时（毫秒），负数按 0 处理
            slow_threshold: 慢请求阈值（毫秒）
            create_time: 完成时间，默认当前时间

        Returns:
            冻结后的记录本身
        """
        execution_time = max(0, int(execution_time))
        self.execution_time = execution_time
        self.slow_request = execution_time > slow_threshold
        self.create_time = create_time or datetime.now()
        self.freeze()
        return self

    def freeze(self) -> None:
        """冻结记录，映射字段转为只读视图"""
        if self._frozen:
            return
        if self.request_headers is not None:
            object.__setattr__(self, "request_headers", MappingProxyType(dict(self.request_headers)))
        if self.extra_info is not None:
            object.__setattr__(self, "extra_info", MappingProxyType(dict(self.extra_info)))
        object.__setattr__(self, "_frozen", True)

    def to_dict(self) -> Dict[str, Any]:
        """转换为可JSON序列化的字典"""
        result = {}
        for f in fields(self):
            if f.name.startswith("_"):
                continue
            value = getattr(self, f.name)
            if isinstance(value, Enum):
                value = value.value
            elif isinstance(value, datetime):
                value = value.isoformat()
            elif isinstance(value, Mapping):
                value = dict(value)
            result[f.name] = value
        return result

    def to_json(self) -> str:
        """转换为格式化的JSON字符串"""
        return json.dumps(self.to_dict(), ensure_ascii=False, indent=2, default=str)

    def to_simple_log(self) -> str:
        """转换为单行日志摘要"""
        parts = [
            f"[{self.log_type.desc}]",
            f"{self.request_method} {self.request_uri}",
            f"| 用户: {self.username or '匿名'}",
            f"| IP: {self.client_ip}",
            f"| 耗时: {self.execution_time}ms",
        ]
        if self.slow_request:
            parts.append("| 慢请求")
        if not self.success:
            parts.append("| 失败")
        return " ".join(parts)
