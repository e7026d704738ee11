"""
操作日志组件 - 配置模块
"""
from functools import lru_cache
from typing import List

from pydantic import BaseModel, Field, model_validator
from pydantic_settings import BaseSettings


DEFAULT_EXCLUDED_PATHS = [
    "/actuator/**",
    "/health",
    "/favicon.ico",
    "/swagger-ui/**",
    "/v3/api-docs/**",
    "/doc.html",
    "/webjars/**",
    "/docs",
    "/openapi.json",
]

DEFAULT_SENSITIVE_FIELDS = [
    "password",
    "token",
    "secret",
    "api_key",
    "authorization",
    "cookie",
]


class ThreadPoolSettings(BaseModel):
    """日志处理线程池配置"""
    core_size: int = Field(default=2, description="核心线程数")
    max_size: int = Field(default=5, description="最大线程数")
    queue_capacity: int = Field(default=100, description="队列容量")
    thread_name_prefix: str = "oplog-"
    keep_alive_seconds: float = 60.0
    await_termination_seconds: float = 60.0

    class Config:
        frozen = True

    @model_validator(mode="after")
    def check_sizes(self) -> "ThreadPoolSettings":
        if self.core_size < 1:
            raise ValueError("core_size 必须大于 0")
        if self.max_size < self.core_size:
            raise ValueError("max_size 不能小于 core_size")
        if self.queue_capacity < 1:
            raise ValueError("queue_capacity 必须大于 0")
        return self


class LogSettings(BaseSettings):
    """日志配置，启动时加载一次，之后只读"""

    app_name: str = "unknown"

    # 开关
    enabled: bool = True
    operation_enabled: bool = True
    access_enabled: bool = True
    exception_enabled: bool = True
    # 未加访问日志装饰器的路由也记录访问日志
    access_log_all_routes: bool = False

    # 记录内容
    record_request_params: bool = True
    record_response_result: bool = True
    record_headers: bool = False

    # 截断长度
    max_response_length: int = Field(default=2000, ge=0)
    max_request_length: int = Field(default=2000, ge=0)

    excluded_paths: List[str] = Field(default_factory=lambda: list(DEFAULT_EXCLUDED_PATHS))
    sensitive_fields: List[str] = Field(default_factory=lambda: list(DEFAULT_SENSITIVE_FIELDS))

    # 慢请求阈值（毫秒）
    slow_request_threshold: int = Field(default=3000, ge=0)

    async_dispatch: bool = True
    thread_pool: ThreadPoolSettings = Field(default_factory=ThreadPoolSettings)

    class Config:
        env_prefix = "OPLOG_"
        env_nested_delimiter = "__"
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"
        frozen = True


@lru_cache()
def get_settings() -> LogSettings:
    """获取配置单例"""
    return LogSettings()
