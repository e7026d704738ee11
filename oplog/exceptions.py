# 操作日志组件 - 异常定义
"""日志组件自身抛出的异常"""


class OplogError(Exception):
    """日志组件异常基类"""
    message: str = "日志组件内部错误"

    def __init__(self, message: str = None):
        self.message = message or self.message
        super().__init__(self.message)


class RecordFrozenError(OplogError, AttributeError):
    """日志记录已冻结，不允许再修改"""
    message = "日志记录已冻结，不允许修改"

    def __init__(self, field_name: str = None):
        self.field_name = field_name
        message = f"日志记录已冻结，不允许修改字段: {field_name}" if field_name else None
        super().__init__(message)
