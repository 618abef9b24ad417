"""内容生成模块错误定义。"""

from __future__ import annotations

from typing import Any

from src.shared.errors import (
    AppError,
    ERROR_CONFIG,
    ERROR_PARSE,
    ERROR_TRANSPORT,
    ERROR_VALIDATION,
)


class ContentGenerationError(AppError):
    """内容生成错误。"""

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        code: str = "content_generation_error",
        details: dict[str, Any] | None = None,
    ):
        super().__init__(
            message=message,
            status_code=status_code,
            code=code,
            details=details,
        )


class TransportError(ContentGenerationError):
    """模型调用失败（网络/上游错误）。"""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message, status_code=502, code=ERROR_TRANSPORT, details=details)


class ParseError(ContentGenerationError):
    """模型响应无法解析为结构化数据。"""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message, status_code=502, code=ERROR_PARSE, details=details)


class ValidationError(ContentGenerationError):
    """输入不合法（空主题、缺少必填字段等）。"""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message, status_code=400, code=ERROR_VALIDATION, details=details)


class ConfigError(ContentGenerationError):
    """缺少密钥或配置，对应适配器不可用。"""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message, status_code=500, code=ERROR_CONFIG, details=details)
