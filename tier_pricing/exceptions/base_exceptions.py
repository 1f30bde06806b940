"""
统一异常基类
定义所有定价服务异常的基础结构
"""

import traceback
from datetime import datetime
from typing import Any, Optional

from .error_codes import ErrorCode, get_error_message


class BasePricingException(Exception):
    """定价服务基础异常类"""

    def __init__(
        self,
        error_code: ErrorCode,
        message: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
        cause: Optional[Exception] = None,
        context: Optional[dict[str, Any]] = None,
    ):
        self.error_code = error_code
        self.message = message or get_error_message(error_code)
        self.details = details or {}
        self.cause = cause
        self.context = context or {}
        self.timestamp = datetime.now()
        self.traceback_str = traceback.format_exc() if cause else None

        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """转换为字典格式"""
        return {
            "error_code": self.error_code.value,
            "message": self.message,
            "details": self.details,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
            "cause": str(self.cause) if self.cause else None,
        }

    def __str__(self) -> str:
        return f"[{self.error_code.value}] {self.message}"

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(error_code={self.error_code.value}, message='{self.message}')"


class ConfigurationException(BasePricingException):
    """配置相关异常"""

    def __init__(
        self,
        error_code: ErrorCode,
        message: Optional[str] = None,
        config_path: Optional[str] = None,
        config_name: Optional[str] = None,
        **kwargs: Any,
    ):
        details = kwargs.pop("details", None) or {}
        if config_path:
            details["config_path"] = config_path
        if config_name:
            details["config_name"] = config_name

        super().__init__(error_code, message, details, **kwargs)


class PricingRuleException(BasePricingException):
    """计费规则相关异常"""

    def __init__(
        self,
        error_code: ErrorCode,
        message: Optional[str] = None,
        rule_name: Optional[str] = None,
        rule_index: Optional[int] = None,
        **kwargs: Any,
    ):
        details = kwargs.pop("details", None) or {}
        if rule_name:
            details["rule_name"] = rule_name
        if rule_index is not None:
            details["rule_index"] = rule_index

        super().__init__(error_code, message, details, **kwargs)


class ModelPatternException(ConfigurationException):
    """模型匹配模式异常"""

    def __init__(self, pattern: str, message: Optional[str] = None):
        super().__init__(
            error_code=ErrorCode.MODEL_PATTERN_INVALID,
            message=message or f"仅支持末尾通配符 '*': {pattern}",
            details={"pattern": pattern},
        )
        self.pattern = pattern


class ModelException(BasePricingException):
    """模型相关异常"""

    def __init__(
        self,
        error_code: ErrorCode,
        message: Optional[str] = None,
        model_name: Optional[str] = None,
        **kwargs: Any,
    ):
        details = kwargs.pop("details", None) or {}
        if model_name:
            details["model_name"] = model_name

        super().__init__(error_code, message, details, **kwargs)
