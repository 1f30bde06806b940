"""
统一异常处理模块
"""

from .base_exceptions import (
    BasePricingException,
    ConfigurationException,
    ModelException,
    ModelPatternException,
    PricingRuleException,
)
from .error_codes import ErrorCode, get_error_message

__all__ = [
    # 错误码
    "ErrorCode",
    "get_error_message",
    # 异常类
    "BasePricingException",
    "ConfigurationException",
    "PricingRuleException",
    "ModelPatternException",
    "ModelException",
]
