"""
统一错误码体系
定义定价服务的标准化错误码
"""

from enum import Enum


class ErrorCode(Enum):
    """系统错误码枚举"""

    # 通用错误 (1000-1099)
    UNKNOWN_ERROR = "E1000"
    INVALID_REQUEST = "E1001"
    INVALID_PARAMETER = "E1002"
    RESOURCE_NOT_FOUND = "E1003"

    # 配置错误 (1100-1199)
    CONFIG_LOAD_FAILED = "E1100"
    CONFIG_INVALID = "E1101"
    CONFIG_MISSING_REQUIRED = "E1102"
    CONFIG_PARSE_ERROR = "E1103"
    CONFIG_SAVE_FAILED = "E1104"

    # 分段计费错误 (1200-1299)
    TIER_CONFIG_NOT_FOUND = "E1200"
    TIER_CONFIG_EXISTS = "E1201"
    TIER_RULE_INVALID = "E1202"
    TIER_RULE_NOT_FOUND = "E1203"
    MODEL_PATTERN_INVALID = "E1204"
    UNKNOWN_OPTION_KEY = "E1205"


# 错误码到消息的映射
ERROR_MESSAGES = {
    ErrorCode.UNKNOWN_ERROR: "未知错误",
    ErrorCode.INVALID_REQUEST: "无效的请求",
    ErrorCode.INVALID_PARAMETER: "无效的参数",
    ErrorCode.RESOURCE_NOT_FOUND: "资源未找到",
    ErrorCode.CONFIG_LOAD_FAILED: "配置加载失败",
    ErrorCode.CONFIG_INVALID: "配置无效",
    ErrorCode.CONFIG_MISSING_REQUIRED: "缺少必需的配置项",
    ErrorCode.CONFIG_PARSE_ERROR: "配置解析错误",
    ErrorCode.CONFIG_SAVE_FAILED: "配置保存失败",
    ErrorCode.TIER_CONFIG_NOT_FOUND: "分段计费配置未找到",
    ErrorCode.TIER_CONFIG_EXISTS: "配置名称已存在，请使用其他名称",
    ErrorCode.TIER_RULE_INVALID: "计费规则无效",
    ErrorCode.TIER_RULE_NOT_FOUND: "计费规则未找到",
    ErrorCode.MODEL_PATTERN_INVALID: "模型匹配模式无效",
    ErrorCode.UNKNOWN_OPTION_KEY: "未知的配置项",
}


def get_error_message(error_code: ErrorCode, default: str = "未知错误") -> str:
    """获取错误码对应的消息"""
    return ERROR_MESSAGES.get(error_code, default)
