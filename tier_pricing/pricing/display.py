"""
分段计费展示格式化
"""

from typing import Optional

from .conversion import TOKEN_UNIT_K, normalize_token_unit
from .models import TierRule


def format_price(value: float) -> str:
    """价格显示，保留 4 位小数（1K tokens 价格较小）"""
    return f"${value:.4f}"


def format_ratio(value: float) -> str:
    return f"{value:.2f}x"


def price_unit_label(token_unit: Optional[str]) -> str:
    return "1K" if normalize_token_unit(token_unit) == TOKEN_UNIT_K else "1M"


def format_tokens(tokens: int, token_unit: Optional[str] = TOKEN_UNIT_K) -> str:
    """按显示单位格式化 token 数量，例如 32000 -> 32K"""
    if normalize_token_unit(token_unit) == TOKEN_UNIT_K:
        divisor, suffix, digits = 1000, "K", 0
    else:
        divisor, suffix, digits = 1_000_000, "M", 3

    if tokens >= divisor:
        return f"{tokens / divisor:.{digits}f}{suffix}"
    return str(tokens)


def _describe_range(
    label: str, min_tokens: int, max_tokens: int, token_unit: Optional[str]
) -> Optional[str]:
    if max_tokens > 0:
        if min_tokens > 0:
            return (
                f"{format_tokens(min_tokens, token_unit)} ≤ {label} ≤ "
                f"{format_tokens(max_tokens, token_unit)}"
            )
        return f"{label} ≤ {format_tokens(max_tokens, token_unit)}"
    if min_tokens > 0:
        return f"{label} ≥ {format_tokens(min_tokens, token_unit)}"
    return None


def describe_rule_condition(rule: TierRule, token_unit: Optional[str] = TOKEN_UNIT_K) -> str:
    """规则匹配条件描述，无任何边界时为 "默认" """
    conditions = [
        _describe_range("输入", rule.min_input_tokens, rule.max_input_tokens, token_unit),
        _describe_range("输出", rule.min_output_tokens, rule.max_output_tokens, token_unit),
    ]
    conditions = [c for c in conditions if c]
    return " & ".join(conditions) or "默认"


def describe_rule_mode(rule: TierRule) -> str:
    return "价格模式" if rule.is_price_mode else "倍率模式"


def describe_rule_values(
    rule: TierRule, token_unit: Optional[str] = TOKEN_UNIT_K
) -> tuple[str, str]:
    """规则的原始设置值：价格模式显示单价，倍率模式显示倍率"""
    if rule.is_price_mode:
        divisor = 1000 if normalize_token_unit(token_unit) == TOKEN_UNIT_K else 1
        unit = price_unit_label(token_unit)
        return (
            f"${rule.input_price / divisor:.6f} / {unit}",
            f"${rule.output_price / divisor:.6f} / {unit}",
        )
    return (
        format_ratio(rule.input_ratio),
        format_ratio(rule.pricing.effective_output_ratio),
    )
