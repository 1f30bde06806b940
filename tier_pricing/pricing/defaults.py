"""
默认的四段计费规则模板（倍率模式）
"""

from .models import RatioPricing, TierRule

DEFAULT_TIER_RULES: tuple[TierRule, ...] = (
    TierRule(
        name="T1_input_le_32k_output_le_200",
        max_input_tokens=32000,
        max_output_tokens=200,
        pricing=RatioPricing(input_ratio=0.4, completion_ratio=1.0),
    ),
    TierRule(
        name="T2_input_le_32k_output_gt_200",
        max_input_tokens=32000,
        min_output_tokens=201,
        pricing=RatioPricing(input_ratio=0.4, completion_ratio=1.5),
    ),
    TierRule(
        name="T3_input_32k_to_128k",
        min_input_tokens=32001,
        max_input_tokens=128000,
        pricing=RatioPricing(input_ratio=0.6, completion_ratio=1.0),
    ),
    TierRule(
        name="T4_input_gt_128k",
        min_input_tokens=128001,
        pricing=RatioPricing(input_ratio=1.2, completion_ratio=1.0),
    ),
)


def default_tier_rules() -> tuple[TierRule, ...]:
    """获取默认的四段计费规则模板"""
    return DEFAULT_TIER_RULES
