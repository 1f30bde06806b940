"""
分段计费额度结算

价格模式: quota = tokens * (USD / 1M) * quota_per_unit * group_ratio
倍率模式: quota = 输入tokens * 输入倍率 * group_ratio
               + 输出tokens * 输入倍率 * 补全倍率 * group_ratio

有 token 消耗时最少扣除 1 个额度单位。使用 Decimal 计算避免浮点累积误差。
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional, Union

from .conversion import DEFAULT_QUOTA_PER_UNIT, TOKENS_PER_MILLION
from .resolver import ConfigLike, find_matching_config, find_matching_rule

logger = logging.getLogger(__name__)

Number = Union[int, float, Decimal]

MIN_QUOTA = Decimal(1)


def _decimal(value: Number) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


@dataclass(frozen=True)
class TierResolution:
    """分段计费匹配结果"""

    matched: bool = False
    config_name: str = ""
    rule_name: str = ""
    use_ratio: bool = False
    input_price: float = 0.0
    output_price: float = 0.0
    input_ratio: float = 0.0
    completion_ratio: float = 0.0
    output_ratio: Optional[float] = None


def resolve_token_tier_price(
    model_name: str, input_tokens: int, output_tokens: int, config: ConfigLike
) -> TierResolution:
    """根据模型名和输入输出 token 数解析分段计费规则"""
    tier_config = find_matching_config(model_name, config)
    if tier_config is None:
        return TierResolution()

    rule = find_matching_rule(tier_config.rules, input_tokens, output_tokens)
    if rule is None:
        return TierResolution()

    if rule.is_price_mode:
        return TierResolution(
            matched=True,
            config_name=tier_config.name,
            rule_name=rule.name,
            use_ratio=False,
            input_price=rule.input_price,
            output_price=rule.output_price,
        )

    return TierResolution(
        matched=True,
        config_name=tier_config.name,
        rule_name=rule.name,
        use_ratio=True,
        input_ratio=rule.input_ratio,
        completion_ratio=rule.completion_ratio or 1.0,
        output_ratio=rule.output_ratio,
    )


def _apply_minimum(total: Decimal, input_tokens: int, output_tokens: int) -> Decimal:
    if (input_tokens > 0 or output_tokens > 0) and total < MIN_QUOTA:
        return MIN_QUOTA
    return total


def calc_quota_by_tier_price(
    input_tokens: int,
    output_tokens: int,
    input_price_usd: Number,
    output_price_usd: Number,
    quota_per_unit: Number = DEFAULT_QUOTA_PER_UNIT,
    group_ratio: Number = 1,
) -> Decimal:
    """价格模式额度（USD / 1M tokens）"""
    million = Decimal(TOKENS_PER_MILLION)
    qpu = _decimal(quota_per_unit)
    group = _decimal(group_ratio)

    input_quota = Decimal(input_tokens) * _decimal(input_price_usd) / million * qpu * group
    output_quota = Decimal(output_tokens) * _decimal(output_price_usd) / million * qpu * group

    return _apply_minimum(input_quota + output_quota, input_tokens, output_tokens)


def calc_quota_by_tier_ratio(
    input_tokens: int,
    output_tokens: int,
    input_ratio: Number,
    completion_ratio: Number,
    group_ratio: Number = 1,
    output_ratio: Optional[Number] = None,
) -> Decimal:
    """倍率模式额度，output_ratio 不为空时直接作为输出倍率"""
    ratio = _decimal(input_ratio)
    group = _decimal(group_ratio)
    if output_ratio is None:
        out_ratio = ratio * _decimal(completion_ratio)
    else:
        out_ratio = _decimal(output_ratio)

    input_quota = Decimal(input_tokens) * ratio * group
    output_quota = Decimal(output_tokens) * out_ratio * group

    return _apply_minimum(input_quota + output_quota, input_tokens, output_tokens)


def calc_tier_quota(
    resolution: TierResolution,
    input_tokens: int,
    output_tokens: int,
    quota_per_unit: Number = DEFAULT_QUOTA_PER_UNIT,
    group_ratio: Number = 1,
) -> Optional[Decimal]:
    """按匹配结果的模式结算额度，未匹配时返回 None"""
    if not resolution.matched:
        return None

    if resolution.use_ratio:
        quota = calc_quota_by_tier_ratio(
            input_tokens,
            output_tokens,
            resolution.input_ratio,
            resolution.completion_ratio,
            group_ratio,
            resolution.output_ratio,
        )
    else:
        quota = calc_quota_by_tier_price(
            input_tokens,
            output_tokens,
            resolution.input_price,
            resolution.output_price,
            quota_per_unit,
            group_ratio,
        )

    logger.debug(
        f"TIER QUOTA: rule={resolution.rule_name} input={input_tokens} output={output_tokens} quota={quota}"
    )
    return quota
