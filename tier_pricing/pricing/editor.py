"""
分段计费配置编辑操作

对应设置页面的新建/复制配置、规则增删与排序、倍率/价格两种视图切换。
所有函数返回新对象，不修改入参。
"""

from collections.abc import Mapping, Sequence
from dataclasses import replace
from typing import Optional

from ..exceptions import ConfigurationException, ErrorCode, PricingRuleException
from .conversion import (
    DEFAULT_QUOTA_PER_UNIT,
    output_ratio_from_prices,
    price_from_ratio,
    ratio_from_price,
)
from .defaults import default_tier_rules
from .models import AbsolutePricing, ModelTierConfig, RatioPricing, TierRule


def next_priority(model_configs: Mapping[str, ModelTierConfig]) -> int:
    """新配置的优先级：比现有最大优先级大 1"""
    return max([0, *(cfg.priority for cfg in model_configs.values())]) + 1


def new_model_config(
    name: str,
    model_configs: Mapping[str, ModelTierConfig],
    models: str,
) -> ModelTierConfig:
    """新建配置，默认启用并带四段规则模板"""
    return ModelTierConfig(
        name=name,
        enabled=True,
        models=models,
        priority=next_priority(model_configs),
        rules=default_tier_rules(),
    )


def copy_model_config(
    model_configs: Mapping[str, ModelTierConfig],
    name: str,
    new_name: Optional[str] = None,
) -> ModelTierConfig:
    """复制配置，优先级取 max(原优先级 + 1, 最大优先级 + 1)"""
    original = model_configs.get(name)
    if original is None:
        raise ConfigurationException(
            ErrorCode.TIER_CONFIG_NOT_FOUND, config_name=name
        )
    return replace(
        original,
        name=new_name or f"{name}_copy",
        priority=max(original.priority + 1, next_priority(model_configs)),
    )


def set_config_enabled(config: ModelTierConfig, enabled: bool) -> ModelTierConfig:
    return replace(config, enabled=enabled)


def _check_index(rules: Sequence[TierRule], index: int) -> None:
    if not 0 <= index < len(rules):
        raise PricingRuleException(
            ErrorCode.TIER_RULE_NOT_FOUND,
            message=f"规则索引超出范围: {index}",
            rule_index=index,
        )


def add_rule(rules: Sequence[TierRule], rule: TierRule) -> tuple[TierRule, ...]:
    return (*rules, rule)


def replace_rule(
    rules: Sequence[TierRule], index: int, rule: TierRule
) -> tuple[TierRule, ...]:
    _check_index(rules, index)
    return tuple(rule if i == index else r for i, r in enumerate(rules))


def delete_rule(rules: Sequence[TierRule], index: int) -> tuple[TierRule, ...]:
    _check_index(rules, index)
    return tuple(r for i, r in enumerate(rules) if i != index)


def move_rule_up(rules: Sequence[TierRule], index: int) -> tuple[TierRule, ...]:
    """上移规则，第一条不动"""
    _check_index(rules, index)
    result = list(rules)
    if index > 0:
        result[index - 1], result[index] = result[index], result[index - 1]
    return tuple(result)


def move_rule_down(rules: Sequence[TierRule], index: int) -> tuple[TierRule, ...]:
    """下移规则，最后一条不动"""
    _check_index(rules, index)
    result = list(rules)
    if index < len(result) - 1:
        result[index], result[index + 1] = result[index + 1], result[index]
    return tuple(result)


def to_price_pricing(
    rule: TierRule, quota_per_unit: Optional[float] = DEFAULT_QUOTA_PER_UNIT
) -> TierRule:
    """倍率视图 -> 价格视图"""
    if rule.is_price_mode:
        return rule
    pricing = rule.pricing
    return replace(
        rule,
        pricing=AbsolutePricing(
            input_price=price_from_ratio(pricing.input_ratio, quota_per_unit),
            output_price=price_from_ratio(pricing.effective_output_ratio, quota_per_unit),
        ),
    )


def to_ratio_pricing(
    rule: TierRule, quota_per_unit: Optional[float] = DEFAULT_QUOTA_PER_UNIT
) -> TierRule:
    """
    价格视图 -> 倍率视图

    无法用补全倍率表示的组合（输入或输出价格为 0）改用 output_ratio 保存，
    补全倍率为 0 在配置中会被当作未设置。
    """
    if not rule.is_price_mode:
        return rule

    input_price = rule.input_price
    output_price = rule.output_price
    input_ratio = ratio_from_price(input_price, quota_per_unit)

    if input_price == 0 or output_price == 0:
        pricing = RatioPricing(
            input_ratio=input_ratio,
            completion_ratio=1.0,
            output_ratio=ratio_from_price(output_price, quota_per_unit),
        )
    else:
        pricing = RatioPricing(
            input_ratio=input_ratio,
            completion_ratio=output_ratio_from_prices(input_price, output_price),
        )
    return replace(rule, pricing=pricing)
