"""
分段计费解析器

根据模型名、输入/输出 token 数选择分段计费规则并换算价格:

1. 在启用的配置中按 priority 从大到小查找第一个匹配模型名的配置
2. 在该配置的规则中按数组顺序查找第一个满足 token 边界的规则
3. 按价格模式或倍率模式计算 USD / 1M tokens（K 单位再除以 1000），乘以分组倍率

没有匹配的配置或规则不是错误，返回 None，调用方回退到模型基础定价。
所有函数都是纯函数，不修改传入的配置快照。
"""

import logging
from collections.abc import Iterable, Mapping
from dataclasses import asdict, dataclass
from typing import Any, Optional, Union

from .conversion import (
    DEFAULT_QUOTA_PER_UNIT,
    normalize_token_unit,
    ratio_base_price,
    unit_divisor,
)
from .display import (
    describe_rule_condition,
    describe_rule_mode,
    describe_rule_values,
    format_price,
    price_unit_label,
)
from .models import (
    ModelPriceRecord,
    ModelTierConfig,
    QuotaType,
    TierRule,
    TokenTierPricingConfig,
    lookup_group_ratio,
)

logger = logging.getLogger(__name__)

ConfigLike = Union[TokenTierPricingConfig, Mapping[str, Any], None]
RuleLike = Union[TierRule, Mapping[str, Any]]


@dataclass(frozen=True)
class TierPrice:
    """分段价格（USD / 单位 tokens）"""

    input_price: float
    output_price: float
    price_mode: bool
    token_unit: str = "M"

    def formatted(self) -> dict[str, str]:
        return {
            "input_price": format_price(self.input_price),
            "output_price": format_price(self.output_price),
        }


@dataclass(frozen=True)
class FlatPrice:
    """模型基础价格；按次计费时只有 fixed_price"""

    quota_type: QuotaType
    input_price: Optional[float] = None
    output_price: Optional[float] = None
    fixed_price: Optional[float] = None
    token_unit: str = "M"

    def formatted(self) -> dict[str, str]:
        def fmt(value: Optional[float]) -> str:
            return "-" if value is None else format_price(value)

        return {
            "input_price": fmt(self.input_price),
            "output_price": fmt(self.output_price),
            "fixed_price": fmt(self.fixed_price),
        }


@dataclass(frozen=True)
class EffectivePrice:
    """一次调用最终生效的价格"""

    model_name: str
    source: str  # "tier" 或 "flat"
    group_ratio: float
    token_unit: str
    input_price: Optional[float] = None
    output_price: Optional[float] = None
    fixed_price: Optional[float] = None
    config_name: Optional[str] = None
    rule_name: Optional[str] = None
    price_mode: Optional[bool] = None

    @property
    def is_tiered(self) -> bool:
        return self.source == "tier"

    def formatted(self) -> dict[str, str]:
        def fmt(value: Optional[float]) -> str:
            return "-" if value is None else format_price(value)

        return {
            "input_price": fmt(self.input_price),
            "output_price": fmt(self.output_price),
            "fixed_price": fmt(self.fixed_price),
        }

    def to_dict(self) -> dict[str, Any]:
        result = asdict(self)
        result["formatted"] = self.formatted()
        return result


def _coerce_config(config: ConfigLike) -> Optional[TokenTierPricingConfig]:
    if config is None:
        return None
    if isinstance(config, TokenTierPricingConfig):
        return config
    return TokenTierPricingConfig.from_dict(config)


def _coerce_rule(rule: RuleLike) -> TierRule:
    return TierRule.from_dict(rule)


def find_matching_config(
    model_name: str, config: ConfigLike
) -> Optional[ModelTierConfig]:
    """
    查找模型对应的分段计费配置

    priority 数值越大越优先；数值相同时按配置名排序，保证结果确定。

    Returns:
        匹配的 ModelTierConfig，全局未启用、模型名为空或没有匹配时返回 None
    """
    tier_config = _coerce_config(config)
    if tier_config is None or not tier_config.global_enabled or not model_name:
        return None

    for candidate in tier_config.enabled_configs_by_priority():
        if candidate.matches_model(model_name):
            logger.debug(
                f"TIER CONFIG MATCH: {model_name} -> {candidate.name} (priority={candidate.priority})"
            )
            return candidate
    return None


def _bounds_admit(tokens: int, min_tokens: int, max_tokens: int) -> bool:
    if max_tokens > 0:
        return tokens <= max_tokens and (min_tokens == 0 or tokens >= min_tokens)
    if min_tokens > 0:
        return tokens >= min_tokens
    return True


def rule_matches(rule: RuleLike, input_tokens: int, output_tokens: int) -> bool:
    """检查 token 数是否落在规则的输入/输出边界内"""
    rule = _coerce_rule(rule)
    return _bounds_admit(
        input_tokens, rule.min_input_tokens, rule.max_input_tokens
    ) and _bounds_admit(output_tokens, rule.min_output_tokens, rule.max_output_tokens)


def find_matching_rule(
    rules: Optional[Iterable[RuleLike]], input_tokens: int, output_tokens: int
) -> Optional[TierRule]:
    """按数组顺序返回第一条匹配的规则，没有匹配时返回 None"""
    for rule in rules or ():
        rule = _coerce_rule(rule)
        if rule_matches(rule, input_tokens, output_tokens):
            return rule
    return None


def compute_tier_price(
    rule: RuleLike,
    group_ratio_value: float = 1.0,
    token_unit: Optional[str] = "M",
    quota_per_unit: Optional[float] = DEFAULT_QUOTA_PER_UNIT,
) -> TierPrice:
    """
    计算规则的输入/输出价格

    价格模式: price * group_ratio / unit_divisor
    倍率模式: ratio * ratio_base_price * group_ratio / unit_divisor，
        输出倍率优先使用 output_ratio，否则为 input_ratio * completion_ratio
    """
    rule = _coerce_rule(rule)
    unit = normalize_token_unit(token_unit)
    divisor = unit_divisor(unit)

    if rule.is_price_mode:
        return TierPrice(
            input_price=rule.input_price * group_ratio_value / divisor,
            output_price=rule.output_price * group_ratio_value / divisor,
            price_mode=True,
            token_unit=unit,
        )

    base = ratio_base_price(quota_per_unit)
    output_ratio = rule.pricing.effective_output_ratio
    return TierPrice(
        input_price=rule.input_ratio * base * group_ratio_value / divisor,
        output_price=output_ratio * base * group_ratio_value / divisor,
        price_mode=False,
        token_unit=unit,
    )


def compute_flat_price(
    record: ModelPriceRecord,
    group_ratio_value: float = 1.0,
    token_unit: Optional[str] = "M",
    quota_per_unit: Optional[float] = DEFAULT_QUOTA_PER_UNIT,
) -> FlatPrice:
    """模型基础定价（未启用或未匹配分段计费时使用）"""
    unit = normalize_token_unit(token_unit)
    if record.quota_type == QuotaType.PER_CALL:
        return FlatPrice(
            quota_type=record.quota_type,
            fixed_price=record.model_price * group_ratio_value,
            token_unit=unit,
        )

    input_price = (
        record.model_ratio
        * ratio_base_price(quota_per_unit)
        * group_ratio_value
        / unit_divisor(unit)
    )
    return FlatPrice(
        quota_type=record.quota_type,
        input_price=input_price,
        output_price=input_price * record.completion_ratio,
        token_unit=unit,
    )


def compute_effective_price(
    model_name: str,
    config: ConfigLike,
    group_ratio_value: float = 1.0,
    *,
    input_tokens: int = 0,
    output_tokens: int = 0,
    record: Optional[ModelPriceRecord] = None,
    token_unit: Optional[str] = "M",
    quota_per_unit: Optional[float] = DEFAULT_QUOTA_PER_UNIT,
) -> Optional[EffectivePrice]:
    """
    计算一次调用生效的价格

    分段计费匹配到规则时使用分段价格，否则回退到 record 的基础价格；
    两者都不可用时返回 None。
    """
    unit = normalize_token_unit(token_unit)
    tier_config = find_matching_config(model_name, config)
    if tier_config is not None:
        rule = find_matching_rule(tier_config.rules, input_tokens, output_tokens)
        if rule is not None:
            price = compute_tier_price(rule, group_ratio_value, unit, quota_per_unit)
            return EffectivePrice(
                model_name=model_name,
                source="tier",
                group_ratio=group_ratio_value,
                token_unit=unit,
                input_price=price.input_price,
                output_price=price.output_price,
                config_name=tier_config.name,
                rule_name=rule.name,
                price_mode=price.price_mode,
            )
        logger.debug(
            f"TIER RULE MISS: {model_name} input={input_tokens} output={output_tokens}, fallback to flat pricing"
        )

    if record is None:
        return None

    flat = compute_flat_price(record, group_ratio_value, unit, quota_per_unit)
    return EffectivePrice(
        model_name=model_name,
        source="flat",
        group_ratio=group_ratio_value,
        token_unit=unit,
        input_price=flat.input_price,
        output_price=flat.output_price,
        fixed_price=flat.fixed_price,
    )


class TieredPricingResolver:
    """绑定一份配置快照、quota_per_unit 与分组倍率表的解析器"""

    def __init__(
        self,
        config: ConfigLike = None,
        quota_per_unit: Optional[float] = DEFAULT_QUOTA_PER_UNIT,
        group_ratio: Optional[Mapping[str, float]] = None,
        token_unit: str = "M",
    ):
        self.config = _coerce_config(config) or TokenTierPricingConfig()
        self.quota_per_unit = quota_per_unit
        self.group_ratio = dict(group_ratio or {})
        self.token_unit = normalize_token_unit(token_unit)

    @property
    def ratio_base_price(self) -> float:
        return ratio_base_price(self.quota_per_unit)

    def with_config(self, config: ConfigLike) -> "TieredPricingResolver":
        return TieredPricingResolver(
            config, self.quota_per_unit, self.group_ratio, self.token_unit
        )

    def group_ratio_for(self, group: Optional[str]) -> float:
        return lookup_group_ratio(self.group_ratio, group)

    def find_config(self, model_name: str) -> Optional[ModelTierConfig]:
        return find_matching_config(model_name, self.config)

    def find_rule(
        self, model_name: str, input_tokens: int, output_tokens: int
    ) -> Optional[TierRule]:
        tier_config = self.find_config(model_name)
        if tier_config is None:
            return None
        return find_matching_rule(tier_config.rules, input_tokens, output_tokens)

    def tier_price(
        self,
        rule: RuleLike,
        group: Optional[str] = None,
        token_unit: Optional[str] = None,
    ) -> TierPrice:
        return compute_tier_price(
            rule,
            self.group_ratio_for(group),
            token_unit or self.token_unit,
            self.quota_per_unit,
        )

    def effective_price(
        self,
        model_name: str,
        group: Optional[str] = None,
        input_tokens: int = 0,
        output_tokens: int = 0,
        record: Optional[ModelPriceRecord] = None,
        token_unit: Optional[str] = None,
    ) -> Optional[EffectivePrice]:
        return compute_effective_price(
            model_name,
            self.config,
            self.group_ratio_for(group),
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            record=record,
            token_unit=token_unit or self.token_unit,
            quota_per_unit=self.quota_per_unit,
        )

    def tier_price_table(
        self,
        model_name: str,
        group: Optional[str] = None,
        token_unit: Optional[str] = None,
    ) -> list[dict[str, Any]]:
        """模型价格表中展开的分段行，每条规则一行；未启用分段计费时为空列表"""
        tier_config = self.find_config(model_name)
        if tier_config is None or not tier_config.rules:
            return []

        unit = normalize_token_unit(token_unit or self.token_unit)
        rows = []
        for index, rule in enumerate(tier_config.rules):
            price = self.tier_price(rule, group, unit)
            input_value, output_value = describe_rule_values(rule, unit)
            rows.append(
                {
                    "key": index,
                    "name": rule.name or f"T{index + 1}",
                    "condition": describe_rule_condition(rule, unit),
                    "mode": describe_rule_mode(rule),
                    "input_value": input_value,
                    "output_value": output_value,
                    "price_unit": price_unit_label(unit),
                    **price.formatted(),
                    "input_price_value": price.input_price,
                    "output_price_value": price.output_price,
                }
            )
        return rows
