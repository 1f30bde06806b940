"""
分段计费配置保存前校验

解析器对任何输入都不抛异常；矛盾的边界、重复的规则名等问题在保存配置时
由这里报告。
"""

import logging
from collections.abc import Iterable, Mapping
from typing import Optional

from ..exceptions import ConfigurationException, ErrorCode, ModelPatternException
from .models import ModelTierConfig, TierRule, TokenTierPricingConfig, parse_model_patterns

logger = logging.getLogger(__name__)


def validate_rule(rule: TierRule, index: Optional[int] = None) -> list[str]:
    """校验单条规则，返回错误消息列表"""
    label = rule.name or (f"#{index + 1}" if index is not None else "?")
    errors = []

    if not rule.name:
        errors.append(f"规则 {label}: 请填写规则名称")

    for field_name in (
        "min_input_tokens",
        "max_input_tokens",
        "min_output_tokens",
        "max_output_tokens",
    ):
        if getattr(rule, field_name) < 0:
            errors.append(f"规则 {label}: {field_name} 不能为负数")

    if rule.max_input_tokens > 0 and rule.min_input_tokens > rule.max_input_tokens:
        errors.append(f"规则 {label}: 最小输入Token不能大于最大输入Token")
    if rule.max_output_tokens > 0 and rule.min_output_tokens > rule.max_output_tokens:
        errors.append(f"规则 {label}: 最小输出Token不能大于最大输出Token")

    if rule.is_price_mode:
        if rule.input_price < 0 or rule.output_price < 0:
            errors.append(f"规则 {label}: 价格不能为负数")
    else:
        if rule.input_ratio < 0 or rule.completion_ratio < 0:
            errors.append(f"规则 {label}: 倍率不能为负数")
        if rule.output_ratio is not None and rule.output_ratio < 0:
            errors.append(f"规则 {label}: 输出倍率不能为负数")

    return errors


def validate_rules(rules: Iterable[TierRule]) -> list[str]:
    """校验规则集：逐条校验并检查规则名唯一"""
    errors = []
    seen: set[str] = set()
    for index, rule in enumerate(rules):
        errors.extend(validate_rule(rule, index))
        if rule.name:
            if rule.name in seen:
                errors.append(f"规则名称已存在，请使用其他名称: {rule.name}")
            seen.add(rule.name)
    return errors


def validate_model_config(
    config: ModelTierConfig,
    existing: Optional[Mapping[str, ModelTierConfig]] = None,
    is_new: bool = False,
) -> list[str]:
    """
    校验单个分段计费配置

    Args:
        config: 待保存的配置
        existing: 当前已保存的配置，新建时用于检查重名
        is_new: 是否为新建配置
    """
    errors = []
    if not config.name:
        errors.append("请输入配置名称")
    elif is_new and existing and config.name in existing:
        errors.append(f"配置名称已存在，请使用其他名称: {config.name}")

    try:
        patterns = parse_model_patterns(config.models, strict=True)
    except ModelPatternException as e:
        errors.append(f"配置 {config.name}: {e.message}")
    else:
        if not patterns:
            errors.append(f"配置 {config.name}: 请至少填写一个模型名称")

    errors.extend(f"配置 {config.name}: {msg}" for msg in validate_rules(config.rules))
    return errors


def validate_tier_pricing_config(config: TokenTierPricingConfig) -> list[str]:
    """校验完整的分段计费配置"""
    errors = []
    for name, model_config in config.model_configs.items():
        if model_config.name != name:
            errors.append(f"配置名称与键不一致: {name} != {model_config.name}")
        errors.extend(validate_model_config(model_config))
    return errors


def _raise_if_errors(errors: list[str], config_name: Optional[str] = None) -> None:
    if errors:
        logger.warning(f"分段计费配置校验失败: {errors}")
        raise ConfigurationException(
            ErrorCode.CONFIG_INVALID,
            message=errors[0],
            config_name=config_name,
            details={"errors": errors},
        )


def ensure_valid_model_config(
    config: ModelTierConfig,
    existing: Optional[Mapping[str, ModelTierConfig]] = None,
    is_new: bool = False,
) -> ModelTierConfig:
    """校验失败时抛出 ConfigurationException"""
    _raise_if_errors(validate_model_config(config, existing, is_new), config.name)
    return config


def ensure_valid_tier_pricing_config(
    config: TokenTierPricingConfig,
) -> TokenTierPricingConfig:
    _raise_if_errors(validate_tier_pricing_config(config))
    return config
