"""
分段（阶梯）token 计费模块
"""

from .conversion import (
    DEFAULT_QUOTA_PER_UNIT,
    output_price_from_ratios,
    output_ratio_from_prices,
    price_from_ratio,
    ratio_base_price,
    ratio_from_price,
)
from .models import (
    AbsolutePricing,
    ModelPattern,
    ModelPriceRecord,
    ModelTierConfig,
    PatternKind,
    QuotaType,
    RatioPricing,
    TierRule,
    TokenTierPricingConfig,
    is_price_mode,
    lookup_group_ratio,
    parse_model_patterns,
)
from .quota import (
    TierResolution,
    calc_quota_by_tier_price,
    calc_quota_by_tier_ratio,
    calc_tier_quota,
    resolve_token_tier_price,
)
from .resolver import (
    EffectivePrice,
    FlatPrice,
    TieredPricingResolver,
    TierPrice,
    compute_effective_price,
    compute_flat_price,
    compute_tier_price,
    find_matching_config,
    find_matching_rule,
    rule_matches,
)

__all__ = [
    # 换算
    "DEFAULT_QUOTA_PER_UNIT",
    "ratio_base_price",
    "price_from_ratio",
    "ratio_from_price",
    "output_ratio_from_prices",
    "output_price_from_ratios",
    # 数据模型
    "PatternKind",
    "ModelPattern",
    "RatioPricing",
    "AbsolutePricing",
    "TierRule",
    "ModelTierConfig",
    "TokenTierPricingConfig",
    "QuotaType",
    "ModelPriceRecord",
    "is_price_mode",
    "lookup_group_ratio",
    "parse_model_patterns",
    # 解析
    "TierPrice",
    "FlatPrice",
    "EffectivePrice",
    "TieredPricingResolver",
    "find_matching_config",
    "find_matching_rule",
    "rule_matches",
    "compute_tier_price",
    "compute_flat_price",
    "compute_effective_price",
    # 额度结算
    "TierResolution",
    "resolve_token_tier_price",
    "calc_quota_by_tier_price",
    "calc_quota_by_tier_ratio",
    "calc_tier_quota",
]
