"""分段计费解析器测试"""

import sys
from pathlib import Path

import pytest

# 添加项目根目录到Python路径
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from tier_pricing.pricing import (
    ModelPriceRecord,
    QuotaType,
    TieredPricingResolver,
    TierRule,
    TokenTierPricingConfig,
    compute_effective_price,
    compute_flat_price,
    compute_tier_price,
    find_matching_config,
    find_matching_rule,
    rule_matches,
)
from tier_pricing.pricing.defaults import default_tier_rules


def make_config(global_enabled=True, **configs):
    return TokenTierPricingConfig.from_dict(
        {"global_enabled": global_enabled, "model_configs": configs}
    )


TWO_TIERS = [
    {"name": "short", "max_input_tokens": 32000, "input_ratio": 0.4},
    {"name": "long", "min_input_tokens": 32001, "input_ratio": 0.6},
]


class TestFindMatchingConfig:
    """配置选择"""

    def test_higher_priority_wins(self):
        """两个配置都匹配 gpt-4o 时 priority 5 胜出"""
        config = make_config(
            low={"enabled": True, "models": "gpt-4o", "priority": 1, "rules": TWO_TIERS},
            high={"enabled": True, "models": "gpt-*", "priority": 5, "rules": TWO_TIERS},
        )
        assert find_matching_config("gpt-4o", config).name == "high"

    def test_priority_independent_of_insertion_order(self):
        config = make_config(
            high={"enabled": True, "models": "gpt-4o", "priority": 5},
            low={"enabled": True, "models": "gpt-4o", "priority": 1},
        )
        assert find_matching_config("gpt-4o", config).name == "high"

    def test_equal_priority_tie_broken_by_name(self):
        config = make_config(
            zeta={"enabled": True, "models": "gpt-4o", "priority": 3},
            alpha={"enabled": True, "models": "gpt-4o", "priority": 3},
        )
        assert find_matching_config("gpt-4o", config).name == "alpha"

    def test_global_disabled(self):
        config = make_config(
            False, gpt={"enabled": True, "models": "gpt-4o", "priority": 1}
        )
        assert find_matching_config("gpt-4o", config) is None

    def test_disabled_config_skipped(self):
        config = make_config(
            off={"enabled": False, "models": "gpt-4o", "priority": 9},
            on={"enabled": True, "models": "gpt-4o", "priority": 1},
        )
        assert find_matching_config("gpt-4o", config).name == "on"

    def test_no_match(self):
        config = make_config(gpt={"enabled": True, "models": "gpt-4o", "priority": 1})
        assert find_matching_config("claude-3", config) is None
        assert find_matching_config("", config) is None
        assert find_matching_config("gpt-4o", None) is None

    def test_accepts_raw_dict(self):
        raw = {
            "global_enabled": True,
            "model_configs": {"gpt": {"enabled": True, "models": "gpt-*", "priority": 1}},
        }
        assert find_matching_config("gpt-4o-mini", raw).name == "gpt"


class TestFindMatchingRule:
    """规则匹配"""

    def test_second_rule_for_50000_input(self):
        rule = find_matching_rule(TWO_TIERS, 50000, 100)
        assert rule.name == "long"

    def test_first_match_wins(self):
        rules = [
            {"name": "first", "max_input_tokens": 100000},
            {"name": "second", "max_input_tokens": 50000},
        ]
        assert find_matching_rule(rules, 1000, 0).name == "first"

    def test_boundaries_inclusive(self):
        assert find_matching_rule(TWO_TIERS, 32000, 0).name == "short"
        assert find_matching_rule(TWO_TIERS, 32001, 0).name == "long"

    @pytest.mark.parametrize("tokens", [(0, 0), (1, 10**9), (10**9, 1), (123456, 7)])
    def test_unbounded_rule_matches_everything(self, tokens):
        assert rule_matches(TierRule(name="all"), *tokens)

    def test_output_bounds(self):
        rules = default_tier_rules()
        assert find_matching_rule(rules, 1000, 200).name == "T1_input_le_32k_output_le_200"
        assert find_matching_rule(rules, 1000, 201).name == "T2_input_le_32k_output_gt_200"
        assert find_matching_rule(rules, 64000, 5000).name == "T3_input_32k_to_128k"
        assert find_matching_rule(rules, 200000, 0).name == "T4_input_gt_128k"

    def test_min_only_bound(self):
        rule = {"min_output_tokens": 500}
        assert not rule_matches(rule, 0, 499)
        assert rule_matches(rule, 0, 500)

    def test_no_rule_matches(self):
        assert find_matching_rule([{"name": "a", "max_input_tokens": 10}], 11, 0) is None
        assert find_matching_rule([], 1, 1) is None
        assert find_matching_rule(None, 1, 1) is None


class TestComputeTierPrice:
    """价格计算"""

    RATIO_RULE = {"name": "r", "input_ratio": 0.4, "completion_ratio": 1.5}

    def test_ratio_mode_per_million(self):
        price = compute_tier_price(self.RATIO_RULE, 1.0, "M")
        assert price.input_price == pytest.approx(0.8)
        assert price.output_price == pytest.approx(1.2)
        assert price.price_mode is False

    def test_ratio_mode_per_thousand(self):
        price = compute_tier_price(self.RATIO_RULE, 1.0, "K")
        assert price.input_price == pytest.approx(0.0008)
        assert price.output_price == pytest.approx(0.0012)

    def test_price_mode_with_group_ratio(self):
        price = compute_tier_price({"input_price": 1.0, "output_price": 3.0}, 2.0)
        assert price.input_price == 2.0
        assert price.output_price == 6.0
        assert price.price_mode is True

    @pytest.mark.parametrize(
        "rule",
        [
            RATIO_RULE,
            {"input_price": 1.25, "output_price": 3.7},
            {"input_ratio": 0.37, "output_ratio": 2.9},
        ],
    )
    @pytest.mark.parametrize("group_ratio", [0.5, 1.0, 3.3])
    def test_thousand_is_exactly_million_over_1000(self, rule, group_ratio):
        per_m = compute_tier_price(rule, group_ratio, "M")
        per_k = compute_tier_price(rule, group_ratio, "K")
        assert per_k.input_price == per_m.input_price / 1000
        assert per_k.output_price == per_m.output_price / 1000

    def test_output_ratio_override(self):
        price = compute_tier_price({"input_ratio": 1.0, "completion_ratio": 5, "output_ratio": 2.0})
        assert price.output_price == 4.0

    def test_custom_quota_per_unit(self):
        price = compute_tier_price({"input_ratio": 1.0}, quota_per_unit=1_000_000)
        assert price.input_price == 1.0

    def test_formatted(self):
        price = compute_tier_price(self.RATIO_RULE)
        assert price.formatted() == {"input_price": "$0.8000", "output_price": "$1.2000"}

    def test_free_rule(self):
        price = compute_tier_price({"input_ratio": 0})
        assert price.input_price == 0.0
        assert price.output_price == 0.0


class TestEffectivePrice:
    """分段价格与基础价格"""

    CONFIG = make_config(
        gpt={"enabled": True, "models": "gpt-4o", "priority": 1, "rules": TWO_TIERS[:1]}
    )
    RECORD = ModelPriceRecord(model_name="gpt-4o", model_ratio=1.25, completion_ratio=4)

    def test_tier_price_used(self):
        price = compute_effective_price("gpt-4o", self.CONFIG, input_tokens=100, record=self.RECORD)
        assert price.is_tiered
        assert price.config_name == "gpt"
        assert price.rule_name == "short"
        assert price.input_price == pytest.approx(0.8)

    def test_falls_back_to_flat_when_no_rule(self):
        price = compute_effective_price(
            "gpt-4o", self.CONFIG, input_tokens=50000, record=self.RECORD
        )
        assert price.source == "flat"
        assert price.input_price == pytest.approx(2.5)
        assert price.output_price == pytest.approx(10.0)

    def test_nothing_applies(self):
        assert compute_effective_price("gpt-4o", self.CONFIG, input_tokens=50000) is None
        assert compute_effective_price("other", None) is None

    def test_flat_per_call(self):
        record = ModelPriceRecord(model_name="m", quota_type=QuotaType.PER_CALL, model_price=0.02)
        flat = compute_flat_price(record, group_ratio_value=2.0)
        assert flat.fixed_price == pytest.approx(0.04)
        assert flat.input_price is None
        assert flat.formatted()["input_price"] == "-"

    def test_to_dict(self):
        price = compute_effective_price("gpt-4o", self.CONFIG, token_unit="K")
        data = price.to_dict()
        assert data["token_unit"] == "K"
        assert data["formatted"]["input_price"] == "$0.0008"


class TestTieredPricingResolver:
    """绑定快照的解析器"""

    def make_resolver(self, **kwargs):
        config = make_config(
            gpt={"enabled": True, "models": "gpt-*", "priority": 1, "rules": [
                {"name": "", "max_input_tokens": 32000, "input_ratio": 0.4, "completion_ratio": 1.5},
                {"name": "big", "min_input_tokens": 32001, "input_price": 1.0, "output_price": 3.0},
            ]}
        )
        return TieredPricingResolver(
            config, group_ratio={"default": 1.0, "vip": 2.0}, **kwargs
        )

    def test_ratio_base_price(self):
        assert self.make_resolver().ratio_base_price == 2.0
        assert self.make_resolver(quota_per_unit=1_000_000).ratio_base_price == 1.0

    def test_group_ratio_applied(self):
        resolver = self.make_resolver()
        price = resolver.effective_price("gpt-4o", group="vip", input_tokens=40000)
        assert price.input_price == 2.0
        assert price.output_price == 6.0
        assert price.group_ratio == 2.0

    def test_find_rule(self):
        resolver = self.make_resolver()
        assert resolver.find_rule("gpt-4o", 40000, 0).name == "big"
        assert resolver.find_rule("claude", 40000, 0) is None

    def test_with_config_rebinds_snapshot(self):
        resolver = self.make_resolver()
        disabled = resolver.with_config(resolver.config.with_global_enabled(False))
        assert disabled.find_config("gpt-4o") is None
        assert resolver.find_config("gpt-4o") is not None

    def test_tier_price_table(self):
        rows = self.make_resolver().tier_price_table("gpt-4o", token_unit="K")
        assert len(rows) == 2
        first, second = rows
        assert first["name"] == "T1"
        assert first["condition"] == "输入 ≤ 32K"
        assert first["mode"] == "倍率模式"
        assert first["price_unit"] == "1K"
        assert first["input_price"] == "$0.0008"
        assert first["output_price"] == "$0.0012"
        assert second["name"] == "big"
        assert second["condition"] == "输入 ≥ 32K"
        assert second["mode"] == "价格模式"
        assert second["input_value"] == "$0.001000 / 1K"

    def test_tier_price_table_no_config(self):
        assert self.make_resolver().tier_price_table("claude-3") == []


if __name__ == "__main__":
    pytest.main([__file__])
