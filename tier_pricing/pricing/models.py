"""
分段计费数据模型

配置结构与设置接口保存的 JSON 保持兼容:

    {
      "global_enabled": true,
      "model_configs": {
        "<配置名>": {"enabled": true, "models": "gpt-4o,claude-*",
                     "priority": 1, "rules": [...]}
      }
    }

所有对象均为不可变快照，修改操作返回新对象。
"""

import json
import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from types import MappingProxyType
from typing import Any, Optional, Union

from ..exceptions import ModelPatternException

logger = logging.getLogger(__name__)


def _to_float(value: Any, default: float = 0.0) -> float:
    if value is None or isinstance(value, bool):
        return default
    try:
        result = float(value)
    except (TypeError, ValueError):
        return default
    if result != result:  # NaN
        return default
    return result


def _to_optional_float(value: Any) -> Optional[float]:
    if value is None:
        return None
    result = _to_float(value, default=float("nan"))
    return None if result != result else result


def _to_int(value: Any, default: int = 0) -> int:
    if value is None or isinstance(value, bool):
        return default
    try:
        return int(float(value))
    except (TypeError, ValueError, OverflowError):
        return default


def _to_bool(value: Any, default: bool = False) -> bool:
    if value is None:
        return default
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1", "yes", "on")
    return bool(value)


# ---------------------------------------------------------------------------
# 模型名称匹配
# ---------------------------------------------------------------------------


class PatternKind(Enum):
    """模型匹配方式"""

    EXACT = "exact"
    PREFIX = "prefix"


@dataclass(frozen=True)
class ModelPattern:
    """解析后的模型匹配项，仅支持末尾通配符"""

    kind: PatternKind
    value: str

    @classmethod
    def parse(cls, raw: str) -> "ModelPattern":
        pattern = raw.strip()
        if not pattern:
            raise ModelPatternException(raw, "模型匹配模式不能为空")
        if "*" in pattern[:-1]:
            raise ModelPatternException(pattern)
        if pattern.endswith("*"):
            return cls(PatternKind.PREFIX, pattern[:-1])
        return cls(PatternKind.EXACT, pattern)

    def matches(self, model_name: str) -> bool:
        if self.kind is PatternKind.PREFIX:
            return model_name.startswith(self.value)
        return model_name == self.value

    def __str__(self) -> str:
        return f"{self.value}*" if self.kind is PatternKind.PREFIX else self.value


def parse_model_patterns(raw: Any, strict: bool = False) -> tuple[ModelPattern, ...]:
    """
    解析逗号分割的模型列表

    Args:
        raw: 形如 "gpt-4o, claude-*" 的字符串
        strict: 为 True 时遇到非法模式抛出 ModelPatternException，
            否则记录警告并跳过

    Returns:
        ModelPattern 元组
    """
    if not isinstance(raw, str) or not raw:
        return ()

    patterns = []
    for item in raw.split(","):
        if not item.strip():
            continue
        try:
            patterns.append(ModelPattern.parse(item))
        except ModelPatternException as e:
            if strict:
                raise
            logger.warning(f"忽略非法模型匹配模式 '{item.strip()}': {e.message}")
    return tuple(patterns)


# ---------------------------------------------------------------------------
# 计费方式：倍率模式 / 价格模式
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RatioPricing:
    """倍率模式，基于系统基础倍率（1倍率 = ratio_base_price / 1M tokens）"""

    input_ratio: float = 0.0
    completion_ratio: float = 1.0
    # 显式指定时覆盖 input_ratio * completion_ratio
    output_ratio: Optional[float] = None

    @property
    def effective_output_ratio(self) -> float:
        if self.output_ratio is not None:
            return self.output_ratio
        return self.input_ratio * self.completion_ratio


@dataclass(frozen=True)
class AbsolutePricing:
    """价格模式，直接设置 USD / 1M tokens"""

    input_price: float = 0.0
    output_price: float = 0.0


Pricing = Union[RatioPricing, AbsolutePricing]


def pricing_from_fields(data: Mapping[str, Any]) -> Pricing:
    """
    任一价格字段非零即为价格模式，否则为倍率模式（input_ratio 为 0 表示免费）

    倍率模式下 completion_ratio 为 0 或缺失时按 1.0 处理，与额度结算一致。
    to_dict 输出的是 1.0，下次保存后原来的 0 不会保留。
    """
    input_price = _to_float(data.get("input_price"))
    output_price = _to_float(data.get("output_price"))
    if input_price != 0 or output_price != 0:
        return AbsolutePricing(input_price=input_price, output_price=output_price)

    return RatioPricing(
        input_ratio=_to_float(data.get("input_ratio")),
        completion_ratio=_to_float(data.get("completion_ratio"), 1.0) or 1.0,
        output_ratio=_to_optional_float(data.get("output_ratio")),
    )


# ---------------------------------------------------------------------------
# 规则与配置
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TierRule:
    """分段计费规则，token 边界为 0 表示该侧无限制"""

    name: str = ""
    min_input_tokens: int = 0
    max_input_tokens: int = 0
    min_output_tokens: int = 0
    max_output_tokens: int = 0
    pricing: Pricing = field(default_factory=RatioPricing)

    def __post_init__(self) -> None:
        # 两个价格都为 0 的价格模式等价于免费的倍率模式
        if (
            isinstance(self.pricing, AbsolutePricing)
            and self.pricing.input_price == 0
            and self.pricing.output_price == 0
        ):
            object.__setattr__(self, "pricing", RatioPricing(input_ratio=0.0))

    @property
    def is_price_mode(self) -> bool:
        return isinstance(self.pricing, AbsolutePricing)

    @property
    def is_catch_all(self) -> bool:
        return not (
            self.min_input_tokens
            or self.max_input_tokens
            or self.min_output_tokens
            or self.max_output_tokens
        )

    @property
    def input_price(self) -> float:
        return self.pricing.input_price if self.is_price_mode else 0.0

    @property
    def output_price(self) -> float:
        return self.pricing.output_price if self.is_price_mode else 0.0

    @property
    def input_ratio(self) -> float:
        return 0.0 if self.is_price_mode else self.pricing.input_ratio

    @property
    def completion_ratio(self) -> float:
        return 1.0 if self.is_price_mode else self.pricing.completion_ratio

    @property
    def output_ratio(self) -> Optional[float]:
        return None if self.is_price_mode else self.pricing.output_ratio

    @classmethod
    def from_dict(cls, data: Any) -> "TierRule":
        """从 JSON 字典创建规则，缺失或非法字段使用默认值"""
        if isinstance(data, TierRule):
            return data
        if not isinstance(data, Mapping):
            logger.warning(f"忽略非法计费规则: {data!r}")
            return cls()

        name = data.get("name")
        return cls(
            name=name if isinstance(name, str) else "",
            min_input_tokens=_to_int(data.get("min_input_tokens")),
            max_input_tokens=_to_int(data.get("max_input_tokens")),
            min_output_tokens=_to_int(data.get("min_output_tokens")),
            max_output_tokens=_to_int(data.get("max_output_tokens")),
            pricing=pricing_from_fields(data),
        )

    def to_dict(self) -> dict[str, Any]:
        """转换为设置接口使用的 JSON 结构"""
        result: dict[str, Any] = {
            "name": self.name,
            "min_input_tokens": self.min_input_tokens,
            "max_input_tokens": self.max_input_tokens,
            "min_output_tokens": self.min_output_tokens,
            "max_output_tokens": self.max_output_tokens,
            "input_ratio": self.input_ratio,
            "completion_ratio": self.completion_ratio,
            "input_price": self.input_price,
            "output_price": self.output_price,
        }
        if self.output_ratio is not None:
            result["output_ratio"] = self.output_ratio
        return result


def is_price_mode(rule: TierRule) -> bool:
    """规则是否为价格模式：input_price != 0 或 output_price != 0"""
    return rule.input_price != 0 or rule.output_price != 0


@dataclass(frozen=True)
class ModelTierConfig:
    """单个分段计费配置（规则集）"""

    name: str = ""
    enabled: bool = False
    models: str = ""
    priority: int = 0
    rules: tuple[TierRule, ...] = ()
    patterns: tuple[ModelPattern, ...] = field(init=False, compare=False, repr=False)

    def __post_init__(self) -> None:
        if not isinstance(self.rules, tuple):
            object.__setattr__(self, "rules", tuple(self.rules))
        object.__setattr__(self, "patterns", parse_model_patterns(self.models))

    def matches_model(self, model_name: str) -> bool:
        return any(pattern.matches(model_name) for pattern in self.patterns)

    @classmethod
    def from_dict(cls, name: str, data: Any) -> "ModelTierConfig":
        if isinstance(data, ModelTierConfig):
            return data
        if not isinstance(data, Mapping):
            logger.warning(f"忽略非法分段计费配置 '{name}': {data!r}")
            return cls(name=name)

        models = data.get("models")
        raw_rules = data.get("rules")
        if not isinstance(raw_rules, Iterable) or isinstance(raw_rules, (str, bytes, Mapping)):
            raw_rules = []

        return cls(
            name=name,
            enabled=_to_bool(data.get("enabled")),
            models=models if isinstance(models, str) else "",
            priority=_to_int(data.get("priority")),
            rules=tuple(TierRule.from_dict(rule) for rule in raw_rules),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "enabled": self.enabled,
            "models": self.models,
            "priority": self.priority,
            "rules": [rule.to_dict() for rule in self.rules],
        }


def _load_json_mapping(value: Any, what: str) -> Mapping[str, Any]:
    if isinstance(value, (str, bytes)):
        if not value:
            return {}
        try:
            value = json.loads(value)
        except json.JSONDecodeError as e:
            logger.warning(f"{what} 不是合法的 JSON: {e}")
            return {}
    if isinstance(value, Mapping):
        return value
    if value is not None:
        logger.warning(f"{what} 不是对象: {type(value).__name__}")
    return {}


@dataclass(frozen=True)
class TokenTierPricingConfig:
    """分段计费总配置：全局开关 + 按配置名存储的规则集"""

    global_enabled: bool = False
    model_configs: Mapping[str, ModelTierConfig] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "model_configs", MappingProxyType(dict(self.model_configs))
        )

    def enabled_configs_by_priority(self) -> list[ModelTierConfig]:
        """启用的配置，priority 数值大的优先，相同时按配置名排序"""
        enabled = [cfg for cfg in self.model_configs.values() if cfg.enabled]
        return sorted(enabled, key=lambda cfg: (-cfg.priority, cfg.name))

    def with_global_enabled(self, enabled: bool) -> "TokenTierPricingConfig":
        return TokenTierPricingConfig(enabled, self.model_configs)

    def with_model_configs(
        self, model_configs: Mapping[str, ModelTierConfig]
    ) -> "TokenTierPricingConfig":
        return TokenTierPricingConfig(self.global_enabled, model_configs)

    def with_model_config(self, config: ModelTierConfig) -> "TokenTierPricingConfig":
        configs = dict(self.model_configs)
        configs[config.name] = config
        return self.with_model_configs(configs)

    def without_model_config(self, name: str) -> "TokenTierPricingConfig":
        configs = dict(self.model_configs)
        configs.pop(name, None)
        return self.with_model_configs(configs)

    @staticmethod
    def parse_model_configs(value: Any) -> dict[str, ModelTierConfig]:
        """解析 model_configs（对象或 JSON 字符串）"""
        raw = _load_json_mapping(value, "model_configs")
        return {
            str(name): ModelTierConfig.from_dict(str(name), data)
            for name, data in raw.items()
        }

    @classmethod
    def from_dict(cls, data: Any) -> "TokenTierPricingConfig":
        if isinstance(data, TokenTierPricingConfig):
            return data
        raw = _load_json_mapping(data, "token_tier_pricing")
        return cls(
            global_enabled=_to_bool(raw.get("global_enabled")),
            model_configs=cls.parse_model_configs(raw.get("model_configs")),
        )

    @classmethod
    def from_json(cls, text: str) -> "TokenTierPricingConfig":
        return cls.from_dict(text)

    def to_dict(self) -> dict[str, Any]:
        return {
            "global_enabled": self.global_enabled,
            "model_configs": {
                name: cfg.to_dict() for name, cfg in self.model_configs.items()
            },
        }

    def to_json(self, indent: Optional[int] = None) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False, indent=indent)


# ---------------------------------------------------------------------------
# 模型基础定价
# ---------------------------------------------------------------------------


class QuotaType(IntEnum):
    """计费类型"""

    METERED = 0  # 按量计费
    PER_CALL = 1  # 按次计费


@dataclass(frozen=True)
class ModelPriceRecord:
    """模型基础（非分段）定价"""

    model_name: str
    quota_type: QuotaType = QuotaType.METERED
    model_ratio: float = 0.0
    completion_ratio: float = 1.0
    model_price: float = 0.0
    enable_groups: tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ModelPriceRecord":
        quota_type = _to_int(data.get("quota_type"))
        groups = data.get("enable_groups") or ()
        if isinstance(groups, str):
            groups = [g.strip() for g in groups.split(",") if g.strip()]
        return cls(
            model_name=str(data.get("model_name") or ""),
            quota_type=QuotaType.PER_CALL if quota_type == 1 else QuotaType.METERED,
            model_ratio=_to_float(data.get("model_ratio")),
            completion_ratio=_to_float(data.get("completion_ratio"), 1.0),
            model_price=_to_float(data.get("model_price")),
            enable_groups=tuple(str(g) for g in groups),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "model_name": self.model_name,
            "quota_type": int(self.quota_type),
            "model_ratio": self.model_ratio,
            "completion_ratio": self.completion_ratio,
            "model_price": self.model_price,
            "enable_groups": list(self.enable_groups),
        }


def lookup_group_ratio(group_ratio: Optional[Mapping[str, Any]], group: Optional[str]) -> float:
    """分组倍率，未配置（或为 0）的分组按 1 计算"""
    if not group_ratio or not group:
        return 1.0
    return _to_float(group_ratio.get(group), 1.0) or 1.0
