"""
倍率与价格换算

1 倍率 = ratio_base_price USD / 1M tokens，默认 quota_per_unit=500000 时为 $2。
"""

from typing import Optional

DEFAULT_QUOTA_PER_UNIT = 500000
TOKENS_PER_MILLION = 1_000_000

TOKEN_UNIT_K = "K"
TOKEN_UNIT_M = "M"


def normalize_token_unit(token_unit: Optional[str]) -> str:
    """规范化显示单位，只有 K 与 M 两种"""
    if token_unit and str(token_unit).strip().upper() == TOKEN_UNIT_K:
        return TOKEN_UNIT_K
    return TOKEN_UNIT_M


def unit_divisor(token_unit: Optional[str]) -> int:
    """价格内部按 1M tokens 计算，K 单位显示时需要除以 1000"""
    return 1000 if normalize_token_unit(token_unit) == TOKEN_UNIT_K else 1


def ratio_base_price(quota_per_unit: Optional[float] = None) -> float:
    """
    倍率为 1 时对应的 USD / 1M tokens

    公式: 1000000 / quota_per_unit，未设置或非正数时使用默认值 500000
    """
    if not quota_per_unit or quota_per_unit <= 0:
        quota_per_unit = DEFAULT_QUOTA_PER_UNIT
    return TOKENS_PER_MILLION / quota_per_unit


def _base(quota_per_unit: Optional[float], base_price: Optional[float]) -> float:
    if base_price is not None:
        return base_price
    return ratio_base_price(quota_per_unit)


def price_from_ratio(
    ratio: float,
    quota_per_unit: Optional[float] = None,
    base_price: Optional[float] = None,
) -> float:
    """倍率 -> USD / 1M tokens"""
    return ratio * _base(quota_per_unit, base_price)


def ratio_from_price(
    price: float,
    quota_per_unit: Optional[float] = None,
    base_price: Optional[float] = None,
) -> float:
    """USD / 1M tokens -> 倍率，基准价格为 0 时返回 0"""
    base = _base(quota_per_unit, base_price)
    if base == 0:
        return 0.0
    return price / base


def output_ratio_from_prices(input_price: float, output_price: float) -> float:
    """由输入/输出价格推算补全倍率，输入价格为 0 时返回 0"""
    if input_price == 0:
        return 0.0
    return output_price / input_price


def output_price_from_ratios(
    input_ratio: float,
    completion_ratio: float,
    quota_per_unit: Optional[float] = None,
    base_price: Optional[float] = None,
) -> float:
    """输入倍率 * 补全倍率 -> 输出 USD / 1M tokens"""
    return input_ratio * completion_ratio * _base(quota_per_unit, base_price)
