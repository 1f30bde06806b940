"""
Pydantic models for configuration validation.
"""

from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator

from .pricing.conversion import DEFAULT_QUOTA_PER_UNIT


class System(BaseModel):
    name: str = "Tier Pricing Service"
    version: str = "0.1.0"


class Server(BaseModel):
    host: str = "0.0.0.0"
    port: int = 7602
    debug: bool = False
    cors_origins: list[str] = ["*"]


class PricingSettings(BaseModel):
    """计费相关的全局设置"""

    # 多少额度单位等于 1 个货币单位，1 倍率 = 1000000 / quota_per_unit USD / 1M tokens
    quota_per_unit: int = DEFAULT_QUOTA_PER_UNIT
    default_token_unit: Literal["K", "M"] = "M"
    # 分组倍率，未列出的分组按 1 计算
    group_ratio: dict[str, float] = Field(default_factory=lambda: {"default": 1.0})
    # 分段计费配置持久化文件，为空时只保存在内存中
    settings_file: Optional[str] = "data/token_tier_pricing.json"

    @field_validator("quota_per_unit")
    @classmethod
    def _positive_quota(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("quota_per_unit must be positive")
        return value


class LoggingSettings(BaseModel):
    level: str = "INFO"
    format: Literal["text", "json"] = "text"
    log_file: Optional[str] = "logs/tier-pricing.log"
    max_file_size: int = 50 * 1024 * 1024
    backup_count: int = 5


class AppConfig(BaseModel):
    system: System = Field(default_factory=System)
    server: Server = Field(default_factory=Server)
    pricing: PricingSettings = Field(default_factory=PricingSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    model_config = {"extra": "allow"}
