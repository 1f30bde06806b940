"""
分段计费 API 接口

配置的读取与整体覆盖、新建/复制配置、价格解析、分段价格表与额度结算。
"""

import logging
from typing import Any, Literal, Optional

from fastapi import APIRouter, Query
from pydantic import BaseModel, Field

from tier_pricing.config_models import AppConfig
from tier_pricing.exceptions import ErrorCode, ModelException
from tier_pricing.pricing import (
    ModelPriceRecord,
    TieredPricingResolver,
    calc_tier_quota,
    lookup_group_ratio,
    resolve_token_tier_price,
)
from tier_pricing.pricing.defaults import default_tier_rules
from tier_pricing.pricing.editor import copy_model_config, new_model_config
from tier_pricing.settings_store import TierPricingSettingsStore

logger = logging.getLogger(__name__)

# --- Request/Response Models ---


class OptionUpdateRequest(BaseModel):
    key: str
    value: Any


class ModelRecordPayload(BaseModel):
    model_config = {"protected_namespaces": ()}

    model_name: str = ""
    quota_type: int = 0
    model_ratio: float = 0.0
    completion_ratio: float = 1.0
    model_price: float = 0.0
    enable_groups: list[str] = Field(default_factory=list)


class ResolveRequest(BaseModel):
    model_config = {"protected_namespaces": ()}

    model_name: str
    group: Optional[str] = None
    input_tokens: int = Field(default=0, ge=0)
    output_tokens: int = Field(default=0, ge=0)
    token_unit: Optional[Literal["K", "M"]] = None
    model_record: Optional[ModelRecordPayload] = None


class QuotaRequest(BaseModel):
    model_config = {"protected_namespaces": ()}

    model_name: str
    group: Optional[str] = None
    input_tokens: int = Field(default=0, ge=0)
    output_tokens: int = Field(default=0, ge=0)


class QuotaResponse(BaseModel):
    model_config = {"protected_namespaces": ()}

    model_name: str
    applies: bool
    quota: Optional[float] = None
    config_name: Optional[str] = None
    rule_name: Optional[str] = None
    use_ratio: Optional[bool] = None
    group_ratio: float = 1.0


class NewConfigRequest(BaseModel):
    name: str
    models: str


class CopyConfigRequest(BaseModel):
    new_name: Optional[str] = None


def create_tier_pricing_router(
    store: TierPricingSettingsStore, app_config: AppConfig
) -> APIRouter:
    """创建分段计费相关的API路由"""
    router = APIRouter(prefix="/api", tags=["tier-pricing"])
    pricing = app_config.pricing

    def build_resolver() -> TieredPricingResolver:
        return TieredPricingResolver(
            store.snapshot(),
            quota_per_unit=pricing.quota_per_unit,
            group_ratio=pricing.group_ratio,
            token_unit=pricing.default_token_unit,
        )

    @router.get("/tier-pricing")
    async def get_tier_pricing():
        """当前分段计费配置"""
        return store.snapshot().to_dict()

    @router.put("/option")
    async def update_option(request: OptionUpdateRequest):
        """按配置项整体覆盖（最后一次写入生效）"""
        config = store.update_option(request.key, request.value)
        return {"success": True, "data": config.to_dict()}

    @router.post("/tier-pricing/configs")
    async def create_model_config(request: NewConfigRequest):
        """用默认四段规则模板新建配置"""
        current = store.snapshot()
        config = new_model_config(request.name, current.model_configs, request.models)
        store.set_model_config(config, is_new=True)
        logger.info(f"新建分段计费配置: {config.name} (priority={config.priority})")
        return {"success": True, "data": config.to_dict(), "name": config.name}

    @router.post("/tier-pricing/configs/{name}/copy")
    async def copy_config(name: str, request: Optional[CopyConfigRequest] = None):
        """复制配置"""
        current = store.snapshot()
        new_name = request.new_name if request else None
        config = copy_model_config(current.model_configs, name, new_name)
        store.set_model_config(config, is_new=True)
        return {"success": True, "data": config.to_dict(), "name": config.name}

    @router.delete("/tier-pricing/configs/{name}")
    async def delete_config(name: str):
        store.delete_model_config(name)
        return {"success": True}

    @router.get("/tier-pricing/default-rules")
    async def get_default_rules():
        """默认规则模板"""
        return {"rules": [rule.to_dict() for rule in default_tier_rules()]}

    @router.post("/tier-pricing/resolve")
    async def resolve_price(request: ResolveRequest):
        """解析一次调用生效的价格"""
        resolver = build_resolver()
        record = None
        if request.model_record is not None:
            record = ModelPriceRecord.from_dict(request.model_record.model_dump())

        price = resolver.effective_price(
            request.model_name,
            group=request.group,
            input_tokens=request.input_tokens,
            output_tokens=request.output_tokens,
            record=record,
            token_unit=request.token_unit,
        )
        if price is None:
            return {"applies": False, "model_name": request.model_name}
        return {"applies": True, **price.to_dict()}

    @router.get("/tier-pricing/tiers/{model_name:path}")
    async def get_model_tiers(
        model_name: str,
        group: Optional[str] = None,
        token_unit: Optional[Literal["K", "M"]] = Query(default=None),
    ):
        """模型价格表中的分段明细"""
        resolver = build_resolver()
        tier_config = resolver.find_config(model_name)
        if tier_config is None:
            raise ModelException(
                ErrorCode.TIER_CONFIG_NOT_FOUND,
                message=f"模型 {model_name} 没有启用的分段计费配置",
                model_name=model_name,
            )
        return {
            "model_name": model_name,
            "config_name": tier_config.name,
            "group_ratio": resolver.group_ratio_for(group),
            "tiers": resolver.tier_price_table(model_name, group, token_unit),
        }

    @router.post("/tier-pricing/quota", response_model=QuotaResponse)
    async def calculate_quota(request: QuotaRequest):
        """按分段规则结算一次调用的额度"""
        group_ratio = lookup_group_ratio(pricing.group_ratio, request.group)
        resolution = resolve_token_tier_price(
            request.model_name,
            request.input_tokens,
            request.output_tokens,
            store.snapshot(),
        )
        quota = calc_tier_quota(
            resolution,
            request.input_tokens,
            request.output_tokens,
            pricing.quota_per_unit,
            group_ratio,
        )
        if quota is None:
            return QuotaResponse(
                model_name=request.model_name, applies=False, group_ratio=group_ratio
            )

        return QuotaResponse(
            model_name=request.model_name,
            applies=True,
            quota=float(quota),
            config_name=resolution.config_name,
            rule_name=resolution.rule_name,
            use_ratio=resolution.use_ratio,
            group_ratio=group_ratio,
        )

    return router
