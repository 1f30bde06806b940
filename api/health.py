"""
Health check API endpoints
健康检查API接口
"""

import time

from fastapi import APIRouter

from tier_pricing.config_models import AppConfig
from tier_pricing.settings_store import TierPricingSettingsStore


def create_health_router(
    app_config: AppConfig, store: TierPricingSettingsStore
) -> APIRouter:
    """创建健康检查相关的API路由"""

    router = APIRouter(tags=["health"])

    @router.get("/")
    async def root():
        """根路径健康检查"""
        return {
            "message": app_config.system.name,
            "version": app_config.system.version,
            "status": "running",
        }

    @router.get("/health")
    async def health_check():
        """系统健康检查"""
        snapshot = store.snapshot()
        return {
            "status": "healthy",
            "version": app_config.system.version,
            "timestamp": int(time.time()),
            "global_enabled": snapshot.global_enabled,
            "tier_configs": len(snapshot.model_configs),
            "quota_per_unit": app_config.pricing.quota_per_unit,
        }

    return router
