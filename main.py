#!/usr/bin/env python3
"""
Tier Pricing Service - 分段（阶梯）token 计费服务
"""

import argparse
import logging
import sys
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

# 添加项目根目录到 Python 路径
sys.path.insert(0, str(Path(__file__).parent))

from api.health import create_health_router
from api.tier_pricing import create_tier_pricing_router
from tier_pricing.config_loader import load_config
from tier_pricing.config_models import AppConfig
from tier_pricing.middleware.exception_middleware import ExceptionHandlerMiddleware
from tier_pricing.middleware.logging import LoggingMiddleware
from tier_pricing.settings_store import TierPricingSettingsStore
from tier_pricing.utils.logger import setup_logging

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """应用生命周期管理"""
    config: AppConfig = app.state.config
    store: TierPricingSettingsStore = app.state.store
    snapshot = store.snapshot()
    logger.info(
        f"{config.system.name} started: global_enabled={snapshot.global_enabled}, "
        f"{len(snapshot.model_configs)} tier configs, quota_per_unit={config.pricing.quota_per_unit}"
    )

    yield

    logger.info(f"{config.system.name} shutdown complete")


def create_app(
    config: Optional[AppConfig] = None,
    store: Optional[TierPricingSettingsStore] = None,
) -> FastAPI:
    """创建FastAPI应用"""
    config = config or load_config()

    # 设置日志系统
    setup_logging(config.logging.model_dump(), config.logging.log_file)

    if store is None:
        store = TierPricingSettingsStore(config.pricing.settings_file)
        store.load()

    app = FastAPI(
        title=config.system.name,
        description="Tiered token pricing engine and settings service",
        version=config.system.version,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )
    app.state.config = config
    app.state.store = store

    # 添加中间件
    app.add_middleware(ExceptionHandlerMiddleware)  # 统一异常处理
    app.add_middleware(LoggingMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.server.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # 注册API路由模块
    app.include_router(create_health_router(config, store))
    app.include_router(create_tier_pricing_router(store, config))

    logger.info(f"{config.system.name} initialized")
    return app


def main():
    """主函数"""
    parser = argparse.ArgumentParser(description="Tier Pricing Service")
    parser.add_argument("--config", default=None, help="Path to config YAML")
    parser.add_argument("--host", default=None, help="Host to bind to")
    parser.add_argument("--port", type=int, default=None, help="Port to bind to")

    args = parser.parse_args()

    config = load_config(args.config)
    host = args.host or config.server.host
    port = args.port or config.server.port

    app = create_app(config)

    print(
        f"""
{config.system.name} Starting...
Server: http://{host}:{port}
Docs: http://{host}:{port}/docs
    """
    )

    uvicorn.run(
        app,
        host=host,
        port=port,
        log_config=None,  # 使用我们自己的日志配置
    )


if __name__ == "__main__":
    main()
