"""配置管理模块"""

import logging
import os
from pathlib import Path
from typing import Any, Optional, Union

import yaml
from dotenv import load_dotenv
from pydantic import ValidationError

from .config_models import AppConfig
from .exceptions import ConfigurationException, ErrorCode

logger = logging.getLogger(__name__)

PROJECT_ROOT = Path(__file__).parent.parent


def load_config(config_path: Optional[Union[str, Path]] = None) -> AppConfig:
    """
    加载配置文件

    Args:
        config_path: 配置文件路径，默认为 config/config.yaml，
            不存在时回退到 config/example.yaml，都不存在时使用默认配置

    Returns:
        AppConfig 实例
    """
    # 加载环境变量
    load_dotenv()

    if config_path is None:
        config_path = os.getenv("TIER_PRICING_CONFIG") or PROJECT_ROOT / "config" / "config.yaml"
        if not Path(config_path).exists():
            config_path = PROJECT_ROOT / "config" / "example.yaml"

    config_path = Path(config_path)
    if not config_path.exists():
        logger.warning(f"配置文件不存在，使用默认配置: {config_path}")
        return AppConfig()

    try:
        with open(config_path, encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigurationException(
            ErrorCode.CONFIG_PARSE_ERROR,
            message=f"配置文件格式错误: {e}",
            config_path=str(config_path),
            cause=e,
        ) from e

    # 环境变量替换
    raw = _replace_env_vars(raw)

    try:
        config = AppConfig.model_validate(raw)
    except ValidationError as e:
        raise ConfigurationException(
            ErrorCode.CONFIG_INVALID,
            message=f"配置校验失败: {e.errors()[0].get('msg')}",
            config_path=str(config_path),
            details={"errors": [str(err.get("loc")) for err in e.errors()]},
            cause=e,
        ) from e

    logger.info(f"配置加载完成: {config_path}")
    return config


def _replace_env_vars(obj: Any) -> Any:
    """
    递归替换配置中的环境变量占位符

    支持 ${VAR_NAME} 与带默认值的 ${VAR_NAME:default_value}
    """
    if isinstance(obj, dict):
        return {key: _replace_env_vars(value) for key, value in obj.items()}
    elif isinstance(obj, list):
        return [_replace_env_vars(item) for item in obj]
    elif isinstance(obj, str) and obj.startswith("${") and obj.endswith("}"):
        env_var = obj[2:-1]
        default_value = None

        if ":" in env_var:
            env_var, default_value = env_var.split(":", 1)

        value = os.getenv(env_var, default_value)
        if value is None:
            logger.warning(f"环境变量 {env_var} 未设置，保留占位符")
            return obj
        return value
    else:
        return obj

