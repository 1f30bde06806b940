"""
分段计费设置存储

保存当前生效的 TokenTierPricingConfig 快照。每次修改都会整体替换快照
（最后一次写入生效），读取方拿到的快照在其生命周期内不会变化。
"""

import json
import logging
import threading
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Optional, Union

from .exceptions import ConfigurationException, ErrorCode
from .pricing.models import ModelTierConfig, TokenTierPricingConfig
from .pricing.validation import ensure_valid_model_config, ensure_valid_tier_pricing_config

logger = logging.getLogger(__name__)

OPTION_GLOBAL_ENABLED = "token_tier_pricing.global_enabled"
OPTION_MODEL_CONFIGS = "token_tier_pricing.model_configs"
OPTION_KEYS = (OPTION_GLOBAL_ENABLED, OPTION_MODEL_CONFIGS)


def _parse_bool_option(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() == "true"
    return bool(value)


def _parse_model_configs_option(value: Any) -> Mapping[str, Any]:
    """严格解析 model_configs 选项值（JSON 字符串或对象）"""
    if isinstance(value, (str, bytes)):
        try:
            value = json.loads(value) if value else {}
        except json.JSONDecodeError as e:
            raise ConfigurationException(
                ErrorCode.CONFIG_PARSE_ERROR,
                message=f"model_configs 不是合法的 JSON: {e}",
                cause=e,
            ) from e
    if not isinstance(value, Mapping):
        raise ConfigurationException(
            ErrorCode.CONFIG_INVALID,
            message="model_configs 必须是对象",
        )
    return value


class TierPricingSettingsStore:
    """线程安全的分段计费设置存储"""

    def __init__(
        self,
        settings_file: Optional[Union[str, Path]] = None,
        initial: Optional[TokenTierPricingConfig] = None,
    ):
        self.settings_file = Path(settings_file) if settings_file else None
        self._lock = threading.RLock()
        self._snapshot = initial or TokenTierPricingConfig()

    def snapshot(self) -> TokenTierPricingConfig:
        """当前配置快照"""
        with self._lock:
            return self._snapshot

    def load(self) -> TokenTierPricingConfig:
        """从持久化文件加载配置，文件不存在时保持当前配置"""
        if self.settings_file is None:
            return self.snapshot()

        if not self.settings_file.exists():
            logger.info(f"分段计费配置文件不存在，使用默认配置: {self.settings_file}")
            return self.snapshot()

        try:
            with open(self.settings_file, encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigurationException(
                ErrorCode.CONFIG_PARSE_ERROR,
                config_path=str(self.settings_file),
                cause=e,
            ) from e
        except OSError as e:
            raise ConfigurationException(
                ErrorCode.CONFIG_LOAD_FAILED,
                config_path=str(self.settings_file),
                cause=e,
            ) from e

        config = TokenTierPricingConfig.from_dict(data)
        with self._lock:
            self._snapshot = config
        logger.info(
            f"加载分段计费配置: global_enabled={config.global_enabled}, "
            f"{len(config.model_configs)} 个配置"
        )
        return config

    def save(self) -> None:
        """保存当前配置到持久化文件"""
        if self.settings_file is None:
            return

        config = self.snapshot()
        try:
            self.settings_file.parent.mkdir(parents=True, exist_ok=True)
            with open(self.settings_file, "w", encoding="utf-8") as f:
                json.dump(config.to_dict(), f, indent=2, ensure_ascii=False)
        except OSError as e:
            raise ConfigurationException(
                ErrorCode.CONFIG_SAVE_FAILED,
                config_path=str(self.settings_file),
                cause=e,
            ) from e

    def replace(
        self, config: TokenTierPricingConfig, validate: bool = True
    ) -> TokenTierPricingConfig:
        """整体替换配置并持久化"""
        if validate:
            ensure_valid_tier_pricing_config(config)
        with self._lock:
            previous = self._snapshot
            self._snapshot = config
            try:
                self.save()
            except ConfigurationException:
                self._snapshot = previous
                raise
        return config

    def update_option(self, key: str, value: Any) -> TokenTierPricingConfig:
        """
        按选项键更新配置

        Args:
            key: token_tier_pricing.global_enabled 或 token_tier_pricing.model_configs
            value: 布尔值 / JSON 字符串或对象（整体覆盖 model_configs）
        """
        with self._lock:
            current = self._snapshot
            if key == OPTION_GLOBAL_ENABLED:
                updated = current.with_global_enabled(_parse_bool_option(value))
            elif key == OPTION_MODEL_CONFIGS:
                raw = _parse_model_configs_option(value)
                updated = current.with_model_configs(
                    TokenTierPricingConfig.parse_model_configs(raw)
                )
            else:
                raise ConfigurationException(
                    ErrorCode.UNKNOWN_OPTION_KEY,
                    message=f"未知的配置项: {key}",
                    details={"key": key},
                )

            logger.info(f"更新分段计费配置项: {key}")
            return self.replace(updated, validate=key == OPTION_MODEL_CONFIGS)

    def set_model_config(
        self, config: ModelTierConfig, is_new: bool = False
    ) -> TokenTierPricingConfig:
        """新建或覆盖单个配置"""
        with self._lock:
            current = self._snapshot
            if is_new and config.name in current.model_configs:
                raise ConfigurationException(
                    ErrorCode.TIER_CONFIG_EXISTS, config_name=config.name
                )
            ensure_valid_model_config(config, current.model_configs, is_new)
            return self.replace(current.with_model_config(config), validate=False)

    def delete_model_config(self, name: str) -> TokenTierPricingConfig:
        with self._lock:
            current = self._snapshot
            if name not in current.model_configs:
                raise ConfigurationException(
                    ErrorCode.TIER_CONFIG_NOT_FOUND, config_name=name
                )
            return self.replace(current.without_model_config(name), validate=False)

    def set_global_enabled(self, enabled: bool) -> TokenTierPricingConfig:
        return self.update_option(OPTION_GLOBAL_ENABLED, enabled)


# 全局实例
_settings_store: Optional[TierPricingSettingsStore] = None
_store_lock = threading.Lock()


def get_settings_store(
    settings_file: Optional[Union[str, Path]] = None,
) -> TierPricingSettingsStore:
    """获取全局设置存储实例，首次创建时从文件加载"""
    global _settings_store
    if _settings_store is None:
        with _store_lock:
            if _settings_store is None:
                store = TierPricingSettingsStore(settings_file)
                store.load()
                _settings_store = store
    return _settings_store


def reset_settings_store() -> None:
    """清除全局实例（主要用于测试）"""
    global _settings_store
    with _store_lock:
        _settings_store = None
