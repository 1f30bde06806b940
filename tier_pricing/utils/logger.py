"""日志系统模块 - 结构化格式、日志轮换"""

import logging
import logging.handlers
import sys
from pathlib import Path
from typing import Any, Optional, Union

import structlog
from pythonjsonlogger.json import JsonFormatter

TEXT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

DEFAULT_LOG_CONFIG: dict[str, Any] = {
    "level": "INFO",
    "format": "text",
    "max_file_size": 50 * 1024 * 1024,  # 50MB
    "backup_count": 5,
}


def _build_formatter(log_format: str) -> logging.Formatter:
    if log_format == "json":
        return JsonFormatter("%(asctime)s %(name)s %(levelname)s %(message)s")
    return logging.Formatter(TEXT_FORMAT)


def setup_logging(
    config: Optional[dict[str, Any]] = None,
    log_file: Optional[Union[str, Path]] = None,
) -> logging.Logger:
    """
    设置全局日志系统

    Args:
        config: 日志配置字典（level, format, max_file_size, backup_count）
        log_file: 日志文件路径，为空时只输出到控制台

    Returns:
        根日志记录器
    """
    config = {**DEFAULT_LOG_CONFIG, **(config or {})}
    log_level = str(config.get("level", "INFO")).upper()
    log_format = config.get("format", "text")  # text or json

    formatter = _build_formatter(log_format)
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    handlers: list[logging.Handler] = [console_handler]

    # 添加文件处理器（轮换日志）
    if log_file:
        try:
            log_path = Path(log_file)
            log_path.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.handlers.RotatingFileHandler(
                log_path,
                maxBytes=config["max_file_size"],
                backupCount=config["backup_count"],
                encoding="utf-8",
            )
            file_handler.setFormatter(formatter)
            handlers.append(file_handler)
        except OSError as e:
            print(f"Failed to setup file logging: {e}", file=sys.stderr)

    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]
    if log_format == "json":
        processors.append(structlog.processors.JSONRenderer(ensure_ascii=False))
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=False))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )

    # 配置根日志记录器
    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        handlers=handlers,
        force=True,  # 覆盖现有配置
    )

    # 禁用第三方库的噪音日志
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)

    return logging.getLogger()


def get_logger(name: Optional[str] = None):
    """
    获取结构化日志记录器

    Args:
        name: 日志记录器名称

    Returns:
        structlog BoundLogger
    """
    return structlog.get_logger(name)


def bind_log_context(**context_data: Any) -> None:
    """设置上下文数据（如 request_id）"""
    structlog.contextvars.bind_contextvars(**context_data)


def clear_log_context() -> None:
    """清除上下文数据"""
    structlog.contextvars.clear_contextvars()
