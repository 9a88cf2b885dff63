"""日志工具"""
import hashlib
import sys
from pathlib import Path
from typing import Optional
from contextvars import ContextVar
from loguru import logger as loguru_logger
from config.settings import settings


# 请求ID上下文变量
request_id_ctx: ContextVar[Optional[str]] = ContextVar('request_id', default=None)


class LoggerWrapper:
    """带请求ID的Logger包装器"""

    def __init__(self, base_logger):
        self.base_logger = base_logger

    def _format(self, message):
        """格式化消息，添加请求ID"""
        rid = request_id_ctx.get()
        return f"[{rid}] {message}"

    def debug(self, message, **kwargs):
        self.base_logger.debug(self._format(message), **kwargs)

    def info(self, message, **kwargs):
        self.base_logger.info(self._format(message), **kwargs)

    def warning(self, message, **kwargs):
        self.base_logger.warning(self._format(message), **kwargs)

    def error(self, message, **kwargs):
        self.base_logger.error(self._format(message), **kwargs)

    def critical(self, message, **kwargs):
        self.base_logger.critical(self._format(message), **kwargs)

    def exception(self, message, **kwargs):
        self.base_logger.exception(self._format(message), **kwargs)

    def bind(self, **kwargs):
        """绑定额外参数"""
        return LoggerWrapper(self.base_logger.bind(**kwargs))

    def opt(self, **kwargs):
        """选项"""
        return LoggerWrapper(self.base_logger.opt(**kwargs))


class LoggingManager:
    """日志管理器"""

    def __init__(self):
        # 移除默认的处理器
        loguru_logger.remove()
        self._setup_logging()

    def _setup_logging(self):
        """设置日志配置"""
        log_config = settings.logger

        if log_config.to_file and log_config.file_path:
            log_file_path = Path(log_config.file_path)
            log_file_path.parent.mkdir(parents=True, exist_ok=True)

            loguru_logger.add(
                log_config.file_path,
                level=log_config.level.value,
                rotation=log_config.file_rotation,
                retention=log_config.file_retention,
                compression="zip",
                encoding="utf-8"
            )

        if log_config.to_console:
            loguru_logger.add(
                sys.stdout,
                level=log_config.level.value,
                colorize=True
            )

    def get_logger(self, name):
        """获取logger实例"""
        return LoggerWrapper(loguru_logger.bind(name=name)).opt(depth=2)


# 创建全局日志管理器实例
logging_manager = LoggingManager()

# 导出logger实例（支持请求ID）
logger = logging_manager.get_logger("api")


def set_request_id(request_id: str):
    """设置当前请求的ID"""
    request_id_ctx.set(request_id)


def mask_secret(value: Optional[str], keep: int = 4) -> str:
    """脱敏：只保留首尾各 keep 位，用于 token / ticket / secret"""
    if not value:
        return "<empty>"
    if len(value) <= keep * 2:
        return "*" * len(value)
    return f"{value[:keep]}***{value[-keep:]}"


def preview(value: Optional[str], limit: int = 10) -> str:
    """截断预览，用于签名参数等非敏感但可能很长的字段"""
    if value is None:
        return "<none>"
    if len(value) <= limit:
        return value
    return f"{value[:limit]}...({len(value)})"


def fingerprint(data: bytes) -> str:
    """只记录长度和摘要，不记录内容"""
    return f"len={len(data)} sha1={hashlib.sha1(data).hexdigest()[:12]}"
