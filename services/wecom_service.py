"""企业微信服务装配"""
from typing import Optional

from adapters.qywechat import AccessTokenManager, QyWechatHttpClient, QyWechatMessageClient, TicketManager
from config.settings import WecomConfig, settings
from services.callback_service import CallbackGateway
from services.config_service import ConfigService
from services.notification_service import NotificationService
from utils.cache import MemoryTokenCache, RedisTokenCache, TokenCache
from utils.logger import logger


class WecomService:
    """持有HTTP客户端、token/ticket管理器、消息客户端与回调网关，挂在 app.ctx.wecom 上"""

    def __init__(
        self,
        wecom_config: Optional[WecomConfig] = None,
        http: Optional[QyWechatHttpClient] = None,
        cache: Optional[TokenCache] = None
    ):
        wecom = wecom_config if wecom_config is not None else settings.wecom
        self.wecom_config = wecom

        self.http = http or QyWechatHttpClient(base_url=wecom.base_url, timeout=wecom.request_timeout)
        self.cache = cache if cache is not None else create_token_cache(wecom.cache_backend)

        self.config_service = ConfigService(wecom_config)
        self.tokens = AccessTokenManager(self.http, self.cache, refresh_margin=wecom.token_refresh_margin)
        self.tickets = TicketManager(self.tokens, refresh_margin=wecom.token_refresh_margin)
        self.messages = QyWechatMessageClient(self.tokens)
        self.notifications = NotificationService(self.config_service, self.messages, wecom_config)
        self.gateway = CallbackGateway(
            decrypt_echostr=wecom.decrypt_echostr,
            timestamp_tolerance=wecom.timestamp_tolerance,
        )
        self.echostr_mode = wecom.echostr_mode

    async def close(self) -> None:
        await self.http.close()


def create_token_cache(backend: str) -> TokenCache:
    """按配置创建token缓存，多实例部署时使用redis共享"""
    if backend == "redis":
        logger.info("企业微信token缓存: redis")
        return RedisTokenCache()
    logger.info("企业微信token缓存: memory")
    return MemoryTokenCache()
