"""企业微信 JS-SDK 票据与签名配置"""
import secrets
import time
from typing import Any, Callable, Dict, Optional
from urllib.parse import urldefrag

from models.wecom import PlatformConfig
from utils.cache import TokenCache
from utils.exceptions import PlatformRequestError, TicketAcquisitionError
from utils.logger import logger, mask_secret
from .signature import sign_jsapi
from .token import TOKEN_INVALID_ERRCODES, AccessTokenManager, CachedCredentialStore


class TicketManager(CachedCredentialStore):
    """jsapi_ticket / 应用 ticket 管理，缓存与并发合并方式同 access_token"""

    def __init__(
        self,
        tokens: AccessTokenManager,
        cache: Optional[TokenCache] = None,
        refresh_margin: int = 300,
        clock: Callable[[], float] = time.time
    ):
        super().__init__(cache=cache if cache is not None else tokens.cache, refresh_margin=refresh_margin, clock=clock)
        self.tokens = tokens
        self.http = tokens.http

    async def get_jsapi_ticket(self, config: PlatformConfig) -> str:
        """企业 jsapi_ticket，用于 wx.config"""
        return await self._get(config, "jsapi", "get_jsapi_ticket", {})

    async def get_agent_ticket(self, config: PlatformConfig) -> str:
        """应用 jsapi_ticket，用于 wx.agentConfig"""
        return await self._get(config, "agent", "ticket/get", {"type": "agent_config"})

    async def _get(self, config: PlatformConfig, kind: str, path: str, params: Dict[str, str]) -> str:
        key = f"wecom:{kind}_ticket:{config.corp_id}:{config.agent_id}"
        cached = await self._read(key)
        if cached is not None:
            return cached.value
        return await self._flight.do(key, lambda: self._fetch(config, key, path, params))

    async def _fetch(self, config: PlatformConfig, key: str, path: str, params: Dict[str, str]) -> str:
        force_refresh = False
        for attempt in range(2):
            access_token = await self.tokens.get_access_token(config, force_refresh=force_refresh)
            try:
                data = await self.http.get_json(path, params={"access_token": access_token, **params})
            except PlatformRequestError as e:
                raise TicketAcquisitionError(errcode=-1, errmsg=e.message, retryable=True)

            errcode = data.get("errcode", 0)
            ticket = data.get("ticket")
            if errcode == 0 and ticket:
                expires_in = int(data.get("expires_in") or 7200)
                await self._store(key, ticket, expires_in)
                logger.info(f"获取企业微信ticket成功: {path} ticket={mask_secret(ticket)}")
                return ticket

            errmsg = data.get("errmsg", "未知错误")
            if errcode in TOKEN_INVALID_ERRCODES and attempt == 0:
                logger.warning(f"获取ticket时access_token失效(errcode: {errcode})，刷新后重试一次")
                await self.tokens.invalidate(config)
                force_refresh = True
                continue

            logger.error(f"获取企业微信ticket失败: {path} {errmsg} (errcode: {errcode})")
            raise TicketAcquisitionError(errcode=errcode or -1, errmsg=errmsg)

        raise TicketAcquisitionError(errcode=-1, errmsg="unreachable")


def normalize_url(raw: str) -> str:
    """签名用的URL不包含 # 及其后部分"""
    return urldefrag(raw.strip())[0]


def _signed(ticket: str, url: str) -> Dict[str, Any]:
    timestamp = str(int(time.time()))
    nonce_str = secrets.token_hex(8)
    return {
        "timestamp": timestamp,
        "nonce_str": nonce_str,
        "signature": sign_jsapi(ticket, nonce_str, timestamp, url),
    }


async def build_jssdk_config(tickets: TicketManager, config: PlatformConfig, url: str) -> Dict[str, Any]:
    """
    生成前端 wx.config / wx.agentConfig 所需参数

    Args:
        tickets: 票据管理器
        config: 企业凭证
        url: 当前页面URL

    Returns:
        包含两套签名的配置字典
    """
    url = normalize_url(url)
    jsapi_ticket = await tickets.get_jsapi_ticket(config)
    try:
        agent_ticket = await tickets.get_agent_ticket(config)
    except TicketAcquisitionError as e:
        # 应用ticket获取失败时退回企业ticket，侧边栏仍可完成 wx.config
        logger.warning(f"获取应用ticket失败，使用企业ticket代替: errcode={e.errcode}")
        agent_ticket = jsapi_ticket

    return {
        "corp_id": config.corp_id,
        "agent_id": config.agent_id,
        "url": url,
        "config": _signed(jsapi_ticket, url),
        "agent_config": _signed(agent_ticket, url),
    }
