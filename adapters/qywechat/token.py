"""企业微信Token管理模块"""
import hashlib
import time
from typing import Callable, Optional

from pydantic import ValidationError

from models.wecom import AccessToken, PlatformConfig
from utils.cache import MemoryTokenCache, SingleFlight, TokenCache
from utils.exceptions import PlatformRequestError, TokenAcquisitionError
from utils.logger import logger, mask_secret
from .client import QyWechatHttpClient

# access_token 无效/过期，需要强制刷新
TOKEN_INVALID_ERRCODES = frozenset({40001, 40014, 42001})


class CachedCredentialStore:
    """access_token / jsapi_ticket 共用的缓存读写"""

    def __init__(
        self,
        cache: Optional[TokenCache] = None,
        refresh_margin: int = 300,
        clock: Callable[[], float] = time.time
    ):
        self.cache: TokenCache = cache if cache is not None else MemoryTokenCache(clock)
        self.refresh_margin = refresh_margin
        self._clock = clock
        self._flight = SingleFlight()

    async def _read(self, key: str) -> Optional[AccessToken]:
        try:
            raw = await self.cache.get(key)
        except Exception as e:
            logger.error(f"读取缓存失败，按未命中处理: {key} - {e}")
            return None
        if not raw:
            return None
        try:
            credential = AccessToken.model_validate_json(raw)
        except ValidationError:
            logger.warning(f"缓存内容无法解析，丢弃: {key}")
            await self._drop(key)
            return None
        if credential.is_fresh(self.refresh_margin, self._clock()):
            return credential
        return None

    async def _store(self, key: str, value: str, expires_in: int) -> AccessToken:
        credential = AccessToken(value=value, expires_at=self._clock() + expires_in)
        try:
            await self.cache.set_with_ttl(key, credential.model_dump_json(), expires_in)
        except Exception as e:
            logger.error(f"写入缓存失败: {key} - {e}")
        return credential

    async def _drop(self, key: str) -> None:
        try:
            await self.cache.delete(key)
        except Exception as e:
            logger.error(f"删除缓存失败: {key} - {e}")


class AccessTokenManager(CachedCredentialStore):
    """access_token 管理：按企业缓存，提前刷新，同一企业的并发请求只发一次"""

    def __init__(
        self,
        http: QyWechatHttpClient,
        cache: Optional[TokenCache] = None,
        refresh_margin: int = 300,
        clock: Callable[[], float] = time.time
    ):
        super().__init__(cache=cache, refresh_margin=refresh_margin, clock=clock)
        self.http = http

    @staticmethod
    def cache_key(config: PlatformConfig) -> str:
        # 带上secret摘要：secret轮换后自动换key，旧token不再被使用
        digest = hashlib.sha1(config.secret.encode("utf-8")).hexdigest()[:8]
        return f"wecom:access_token:{config.corp_id}:{digest}"

    async def get_access_token(self, config: PlatformConfig, force_refresh: bool = False) -> str:
        """
        获取企业微信access_token

        Args:
            config: 企业凭证
            force_refresh: 跳过缓存直接向平台获取

        Returns:
            access_token字符串

        Raises:
            TokenAcquisitionError: 平台拒绝或网络失败，失败结果不缓存
        """
        key = self.cache_key(config)
        if not force_refresh:
            cached = await self._read(key)
            if cached is not None:
                return cached.value

        return await self._flight.do(key, lambda: self._fetch(config, key))

    async def invalidate(self, config: PlatformConfig) -> None:
        """丢弃缓存的token，下次获取会重新请求"""
        await self._drop(self.cache_key(config))
        logger.info(f"已作废企业微信access_token缓存: corp_id={config.corp_id}")

    async def _fetch(self, config: PlatformConfig, key: str) -> str:
        params = {"corpid": config.corp_id, "corpsecret": config.secret}
        try:
            data = await self.http.get_json("gettoken", params=params)
        except PlatformRequestError as e:
            raise TokenAcquisitionError(errcode=-1, errmsg=e.message, retryable=True)

        errcode = data.get("errcode", 0)
        access_token = data.get("access_token")
        if errcode != 0 or not access_token:
            errmsg = data.get("errmsg", "未知错误")
            logger.error(f"获取企业微信access_token失败: {errmsg} (errcode: {errcode})")
            # -1 为平台繁忙
            raise TokenAcquisitionError(errcode=errcode or -1, errmsg=errmsg, retryable=errcode == -1)

        expires_in = int(data.get("expires_in") or 7200)
        await self._store(key, access_token, expires_in)
        logger.info(f"获取企业微信access_token成功，有效期: {expires_in}秒 token={mask_secret(access_token)}")
        return access_token
