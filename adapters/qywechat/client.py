"""企业微信API的HTTP客户端"""
import asyncio
from typing import Any, Dict, Optional

import aiohttp

from utils.exceptions import PlatformRequestError
from utils.logger import logger

DEFAULT_BASE_URL = "https://qyapi.weixin.qq.com/cgi-bin"


class QyWechatHttpClient:
    """企业微信HTTP客户端，所有外呼都带超时"""

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 10.0,
        session: Optional[aiohttp.ClientSession] = None
    ):
        """
        初始化HTTP客户端

        Args:
            base_url: API地址
            timeout: 单次请求的总超时(秒)
            session: 外部传入的会话，传入时由调用方负责关闭
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        self._session = session
        self._owns_session = session is None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self.timeout)
            self._owns_session = True
        return self._session

    async def get_json(self, path: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """GET 请求并解析JSON"""
        return await self._request("GET", path, params=params)

    async def post_json(
        self,
        path: str,
        payload: Dict[str, Any],
        params: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """POST JSON 请求并解析JSON"""
        return await self._request("POST", path, params=params, json=payload)

    async def _request(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        url = f"{self.base_url}/{path.lstrip('/')}"
        try:
            session = self._get_session()
            async with session.request(method, url, timeout=self.timeout, **kwargs) as response:
                if response.status != 200:
                    logger.error(f"企业微信API返回异常状态: {method} /{path.lstrip('/')} status={response.status}")
                    raise PlatformRequestError(f"HTTP {response.status}")
                # 平台偶尔返回 text/plain 的 JSON
                data = await response.json(content_type=None)
        except asyncio.TimeoutError:
            logger.error(f"请求企业微信API超时: {method} /{path.lstrip('/')}")
            raise PlatformRequestError("request timed out", timeout=True)
        except aiohttp.ClientError as e:
            logger.error(f"请求企业微信API失败: {method} /{path.lstrip('/')} - {e}")
            raise PlatformRequestError(f"network error: {e.__class__.__name__}")
        except ValueError:
            logger.error(f"企业微信API返回的不是JSON: {method} /{path.lstrip('/')}")
            raise PlatformRequestError("invalid json response")

        if not isinstance(data, dict):
            raise PlatformRequestError("invalid json response")
        return data

    async def close(self):
        """关闭客户端"""
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()
        if self._owns_session:
            self._session = None

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
