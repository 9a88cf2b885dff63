"""身份验证中间件"""
import hmac
from typing import Optional

from sanic import Request, Sanic
from sanic.response import JSONResponse

from config.settings import settings
from utils.logger import logger

SIDEBAR_KEY_HEADER = "x-wecom-sidebar-key"


class AuthMiddleware:
    """管理接口的静态密钥校验，回调与健康检查不校验"""

    def __init__(self, app: Sanic, api_key: Optional[str] = None):
        self.app = app
        self._api_key = api_key
        self.app.register_middleware(self.authenticate, "request")

    @property
    def api_key(self) -> Optional[str]:
        return self._api_key if self._api_key is not None else settings.wecom.api_key

    async def authenticate(self, request: Request) -> Optional[JSONResponse]:
        """处理请求的身份验证"""
        if self._should_skip_auth(request):
            return None

        expected = self.api_key
        if not expected:
            # 未配置密钥时不校验
            return None

        provided = self._extract_key(request)
        if not provided or not hmac.compare_digest(provided.encode("utf-8"), expected.encode("utf-8")):
            reason = "缺少认证令牌" if not provided else "认证令牌无效"
            logger.warning(f"身份验证失败: {request.method} {request.path} - {reason}")
            return JSONResponse(
                {
                    "success": False,
                    "error": "UNAUTHORIZED",
                    "message": reason
                },
                status=401
            )

        logger.debug(f"身份验证成功: {request.method} {request.path}")
        return None

    @staticmethod
    def _extract_key(request: Request) -> Optional[str]:
        auth_header = request.headers.get("authorization")
        if auth_header and auth_header.startswith("Bearer "):
            return auth_header[7:]
        return request.headers.get(SIDEBAR_KEY_HEADER)

    @staticmethod
    def _should_skip_auth(request: Request) -> bool:
        """检查是否应该跳过认证"""
        exempt_routes = [
            "/health",
            "/callback/",
        ]

        for route in exempt_routes:
            if request.path.startswith(route):
                return True

        if request.method == "OPTIONS":
            return True

        return False
