"""请求上下文中间件"""
import re
import time
import uuid

from sanic import Sanic
from sanic.request import Request
from sanic.response import BaseHTTPResponse

from utils.logger import logger, set_request_id

REQUEST_ID_PATTERN = re.compile(r"[A-Za-z0-9-]{1,64}")


class RequestContextMiddleware:
    """请求上下文中间件：生成请求ID并记录耗时"""

    def __init__(self, app: Sanic):
        self.app = app
        self.app.register_middleware(self.add_request_context, "request")
        self.app.register_middleware(self.log_response, "response")

    async def add_request_context(self, request: Request) -> None:
        """添加请求上下文"""
        forwarded = request.headers.get("X-Forwarded-For", "")
        user_ip = request.headers.get("X-Real-IP") or forwarded.split(",")[0].strip() or "0.0.0.0"

        # 平台重试时不会带请求ID；外部传入的ID只接受字母数字和"-"，否则重新生成
        request_id = request.headers.get("X-Request-ID", "")
        if not REQUEST_ID_PATTERN.fullmatch(request_id):
            request_id = uuid.uuid4().hex
        request.ctx.request_id = request_id
        request.ctx.start_time = time.time()
        request.ctx.user_ip = user_ip

        set_request_id(request_id)

        # 查询串中含签名参数，只记录路径
        logger.info(f"{request.method} {request.path} - IP: {user_ip}")

    async def log_response(self, request: Request, response: BaseHTTPResponse) -> None:
        """记录响应日志"""
        if not hasattr(request.ctx, "start_time"):
            return

        response.headers["X-Request-ID"] = request.ctx.request_id
        cost = time.time() - request.ctx.start_time
        logger.info(f"完成 | 耗时: {cost:.3f}s | 状态: {response.status}")
