# -*- coding: utf-8 -*-
"""
Sanic应用配置
"""
from typing import Optional
from types import SimpleNamespace

from sanic import Sanic
from sanic.config import Config
from sanic.request import Request
from sanic.response import json
from sanic_cors import CORS
from sanic_ext import Extend

from config.settings import settings
from middleware import AuthMiddleware, ExceptionHandlerMiddleware, RequestContextMiddleware
from services.wecom_service import WecomService
from utils.cache import RedisInstanceManager
from utils.logger import logger


def create_app(wecom: Optional[WecomService] = None, name: Optional[str] = None) -> Sanic:
    """
    创建Sanic应用实例

    Args:
        wecom: 企业微信服务，默认按配置创建
        name: 应用名，测试中需要多个实例时传入
    """
    app: Sanic[Config, SimpleNamespace] = Sanic(name or settings.app.name)

    # 配置
    app.config.REQUEST_MAX_SIZE = 1024 * 1024 * 2
    app.ctx.settings = settings
    app.ctx.wecom = wecom or WecomService()

    # 扩展
    Extend(app)

    # CORS
    CORS(
        app,
        resources={r"/wecom/*": {"origins": "*"}},
        supports_credentials=True,
    )

    # 中间件
    RequestContextMiddleware(app)

    # 身份验证中间件
    AuthMiddleware(app, api_key=app.ctx.wecom.wecom_config.api_key)

    # 异常处理
    ExceptionHandlerMiddleware(app)

    # 注册路由
    register_routes(app)

    # 资源清理
    setup_cleanup(app)

    return app


def register_routes(app: Sanic):
    """注册路由"""

    # 健康检查
    @app.route("/health")
    async def health_check(request: Request):
        """健康检查"""
        return json({"status": "ok", "service": "wecom-gateway"})

    # 注册业务路由
    from api.routes.callback import callback_bp
    from api.routes.wecom import wecom_bp
    app.blueprint(callback_bp)
    app.blueprint(wecom_bp)


def setup_cleanup(app: Sanic):
    """关闭HTTP会话与Redis连接"""

    @app.after_server_stop
    async def cleanup(app: Sanic, loop):
        await app.ctx.wecom.close()
        if app.ctx.wecom.wecom_config.cache_backend == "redis":
            await RedisInstanceManager.close_all()
        logger.info("✅ 企业微信网关资源已清理")
