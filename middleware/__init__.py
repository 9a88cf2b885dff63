"""中间件：请求上下文、管理接口鉴权、异常到HTTP响应的映射"""
from .auth import AuthMiddleware
from .request_context import RequestContextMiddleware
from .exception_handler import ExceptionHandlerMiddleware

__all__ = [
    "AuthMiddleware",
    "RequestContextMiddleware",
    "ExceptionHandlerMiddleware",
]
