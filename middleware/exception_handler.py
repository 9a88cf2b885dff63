"""异常处理中间件"""
import traceback

from sanic import Sanic
from sanic.exceptions import NotFound, SanicException
from sanic.request import Request
from sanic.response import HTTPResponse, json

from api.schema.base import BaseResponse, ErrorCode, ErrorMessage
from utils.exceptions import (
    BusinessException,
    ConfigurationException,
    DispatchError,
    TicketAcquisitionError,
    TokenAcquisitionError,
)
from utils.logger import logger


class ExceptionHandlerMiddleware:
    """异常处理中间件"""

    def __init__(self, app: Sanic):
        self.app = app
        self.setup_exception_handlers(app)

    def setup_exception_handlers(self, app: Sanic):
        """设置异常处理"""

        @app.exception(NotFound)
        async def not_found_handler(request: Request, exc: NotFound) -> HTTPResponse:
            """404处理"""
            return json(
                BaseResponse(
                    code=ErrorCode.NOT_FOUND,
                    message=ErrorMessage.NOT_FOUND
                ).model_dump(),
                status=404
            )

        @app.exception(Exception)
        async def global_exception_handler(request: Request, exc: Exception):
            """全局异常处理"""
            # 企业微信外呼失败：只返回通用提示，细节写日志
            if isinstance(exc, (TokenAcquisitionError, TicketAcquisitionError, DispatchError)):
                logger.error(f"企业微信调用失败: {exc.message} - {exc.details}")
                message = ErrorMessage.JSSDK_CONFIG_FAILED if isinstance(exc, TicketAcquisitionError) \
                    else ErrorMessage.NOTIFICATION_FAILED
                data = None
                if isinstance(exc, DispatchError) and exc.result is not None:
                    data = {"sent_count": exc.result.sent_count, "failed_count": exc.result.failed_count}
                return json(
                    BaseResponse(code=exc.code, message=message, data=data).model_dump(),
                    status=502
                )

            if isinstance(exc, ConfigurationException):
                logger.error(f"配置异常: {exc.message}")
                return json(
                    BaseResponse(
                        code=exc.code,
                        message=ErrorMessage.WECOM_NOT_CONFIGURED
                    ).model_dump(),
                    status=503
                )

            # 业务异常处理
            if isinstance(exc, BusinessException):
                logger.warning(f"业务异常: {exc.message} - {exc.details}")

                status = 400
                if exc.code >= 500:
                    status = 500
                elif exc.code == 404:
                    status = 404

                return json(
                    BaseResponse(
                        code=exc.code,
                        message=exc.message,
                        data=exc.details if exc.details else None
                    ).model_dump(),
                    status=status
                )

            # 框架异常（如请求体不是合法JSON）沿用其状态码
            if isinstance(exc, SanicException) and exc.status_code < 500:
                logger.warning(f"请求异常: {request.method} {request.path} - {exc}")
                return json(
                    BaseResponse(
                        code=exc.status_code,
                        message=ErrorMessage.BAD_REQUEST
                    ).model_dump(),
                    status=exc.status_code
                )

            # 系统异常处理
            logger.error(f"系统异常: {exc}\n{traceback.format_exc()}")
            return json(
                BaseResponse(
                    code=ErrorCode.INTERNAL_ERROR,
                    message=ErrorMessage.INTERNAL_ERROR
                ).model_dump(),
                status=500
            )
