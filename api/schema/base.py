"""API基础响应模型"""
from pydantic import BaseModel
from typing import Any, Optional


class BaseResponse(BaseModel):
    """基础响应"""
    code: int = 0
    message: str = "success"
    data: Optional[Any] = None


# 错误码定义
class ErrorCode:
    """错误码常量"""
    # 成功
    SUCCESS = 0

    # 客户端错误 (400-499)
    BAD_REQUEST = 400
    UNAUTHORIZED = 401
    FORBIDDEN = 403
    NOT_FOUND = 404
    METHOD_NOT_ALLOWED = 405
    VALIDATION_ERROR = 422

    # 服务器错误 (500-599)
    INTERNAL_ERROR = 500
    BAD_GATEWAY = 502
    SERVICE_UNAVAILABLE = 503
    GATEWAY_TIMEOUT = 504

    # 业务错误 (600+)
    WECOM_TOKEN_FAILED = 610
    WECOM_TICKET_FAILED = 611
    WECOM_DISPATCH_FAILED = 612
    WECOM_NOT_CONFIGURED = 613


# 错误消息定义
class ErrorMessage:
    """错误消息常量"""
    # 通用消息
    SUCCESS = "success"
    BAD_REQUEST = "参数错误"
    UNAUTHORIZED = "未授权"
    FORBIDDEN = "禁止访问"
    NOT_FOUND = "资源不存在"
    INTERNAL_ERROR = "服务器错误"
    SERVICE_UNAVAILABLE = "服务不可用"
    VALIDATION_ERROR = "参数验证失败"

    # 企业微信
    NOTIFICATION_SENT = "通知发送成功"
    NOTIFICATION_FAILED = "通知发送失败"
    JSSDK_CONFIG_FAILED = "生成企业微信JS-SDK配置失败"
    WECOM_NOT_CONFIGURED = "企业微信配置不完整"
    VERIFICATION_FAILED = "verification failed"
