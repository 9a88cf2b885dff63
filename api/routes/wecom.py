"""企业微信管理API路由"""
from pydantic import ValidationError
from sanic import Blueprint, Request
from sanic.response import json

from adapters.qywechat import build_jssdk_config
from api.schema.base import BaseResponse, ErrorCode, ErrorMessage
from api.schema.wecom import MemberNotificationRequest, SendMessageRequest
from services.wecom_service import WecomService
from utils.logger import logger

# 创建蓝图
wecom_bp = Blueprint("wecom", url_prefix="/wecom")


def _validation_failed(e: ValidationError):
    logger.error(f"参数验证失败: {e}")
    return json(BaseResponse(
        code=ErrorCode.VALIDATION_ERROR,
        message=ErrorMessage.VALIDATION_ERROR,
        data={"detail": e.errors(include_url=False, include_context=False)}
    ).model_dump(), status=400)


@wecom_bp.post("/messages")
async def send_message(request: Request):
    """发送应用消息"""
    try:
        body = SendMessageRequest.model_validate(request.json or {})
    except ValidationError as e:
        return _validation_failed(e)

    wecom: WecomService = request.app.ctx.wecom
    config = await wecom.config_service.get_platform_config()
    result = await wecom.messages.dispatch_message(config, body.to_message(), body.recipients, safe=body.safe)

    return json(BaseResponse(
        code=ErrorCode.SUCCESS,
        message=ErrorMessage.NOTIFICATION_SENT,
        data=result.model_dump()
    ).model_dump())


@wecom_bp.get("/js-sdk-config")
async def js_sdk_config(request: Request):
    """生成侧边栏 wx.config / wx.agentConfig 参数"""
    url = request.args.get("url") or request.headers.get("referer")
    if not url:
        return json(BaseResponse(
            code=ErrorCode.BAD_REQUEST,
            message=ErrorMessage.BAD_REQUEST,
            data={"detail": "缺少url参数"}
        ).model_dump(), status=400)

    wecom: WecomService = request.app.ctx.wecom
    config = await wecom.config_service.get_platform_config()
    data = await build_jssdk_config(wecom.tickets, config, url)

    return json(BaseResponse(code=ErrorCode.SUCCESS, message=ErrorMessage.SUCCESS, data=data).model_dump())


@wecom_bp.post("/notifications/member")
async def notify_member_registration(request: Request):
    """发送会员登记通知"""
    try:
        body = MemberNotificationRequest.model_validate(request.json or {})
    except ValidationError as e:
        return _validation_failed(e)

    wecom: WecomService = request.app.ctx.wecom
    result = await wecom.notifications.notify_member_registration(
        body.member.model_dump(),
        recipients=body.recipients,
        message_type=body.message_type,
    )

    return json(BaseResponse(
        code=ErrorCode.SUCCESS,
        message=ErrorMessage.NOTIFICATION_SENT if result else "会员登记通知已禁用",
        data=result.model_dump() if result else None
    ).model_dump())
