"""
回调API路由

处理企业微信的回调URL验证与加密消息推送
"""
from typing import Dict
from urllib.parse import unquote

from sanic import Blueprint, Request
from sanic.response import HTTPResponse, json, text

from services.callback_service import CALLBACK_PARAMS, VERIFY_PARAMS
from services.wecom_service import WecomService
from utils.exceptions import CallbackRejected, ConfigurationException, MissingParameterError
from utils.logger import logger, preview

callback_bp = Blueprint('callback', url_prefix='/callback')

QUERY_PARAMS = ("msg_signature", "timestamp", "nonce", "echostr")


def _query_params(request: Request, raw: bool) -> Dict[str, str]:
    """
    提取回调查询参数

    raw 模式直接解析原始查询串，只做百分号解码，保留 echostr 中的 "+"
    """
    if not raw:
        return {name: request.args.get(name, '') for name in QUERY_PARAMS}

    params: Dict[str, str] = {}
    for pair in request.query_string.split('&'):
        name, _, value = pair.partition('=')
        if name in QUERY_PARAMS and name not in params:
            params[name] = unquote(value)
    return params


def _rejected(exc: CallbackRejected) -> HTTPResponse:
    error = "missing parameters" if isinstance(exc, MissingParameterError) else "verification failed"
    return json({"success": False, "error": error, "code": exc.status}, status=exc.status)


def _not_configured() -> HTTPResponse:
    return json({"success": False, "error": "Service configuration not found", "code": 500}, status=500)


@callback_bp.get('/wecom')
async def wecom_verify_url(request: Request):
    """
    企业微信URL验证

    Query Params:
        msg_signature: 企业微信生成的签名
        timestamp: 时间戳
        nonce: 随机字符串
        echostr: 验证字符串

    Returns:
        200 text/plain 原样返回echostr；400 缺少参数；403 验证失败
    """
    wecom: WecomService = request.app.ctx.wecom
    params = _query_params(request, raw=wecom.echostr_mode == "raw")
    logger.info(
        f"wecom_verify_url timestamp={params.get('timestamp')} "
        f"nonce={preview(params.get('nonce'), 8)} echostr={preview(params.get('echostr'))}"
    )

    try:
        wecom.gateway.require_params(params, VERIFY_PARAMS)
        config = await wecom.config_service.get_platform_config()
        echo = wecom.gateway.verify_url(config, params)
    except ConfigurationException:
        return _not_configured()
    except CallbackRejected as e:
        logger.warning(f"URL verification rejected: {e.message}")
        return _rejected(e)

    return text(echo, content_type="text/plain")


@callback_bp.post('/wecom')
async def wecom_receive_message(request: Request):
    """
    接收企业微信加密消息

    Returns:
        200 空响应或加密被动回复；400 缺少参数；403 验签/解密/企业ID校验失败
    """
    wecom: WecomService = request.app.ctx.wecom
    params = _query_params(request, raw=False)
    body = request.body.decode('utf-8', errors='replace') if request.body else ''

    try:
        wecom.gateway.require_params(params, CALLBACK_PARAMS)
        config = await wecom.config_service.get_platform_config()
        reply = await wecom.gateway.handle_callback(config, params, body)
    except ConfigurationException:
        return _not_configured()
    except CallbackRejected as e:
        logger.warning(f"Callback rejected: {e.message}")
        return _rejected(e)

    if reply:
        return text(reply, content_type="application/xml")
    return text('', content_type="text/plain")
