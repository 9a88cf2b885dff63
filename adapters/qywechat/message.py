"""企业微信消息发送模块"""
from typing import Any, Dict, List, Optional, Sequence, Union

from models.wecom import (
    DispatchResult,
    MarkdownMessage,
    OutboundMessage,
    PlatformConfig,
    RecipientError,
    Recipients,
    TextCardMessage,
    TextMessage,
)
from utils.exceptions import DispatchError, PlatformRequestError
from utils.logger import logger
from .token import TOKEN_INVALID_ERRCODES, AccessTokenManager

# 本地校验失败（未请求平台）
INVALID_REQUEST_ERRCODE = -2
MAX_USERS = 1000

RecipientsLike = Union[Recipients, str, Sequence[str]]


def _split(value: Optional[str]) -> List[str]:
    if not value:
        return []
    return [item for item in str(value).split("|") if item]


def _agent_id(agent_id: str) -> Union[int, str]:
    return int(agent_id) if str(agent_id).isdigit() else agent_id


class QyWechatMessageClient:
    """企业微信应用消息客户端"""

    def __init__(self, tokens: AccessTokenManager):
        """
        初始化消息客户端

        Args:
            tokens: access_token 管理器
        """
        self.tokens = tokens
        self.http = tokens.http

    async def send_text(self, config: PlatformConfig, recipients: RecipientsLike, content: str) -> DispatchResult:
        """发送文本消息"""
        return await self.dispatch_message(config, TextMessage(content=content), recipients)

    async def send_textcard(
        self,
        config: PlatformConfig,
        recipients: RecipientsLike,
        title: str,
        description: str,
        url: str,
        btntxt: Optional[str] = None
    ) -> DispatchResult:
        """发送文本卡片消息"""
        message = TextCardMessage(title=title, description=description, url=url, btntxt=btntxt)
        return await self.dispatch_message(config, message, recipients)

    async def send_markdown(self, config: PlatformConfig, recipients: RecipientsLike, content: str) -> DispatchResult:
        """发送markdown消息"""
        return await self.dispatch_message(config, MarkdownMessage(content=content), recipients)

    async def dispatch_message(
        self,
        config: PlatformConfig,
        message: OutboundMessage,
        recipients: RecipientsLike,
        safe: int = 0
    ) -> DispatchResult:
        """
        发送应用消息

        Args:
            config: 企业凭证
            message: 文本 / 文本卡片 / markdown 消息
            recipients: 接收方，userid列表、"a|b" 或 "@all"
            safe: 是否保密消息

        Returns:
            发送结果；部分接收人无效时仍返回结果，按人计数

        Raises:
            TokenAcquisitionError: 获取token失败，不会发送
            DispatchError: 参数校验失败或平台拒绝发送
        """
        targets = Recipients.of(recipients)
        self._validate(message, targets)

        data: Dict[str, Any] = {
            **targets.to_payload(),
            "msgtype": message.msgtype,
            "agentid": _agent_id(config.agent_id),
            **message.payload(),
            "safe": safe,
        }

        result = await self._send_message(config, data, targets)
        return self._account(result, targets, message.msgtype)

    def _validate(self, message: OutboundMessage, targets: Recipients) -> None:
        """本地参数校验，失败直接报错，不重试"""
        reason = None
        if targets.total == 0:
            reason = "no recipients"
        elif any("|" in item for item in targets.users + targets.parties + targets.tags):
            reason = "recipient id must not contain '|'"
        elif len(targets.users) > MAX_USERS:
            reason = f"too many recipients (max {MAX_USERS})"
        else:
            reason = message.check_limits()

        if reason:
            logger.warning(f"企业微信消息参数校验失败: {reason}")
            raise DispatchError(
                errcode=INVALID_REQUEST_ERRCODE,
                errmsg=reason,
                result=DispatchResult(success=False, sent_count=0, failed_count=targets.total),
            )

    async def _send_message(self, config: PlatformConfig, data: Dict[str, Any], targets: Recipients) -> Dict[str, Any]:
        """发送消息，token失效时强制刷新并重试一次"""
        result: Dict[str, Any] = {}
        for attempt in range(2):
            access_token = await self.tokens.get_access_token(config, force_refresh=attempt > 0)
            try:
                result = await self.http.post_json("message/send", data, params={"access_token": access_token})
            except PlatformRequestError as e:
                raise DispatchError(
                    errcode=-1,
                    errmsg=e.message,
                    result=DispatchResult(success=False, sent_count=0, failed_count=targets.total),
                    retryable=True,
                )

            errcode = result.get("errcode", 0)
            if errcode in TOKEN_INVALID_ERRCODES and attempt == 0:
                logger.warning(f"企业微信access_token失效(errcode: {errcode})，刷新后重试一次")
                await self.tokens.invalidate(config)
                continue
            break
        return result

    def _account(self, result: Dict[str, Any], targets: Recipients, msgtype: str) -> DispatchResult:
        """按平台返回的无效接收人计算成功/失败数"""
        errcode = result.get("errcode", 0)
        errmsg = result.get("errmsg", "未知错误")

        errors: List[RecipientError] = []
        seen = set()
        for field, kind, reason in (
            ("invaliduser", "user", "invalid user"),
            ("unlicenseduser", "user", "unlicensed user"),
            ("invalidparty", "party", "invalid party"),
            ("invalidtag", "tag", "invalid tag"),
        ):
            for item in _split(result.get(field)):
                if (kind, item) in seen:
                    continue
                seen.add((kind, item))
                errors.append(RecipientError(user=item, reason=reason, kind=kind))

        if errcode != 0:
            logger.error(f"企业微信消息发送失败: {errmsg} (errcode: {errcode})")
            raise DispatchError(
                errcode=errcode,
                errmsg=errmsg,
                invaliduser=result.get("invaliduser"),
                result=DispatchResult(
                    success=False,
                    sent_count=0,
                    failed_count=targets.total,
                    errors=errors,
                ),
            )

        failed = 0 if targets.to_all else min(len(errors), targets.total)
        sent = targets.total - failed
        dispatch_result = DispatchResult(
            success=sent > 0,
            sent_count=sent,
            failed_count=failed,
            errors=[] if targets.to_all else errors,
            msgid=result.get("msgid"),
        )

        if failed:
            logger.warning(f"企业微信消息部分发送失败: msgtype={msgtype} 成功{sent} 失败{failed}")
        else:
            logger.info(f"企业微信消息发送成功: msgtype={msgtype} 接收方{sent}个")
        return dispatch_result
