"""会员登记通知服务"""
from datetime import datetime
from typing import Any, Dict, Optional, Union
from zoneinfo import ZoneInfo

from adapters.qywechat import QyWechatMessageClient
from config.settings import WecomConfig, settings
from models.wecom import DispatchResult, MarkdownMessage, OutboundMessage, TextCardMessage, TextMessage
from services.config_service import ConfigService
from utils.logger import logger

SHANGHAI = ZoneInfo("Asia/Shanghai")
NOT_FILLED = "未填写"

GENDER_TEXT = {"male": "男", "female": "女"}
MEMBER_TYPE_TEXT = {"NORMAL": "普通会员", "ONE_TIME": "一次性会员", "ANNUAL": "年费会员"}


def _or_default(value: Any, suffix: str = "") -> str:
    return f"{value}{suffix}" if value else NOT_FILLED


def _format_time(value: Union[str, datetime, None], with_seconds: bool = True) -> str:
    if value is None:
        moment = datetime.now(SHANGHAI)
    elif isinstance(value, datetime):
        moment = value
    else:
        try:
            moment = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        except ValueError:
            return str(value)
    if moment.tzinfo is not None:
        moment = moment.astimezone(SHANGHAI)
    return moment.strftime("%Y/%m/%d %H:%M:%S" if with_seconds else "%Y/%m/%d %H:%M")


def _member_fields(member: Dict[str, Any]) -> Dict[str, str]:
    return {
        "member_no": str(member.get("member_no", "")),
        "nickname": _or_default(member.get("nickname")),
        "wechat": _or_default(member.get("wechat")),
        "phone": _or_default(member.get("phone")),
        "gender": GENDER_TEXT.get(member.get("gender"), "未知"),
        "birth_year": _or_default(member.get("birth_year")),
        "height": _or_default(member.get("height"), "cm"),
        "weight": _or_default(member.get("weight"), "kg"),
        "region": "".join(member.get(key) or "" for key in ("province", "city", "district")),
        "type": MEMBER_TYPE_TEXT.get(member.get("type"), "其他"),
    }


def format_member_text(member: Dict[str, Any]) -> str:
    """格式化会员信息为文本消息"""
    f = _member_fields(member)
    return (
        "🎉 新会员登记通知\n\n"
        "📋 会员信息：\n"
        f"• 会员编号：{f['member_no']}\n"
        f"• 昵称：{f['nickname']}\n"
        f"• 微信号：{f['wechat']}\n"
        f"• 手机号：{f['phone']}\n"
        f"• 性别：{f['gender']}\n"
        f"• 出生年份：{f['birth_year']}\n"
        f"• 身高：{f['height']}\n"
        f"• 体重：{f['weight']}\n"
        f"• 地区：{f['region']}\n"
        f"• 会员类型：{f['type']}\n\n"
        f"⏰ 登记时间：{_format_time(member.get('created_at'))}\n\n"
        "请及时跟进新会员的后续服务工作。"
    )


def format_member_card(member: Dict[str, Any], site_url: str) -> TextCardMessage:
    """格式化会员信息为卡片消息"""
    f = _member_fields(member)
    description = (
        f"会员编号：{f['member_no']}\n"
        f"昵称：{f['nickname']}\n"
        f"性别：{f['gender']} | {f['type']}\n"
        f"地区：{f['region']}\n"
        f"登记时间：{_format_time(member.get('created_at'), with_seconds=False)}"
    )
    return TextCardMessage(
        title="🎉 新会员登记通知",
        description=description,
        url=f"{site_url.rstrip('/')}/members/{f['member_no']}",
        btntxt="查看详情",
    )


def format_member_markdown(member: Dict[str, Any]) -> str:
    """格式化会员信息为Markdown消息"""
    f = _member_fields(member)
    return (
        "# 🎉 新会员登记通知\n\n"
        "## 📋 会员信息\n"
        f"- **会员编号**：{f['member_no']}\n"
        f"- **昵称**：{f['nickname']}\n"
        f"- **微信号**：{f['wechat']}\n"
        f"- **手机号**：{f['phone']}\n"
        f"- **性别**：{f['gender']}\n"
        f"- **出生年份**：{f['birth_year']}\n"
        f"- **身高**：{f['height']}\n"
        f"- **体重**：{f['weight']}\n"
        f"- **地区**：{f['region']}\n"
        f"- **会员类型**：{f['type']}\n\n"
        "## ⏰ 登记时间\n"
        f"{_format_time(member.get('created_at'), with_seconds=False)}\n\n"
        "**请及时跟进新会员的后续服务工作。**"
    )


class NotificationService:
    """会员登记通知"""

    def __init__(
        self,
        config_service: ConfigService,
        messages: QyWechatMessageClient,
        wecom_config: Optional[WecomConfig] = None
    ):
        self.config_service = config_service
        self.messages = messages
        self._wecom_config = wecom_config

    @property
    def wecom_config(self) -> WecomConfig:
        return self._wecom_config if self._wecom_config is not None else settings.wecom

    def build_message(self, member: Dict[str, Any], message_type: Optional[str] = None) -> OutboundMessage:
        """按消息类型生成通知内容，未知类型按文本卡片处理"""
        message_type = message_type or self.wecom_config.message_type
        if message_type == "text":
            return TextMessage(content=format_member_text(member))
        if message_type == "markdown":
            return MarkdownMessage(content=format_member_markdown(member))
        return format_member_card(member, self.wecom_config.site_url)

    async def notify_member_registration(
        self,
        member: Dict[str, Any],
        recipients: Optional[str] = None,
        message_type: Optional[str] = None
    ) -> Optional[DispatchResult]:
        """
        发送会员登记通知

        Args:
            member: 会员记录
            recipients: 接收人，默认取配置
            message_type: text / textcard / markdown，默认取配置

        Returns:
            发送结果；通知被关闭时返回 None

        Raises:
            ConfigurationException / TokenAcquisitionError / DispatchError
        """
        if not self.wecom_config.member_notification_enabled:
            logger.info("会员登记通知已禁用，跳过")
            return None

        logger.info(f"开始发送会员登记通知: member_no={member.get('member_no')}")
        config = await self.config_service.get_platform_config()
        message = self.build_message(member, message_type)
        result = await self.messages.dispatch_message(
            config,
            message,
            recipients or self.wecom_config.notification_recipients,
        )
        logger.info(f"会员登记通知发送完成: 成功{result.sent_count} 失败{result.failed_count}")
        return result
