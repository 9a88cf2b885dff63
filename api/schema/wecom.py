"""企业微信管理接口的请求模型"""
from typing import List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator

from models.wecom import MarkdownMessage, OutboundMessage, TextCardMessage, TextMessage


class SendMessageRequest(BaseModel):
    """发送应用消息"""
    msgtype: Literal["text", "textcard", "markdown"] = Field(default="text", description="消息类型")
    recipients: Union[str, List[str]] = Field(..., description='接收人，"a|b"、列表或 "@all"')
    content: Optional[str] = Field(default=None, description="text/markdown 消息内容")
    title: Optional[str] = Field(default=None, description="卡片标题")
    description: Optional[str] = Field(default=None, description="卡片描述")
    url: Optional[str] = Field(default=None, description="卡片跳转链接")
    btntxt: Optional[str] = Field(default=None, description="卡片按钮文字")
    safe: int = Field(default=0, ge=0, le=1, description="是否保密消息")

    @model_validator(mode="after")
    def check_fields(self) -> "SendMessageRequest":
        if self.msgtype == "textcard":
            if not (self.title and self.description and self.url):
                raise ValueError("textcard 需要 title、description、url")
        elif not self.content:
            raise ValueError(f"{self.msgtype} 需要 content")
        return self

    def to_message(self) -> OutboundMessage:
        if self.msgtype == "textcard":
            return TextCardMessage(title=self.title, description=self.description, url=self.url, btntxt=self.btntxt)
        if self.msgtype == "markdown":
            return MarkdownMessage(content=self.content)
        return TextMessage(content=self.content)


class MemberRecord(BaseModel):
    """会员登记记录"""
    model_config = ConfigDict(extra="allow")

    member_no: str
    nickname: Optional[str] = None
    wechat: Optional[str] = None
    phone: Optional[str] = None
    gender: Optional[str] = None
    birth_year: Optional[Union[int, str]] = None
    height: Optional[Union[int, float, str]] = None
    weight: Optional[Union[int, float, str]] = None
    province: Optional[str] = None
    city: Optional[str] = None
    district: Optional[str] = None
    type: Optional[str] = None
    created_at: Optional[str] = None


class MemberNotificationRequest(BaseModel):
    """会员登记通知"""
    member: MemberRecord
    recipients: Optional[str] = Field(default=None, description="接收人，默认取配置")
    message_type: Optional[Literal["text", "textcard", "markdown"]] = Field(default=None, description="消息类型，默认取配置")
