"""企业微信网关相关数据模型"""
import time
from dataclasses import dataclass
from typing import Annotated, Any, Dict, List, Literal, Optional, Sequence, Union

from pydantic import BaseModel, ConfigDict, Field


class PlatformConfig(BaseModel):
    """一个企业(租户)在企业微信侧的凭证，单次请求内只读"""
    model_config = ConfigDict(frozen=True)

    corp_id: str
    agent_id: str
    secret: str
    token: str
    encoding_aes_key: str


class AccessToken(BaseModel):
    """access_token 及其绝对过期时间(unix秒)"""
    value: str
    expires_at: float

    def is_fresh(self, margin: float = 0, now: Optional[float] = None) -> bool:
        now = time.time() if now is None else now
        return now < self.expires_at - margin


class VerificationRequest(BaseModel):
    """一次回调请求里参与验签的四元组"""
    signature: str
    timestamp: str
    nonce: str
    echo_or_body: str


@dataclass(frozen=True)
class DecryptedEnvelope:
    """解密后的明文结构：[16字节随机串][4字节网络序长度][消息][企业ID]"""
    random_padding: bytes
    message_length: int
    message: bytes
    corp_id: str

    @property
    def text(self) -> str:
        return self.message.decode("utf-8")


# ==================================
# 出站消息
# ==================================
def _byte_len(value: Optional[str]) -> int:
    return len(value.encode("utf-8")) if value else 0


class TextMessage(BaseModel):
    """文本消息"""
    msgtype: Literal["text"] = "text"
    content: str

    def payload(self) -> Dict[str, Any]:
        return {"text": {"content": self.content}}

    def check_limits(self) -> Optional[str]:
        if not self.content:
            return "text content is empty"
        if _byte_len(self.content) > 2048:
            return "text content exceeds 2048 bytes"
        return None


class TextCardMessage(BaseModel):
    """文本卡片消息"""
    msgtype: Literal["textcard"] = "textcard"
    title: str
    description: str
    url: str
    btntxt: Optional[str] = None

    def payload(self) -> Dict[str, Any]:
        card = {"title": self.title, "description": self.description, "url": self.url}
        if self.btntxt:
            card["btntxt"] = self.btntxt
        return {"textcard": card}

    def check_limits(self) -> Optional[str]:
        if not self.title or not self.description or not self.url:
            return "textcard requires title, description and url"
        if _byte_len(self.title) > 128:
            return "textcard title exceeds 128 bytes"
        if _byte_len(self.description) > 512:
            return "textcard description exceeds 512 bytes"
        if _byte_len(self.url) > 2048:
            return "textcard url exceeds 2048 bytes"
        if self.btntxt and len(self.btntxt) > 4:
            return "textcard btntxt exceeds 4 characters"
        return None


class MarkdownMessage(BaseModel):
    """markdown消息"""
    msgtype: Literal["markdown"] = "markdown"
    content: str

    def payload(self) -> Dict[str, Any]:
        return {"markdown": {"content": self.content}}

    def check_limits(self) -> Optional[str]:
        if not self.content:
            return "markdown content is empty"
        if _byte_len(self.content) > 2048:
            return "markdown content exceeds 2048 bytes"
        return None


OutboundMessage = Annotated[
    Union[TextMessage, TextCardMessage, MarkdownMessage],
    Field(discriminator="msgtype")
]


BROADCAST = "@all"


class Recipients(BaseModel):
    """消息接收方：成员 / 部门 / 标签，或全员广播"""
    users: List[str] = Field(default_factory=list)
    parties: List[str] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)
    to_all: bool = False

    @classmethod
    def of(cls, value: Union["Recipients", str, Sequence[str]]) -> "Recipients":
        """接受 Recipients、"a|b" 字符串或 userid 列表"""
        if isinstance(value, Recipients):
            return value
        if isinstance(value, str):
            value = [item for item in value.split("|") if item]
        users = [item.strip() for item in value if item and item.strip()]
        if BROADCAST in users:
            return cls(to_all=True)
        return cls(users=users)

    @property
    def total(self) -> int:
        if self.to_all:
            return 1
        return len(self.users) + len(self.parties) + len(self.tags)

    def to_payload(self) -> Dict[str, str]:
        if self.to_all:
            return {"touser": BROADCAST}
        data = {}
        if self.users:
            data["touser"] = "|".join(self.users)
        if self.parties:
            data["toparty"] = "|".join(self.parties)
        if self.tags:
            data["totag"] = "|".join(self.tags)
        return data


class RecipientError(BaseModel):
    """单个接收方的失败原因"""
    user: str
    reason: str
    kind: Literal["user", "party", "tag"] = "user"


class DispatchResult(BaseModel):
    """一次发送的结果，部分成功时 success 仍为 True"""
    success: bool
    sent_count: int
    failed_count: int
    errors: List[RecipientError] = Field(default_factory=list)
    msgid: Optional[str] = None
