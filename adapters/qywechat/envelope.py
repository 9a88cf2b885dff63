"""企业微信回调消息体的解析与被动回复封装"""
import json
import time
from typing import Any, Dict, Optional
from xml.etree import ElementTree as ET

from utils.exceptions import DecryptionError, MissingParameterError
from utils.logger import logger
from . import crypto, signature

INT_FIELDS = ("CreateTime", "AgentID", "MsgId")


def extract_encrypt(body: str) -> str:
    """
    从回调请求体中取出 Encrypt 字段

    支持XML（应用回调）和JSON（智能机器人回调）两种格式。

    Raises:
        MissingParameterError: 请求体中没有 Encrypt
        DecryptionError: 请求体无法解析
    """
    body = (body or "").strip()
    if not body:
        raise MissingParameterError(["Encrypt"])

    if body.startswith("{"):
        try:
            data = json.loads(body)
        except ValueError:
            raise DecryptionError("callback body is not valid json")
        if not isinstance(data, dict):
            raise DecryptionError("callback body is not a json object")
        encrypted = data.get("encrypt") or data.get("Encrypt")
    else:
        try:
            root = ET.fromstring(body)
        except ET.ParseError:
            raise DecryptionError("callback body is not valid xml")
        encrypted = root.findtext("Encrypt")

    if not encrypted or not isinstance(encrypted, str):
        raise MissingParameterError(["Encrypt"])
    return encrypted.strip()


def parse_message_xml(xml_content: str) -> Optional[Dict[str, Any]]:
    """
    解析解密后的XML消息

    Args:
        xml_content: XML格式的消息内容

    Returns:
        字段字典，解析失败或缺少 MsgType 时返回None
    """
    try:
        root = ET.fromstring(xml_content)
    except ET.ParseError as e:
        logger.error(f"XML parse error: {e}")
        return None

    msg_data: Dict[str, Any] = {}
    for child in root:
        text = child.text if child.text is not None else ""
        if child.tag in INT_FIELDS and text.isdigit():
            msg_data[child.tag] = int(text)
        else:
            msg_data[child.tag] = text

    if not msg_data.get("MsgType"):
        logger.warning("Decrypted message has no MsgType")
        return None

    logger.debug(f"Msg type: {msg_data['MsgType']} event: {msg_data.get('Event', '')}")
    return msg_data


def build_text_reply(to_user: str, from_user: str, content: str) -> str:
    """生成被动回复的文本消息明文XML"""
    timestamp = int(time.time())
    return (
        "<xml>"
        f"<ToUserName><![CDATA[{to_user}]]></ToUserName>"
        f"<FromUserName><![CDATA[{from_user}]]></FromUserName>"
        f"<CreateTime>{timestamp}</CreateTime>"
        "<MsgType><![CDATA[text]]></MsgType>"
        f"<Content><![CDATA[{content}]]></Content>"
        "</xml>"
    )


def build_encrypted_reply(
    token: str,
    encoding_aes_key: str,
    corp_id: str,
    reply: str,
    nonce: str,
    timestamp: Optional[str] = None
) -> str:
    """
    加密被动回复并封装为平台要求的XML

    Args:
        token: 回调Token
        encoding_aes_key: 回调EncodingAESKey
        corp_id: 企业ID
        reply: 回复明文（XML）
        nonce: 随机字符串，沿用回调请求中的nonce
        timestamp: 时间戳，默认当前时间

    Returns:
        加密后的回复XML
    """
    timestamp = timestamp or str(int(time.time()))
    encrypted = crypto.encrypt(encoding_aes_key, reply, corp_id)
    msg_signature = signature.sign(token, timestamp, nonce, encrypted)
    return (
        "<xml>"
        f"<Encrypt><![CDATA[{encrypted}]]></Encrypt>"
        f"<MsgSignature><![CDATA[{msg_signature}]]></MsgSignature>"
        f"<TimeStamp>{timestamp}</TimeStamp>"
        f"<Nonce><![CDATA[{nonce}]]></Nonce>"
        "</xml>"
    )
