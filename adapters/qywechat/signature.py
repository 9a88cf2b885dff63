"""
企业微信签名

回调验签与 JS-SDK 签名使用同一套算法：参数按字典序排序后拼接，做 SHA1，输出小写十六进制。
参考文档：https://developer.work.weixin.qq.com/document/path/90968
"""
import hashlib


def compute_signature(*parts: str, separator: str = "") -> str:
    """排序 -> 拼接 -> SHA1

    排序按 UTF-8 字节序进行，与平台侧实现一致。
    """
    ordered = sorted(parts, key=lambda part: part.encode("utf-8"))
    joined = separator.join(ordered)
    return hashlib.sha1(joined.encode("utf-8")).hexdigest()


def sign(token: str, timestamp: str, nonce: str, payload: str) -> str:
    """
    计算回调签名 msg_signature

    Args:
        token: 应用回调配置中的Token
        timestamp: 时间戳
        nonce: 随机字符串
        payload: echostr 或加密消息体中的 Encrypt 字段

    Returns:
        小写十六进制签名
    """
    return compute_signature(token, timestamp, nonce, payload)


def verify(token: str, timestamp: str, nonce: str, payload: str, candidate: str) -> bool:
    """校验平台传来的签名，区分大小写的精确比较"""
    return sign(token, timestamp, nonce, payload) == candidate


def sign_jsapi(ticket: str, noncestr: str, timestamp: str, url: str) -> str:
    """JS-SDK 签名（wx.config / wx.agentConfig）

    平台要求四个参数以 key=value 形式参与排序并用 & 连接。
    """
    return compute_signature(
        f"jsapi_ticket={ticket}",
        f"noncestr={noncestr}",
        f"timestamp={timestamp}",
        f"url={url}",
        separator="&",
    )
