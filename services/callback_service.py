"""
企业微信回调网关

处理回调URL验证（GET）与加密消息接收（POST）：
验签 -> 解密 -> 校验企业ID -> 交给业务处理器，顺序不可调换。
参考文档：https://developer.work.weixin.qq.com/document/path/90930
"""
import time
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional, Sequence

from adapters.qywechat import crypto, envelope, signature
from models.wecom import DecryptedEnvelope, PlatformConfig, VerificationRequest
from utils.exceptions import (
    CorpIdMismatchError,
    DecryptionError,
    MissingParameterError,
    SignatureMismatchError,
)
from utils.logger import fingerprint, logger, preview

MessageHandler = Callable[[Dict[str, Any]], Awaitable[Optional[str]]]

VERIFY_PARAMS = ("msg_signature", "timestamp", "nonce", "echostr")
CALLBACK_PARAMS = ("msg_signature", "timestamp", "nonce")


class CallbackGateway:
    """企业微信回调服务"""

    def __init__(self, decrypt_echostr: bool = False, timestamp_tolerance: int = 300):
        """
        初始化回调服务

        Args:
            decrypt_echostr: URL验证成功后返回解密后的echostr（加密模式应用）
            timestamp_tolerance: 时间戳偏差超过该秒数时告警
        """
        self.decrypt_echostr = decrypt_echostr
        self.timestamp_tolerance = timestamp_tolerance
        self._handlers: Dict[str, MessageHandler] = {}

    # ------------------------------------------------------------------
    # 业务处理器注册
    # ------------------------------------------------------------------
    def register(self, msg_type: str, handler: MessageHandler, event: Optional[str] = None) -> None:
        """注册消息处理器，event 仅对 msg_type="event" 生效，msg_type="*" 为兜底"""
        key = f"event:{event}" if event else msg_type
        self._handlers[key] = handler

    def on(self, msg_type: str, event: Optional[str] = None):
        """装饰器形式的 register"""
        def decorator(handler: MessageHandler) -> MessageHandler:
            self.register(msg_type, handler, event=event)
            return handler
        return decorator

    # ------------------------------------------------------------------
    # GET：URL验证
    # ------------------------------------------------------------------
    def verify_url(self, config: PlatformConfig, params: Mapping[str, str]) -> str:
        """
        验证回调URL的合法性

        Args:
            config: 企业凭证
            params: 查询参数 msg_signature / timestamp / nonce / echostr

        Returns:
            需原样返回给平台的字符串

        Raises:
            MissingParameterError / SignatureMismatchError / DecryptionError / CorpIdMismatchError
        """
        request = self._build_request(params, VERIFY_PARAMS)
        self._verify_signature(config, request)

        if not self.decrypt_echostr:
            logger.info("URL verification successful")
            return request.echo_or_body

        decrypted = self._decrypt(config, request.echo_or_body)
        logger.info("URL verification successful (decrypted echostr)")
        return self._decode(decrypted)

    # ------------------------------------------------------------------
    # POST：加密消息接收
    # ------------------------------------------------------------------
    async def handle_callback(self, config: PlatformConfig, params: Mapping[str, str], body: str) -> str:
        """
        处理加密回调消息

        Args:
            config: 企业凭证
            params: 查询参数 msg_signature / timestamp / nonce
            body: 原始请求体（XML或JSON）

        Returns:
            响应体：空字符串，或处理器返回的加密被动回复XML

        Raises:
            MissingParameterError / SignatureMismatchError / DecryptionError / CorpIdMismatchError
        """
        self.require_params(params, CALLBACK_PARAMS)
        encrypted = envelope.extract_encrypt(body)
        request = self._build_request({**params, "echostr": encrypted}, VERIFY_PARAMS)

        self._verify_signature(config, request)
        decrypted = self._decrypt(config, encrypted)

        msg_data = envelope.parse_message_xml(self._decode(decrypted))
        if msg_data is None:
            logger.warning("Decrypted callback is not a recognizable message, ack without handling")
            return ""

        reply = await self._handle_message(msg_data)
        if not reply:
            return ""

        return envelope.build_encrypted_reply(
            token=config.token,
            encoding_aes_key=config.encoding_aes_key,
            corp_id=config.corp_id,
            reply=reply,
            nonce=request.nonce,
        )

    # ------------------------------------------------------------------
    # 内部步骤
    # ------------------------------------------------------------------
    @staticmethod
    def require_params(params: Mapping[str, str], names: Sequence[str]) -> None:
        """缺少任一必需参数即拒绝，先于加载企业凭证执行"""
        missing = [name for name in names if not params.get(name)]
        if missing:
            logger.warning(f"Missing required parameters: {missing}")
            raise MissingParameterError(missing)

    def _build_request(self, params: Mapping[str, str], names: Sequence[str]) -> VerificationRequest:
        self.require_params(params, names)
        self._check_timestamp(params["timestamp"])
        return VerificationRequest(
            signature=params["msg_signature"],
            timestamp=params["timestamp"],
            nonce=params["nonce"],
            echo_or_body=params[names[3]],
        )

    def _check_timestamp(self, timestamp: str) -> None:
        try:
            drift = abs(int(time.time()) - int(timestamp))
        except ValueError:
            logger.warning(f"Invalid timestamp: {preview(timestamp)}")
            return
        if drift > self.timestamp_tolerance:
            logger.warning(f"Timestamp drift {drift}s exceeds {self.timestamp_tolerance}s")

    @staticmethod
    def _verify_signature(config: PlatformConfig, request: VerificationRequest) -> None:
        if not signature.verify(config.token, request.timestamp, request.nonce, request.echo_or_body, request.signature):
            logger.warning(
                f"Signature verification failed - signature={preview(request.signature, 8)} "
                f"timestamp={request.timestamp} nonce={preview(request.nonce, 8)} "
                f"payload={preview(request.echo_or_body)}"
            )
            raise SignatureMismatchError()
        logger.debug("Signature verified")

    @staticmethod
    def _decrypt(config: PlatformConfig, ciphertext: str) -> DecryptedEnvelope:
        try:
            decrypted = crypto.decrypt(config.encoding_aes_key, ciphertext)
        except DecryptionError as e:
            logger.warning(f"Decryption failed: {e.message} ciphertext={fingerprint(ciphertext.encode('utf-8'))}")
            raise

        if decrypted.corp_id != config.corp_id:
            logger.warning(
                f"Corp id mismatch, possible tampering: received={preview(decrypted.corp_id, 6)} "
                f"message={fingerprint(decrypted.message)}"
            )
            raise CorpIdMismatchError()
        return decrypted

    @staticmethod
    def _decode(decrypted: DecryptedEnvelope) -> str:
        try:
            return decrypted.text
        except UnicodeDecodeError:
            logger.warning(f"Decrypted message is not utf-8: {fingerprint(decrypted.message)}")
            raise DecryptionError("message is not valid utf-8")

    async def _handle_message(self, msg_data: Dict[str, Any]) -> Optional[str]:
        msg_type = msg_data.get("MsgType", "")
        handler = None
        if msg_type == "event":
            handler = self._handlers.get(f"event:{msg_data.get('Event', '')}")
        handler = handler or self._handlers.get(msg_type) or self._handlers.get("*")

        if handler is None:
            logger.info(f"未处理的消息类型: {msg_type}")
            return None

        try:
            return await handler(msg_data)
        except Exception:
            # 业务处理失败仍正常应答
            logger.exception(f"处理企业微信回调消息出错: {msg_type}")
            return None
