"""自定义异常类"""
from typing import Optional, TYPE_CHECKING
from api.schema.base import ErrorCode

if TYPE_CHECKING:
    from models.wecom import DispatchResult


class BusinessException(Exception):
    """业务异常基类"""
    def __init__(self, message: str, code: int = ErrorCode.INTERNAL_ERROR, details: Optional[dict] = None):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)


class ConfigurationException(BusinessException):
    """企业微信配置缺失"""
    def __init__(self, missing: list):
        super().__init__(
            message=f"企业微信配置不完整: {', '.join(missing)}",
            code=ErrorCode.WECOM_NOT_CONFIGURED,
            details={"error_type": "wecom_not_configured", "missing": missing}
        )


# ==================================
# 回调验证（入站）：由回调路由就地转为HTTP状态码
# ==================================
class CallbackRejected(BusinessException):
    """回调请求被拒绝的基类，status 为返回给平台的HTTP状态码"""
    status = 403

    def __init__(self, message: str, code: int = ErrorCode.FORBIDDEN, details: Optional[dict] = None):
        super().__init__(message=message, code=code, details=details)


class MissingParameterError(CallbackRejected):
    """缺少必需的查询参数"""
    status = 400

    def __init__(self, missing: list):
        self.missing = list(missing)
        super().__init__(
            message=f"missing parameters: {', '.join(self.missing)}",
            code=ErrorCode.BAD_REQUEST,
            details={"error_type": "missing_parameter", "missing": self.missing}
        )


class SignatureMismatchError(CallbackRejected):
    """签名不一致"""

    def __init__(self, message: str = "signature mismatch"):
        super().__init__(message=message, details={"error_type": "signature_mismatch"})


class DecryptionError(CallbackRejected):
    """解密失败（base64 / AES / 补位 / 长度解析）。消息中不得包含明文或密钥"""

    def __init__(self, message: str = "decryption failed"):
        super().__init__(message=message, details={"error_type": "decryption_failed"})


class CorpIdMismatchError(CallbackRejected):
    """解密出的企业ID与配置不一致，视为篡改"""

    def __init__(self, message: str = "corp id mismatch"):
        super().__init__(message=message, details={"error_type": "corp_id_mismatch"})


# ==================================
# 外呼（出站）：抛给调用方自行决定重试/告警
# ==================================
class PlatformRequestError(BusinessException):
    """请求企业微信API的网络错误或超时"""

    def __init__(self, message: str, timeout: bool = False):
        self.timeout = timeout
        super().__init__(
            message=message,
            code=ErrorCode.GATEWAY_TIMEOUT if timeout else ErrorCode.BAD_GATEWAY,
            details={"error_type": "platform_timeout" if timeout else "platform_unreachable"}
        )


class TokenAcquisitionError(BusinessException):
    """获取access_token失败"""

    def __init__(self, errcode: int, errmsg: str, retryable: bool = False):
        self.errcode = errcode
        self.errmsg = errmsg
        self.retryable = retryable
        super().__init__(
            message=f"获取access_token失败: {errmsg} (errcode: {errcode})",
            code=ErrorCode.WECOM_TOKEN_FAILED,
            details={"errcode": errcode, "errmsg": errmsg, "retryable": retryable}
        )


class TicketAcquisitionError(BusinessException):
    """获取jsapi_ticket失败"""

    def __init__(self, errcode: int, errmsg: str, retryable: bool = False):
        self.errcode = errcode
        self.errmsg = errmsg
        self.retryable = retryable
        hint = "（今日jsapi_ticket接口调用次数超限）" if errcode == 45009 else ""
        super().__init__(
            message=f"获取jsapi_ticket失败: {errmsg} (errcode: {errcode}){hint}",
            code=ErrorCode.WECOM_TICKET_FAILED,
            details={"errcode": errcode, "errmsg": errmsg, "retryable": retryable}
        )


class DispatchError(BusinessException):
    """消息发送失败，result 中带有成功/失败计数"""

    def __init__(
        self,
        errcode: int,
        errmsg: str,
        invaliduser: Optional[str] = None,
        result: Optional["DispatchResult"] = None,
        retryable: bool = False
    ):
        self.errcode = errcode
        self.errmsg = errmsg
        self.invaliduser = invaliduser
        self.result = result
        self.retryable = retryable
        super().__init__(
            message=f"企业微信消息发送失败: {errmsg} (errcode: {errcode})",
            code=ErrorCode.WECOM_DISPATCH_FAILED,
            details={
                "errcode": errcode,
                "errmsg": errmsg,
                "invaliduser": invaliduser,
                "retryable": retryable,
            }
        )
