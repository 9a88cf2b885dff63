from .client import QyWechatHttpClient
from .token import AccessTokenManager, TOKEN_INVALID_ERRCODES
from .ticket import TicketManager, build_jssdk_config
from .message import QyWechatMessageClient

__all__ = [
    "QyWechatHttpClient",
    "AccessTokenManager",
    "TOKEN_INVALID_ERRCODES",
    "TicketManager",
    "build_jssdk_config",
    "QyWechatMessageClient",
]
