from .wecom import (
    PlatformConfig,
    AccessToken,
    VerificationRequest,
    DecryptedEnvelope,
    TextMessage,
    TextCardMessage,
    MarkdownMessage,
    OutboundMessage,
    Recipients,
    RecipientError,
    DispatchResult,
)

__all__ = [
    "PlatformConfig",
    "AccessToken",
    "VerificationRequest",
    "DecryptedEnvelope",
    "TextMessage",
    "TextCardMessage",
    "MarkdownMessage",
    "OutboundMessage",
    "Recipients",
    "RecipientError",
    "DispatchResult",
]
