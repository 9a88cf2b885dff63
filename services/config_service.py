"""企业微信配置服务"""
from typing import Optional

from config.settings import WecomConfig, settings
from models.wecom import PlatformConfig
from utils.exceptions import ConfigurationException
from utils.logger import logger

REQUIRED_FIELDS = ("corp_id", "agent_id", "secret", "token", "encoding_aes_key")


class ConfigService:
    """从配置中读取企业凭证

    凭证每次请求时重新读取，管理员轮换后下一次请求即生效。
    """

    def __init__(self, wecom_config: Optional[WecomConfig] = None):
        self._wecom_config = wecom_config

    @property
    def wecom_config(self) -> WecomConfig:
        return self._wecom_config if self._wecom_config is not None else settings.wecom

    async def get_platform_config(self) -> PlatformConfig:
        """
        获取企业凭证

        Returns:
            PlatformConfig

        Raises:
            ConfigurationException: 任一必填项为空
        """
        wecom = self.wecom_config
        missing = [field for field in REQUIRED_FIELDS if not getattr(wecom, field)]
        if missing:
            logger.error(f"企业微信配置不完整，缺少: {missing}")
            raise ConfigurationException(missing)

        return PlatformConfig(
            corp_id=wecom.corp_id,
            agent_id=str(wecom.agent_id),
            secret=wecom.secret,
            token=wecom.token,
            encoding_aes_key=wecom.encoding_aes_key,
        )
