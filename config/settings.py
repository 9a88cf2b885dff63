from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional, Literal
from enum import Enum


# ==================================
# 环境枚举
# ==================================
class LogLevel(str, Enum):
    """日志级别枚举"""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


# ==================================
# 配置模型
# ==================================
class AppConfig(BaseModel):
    """应用配置"""
    name: str = Field(default="WecomGateway", description="服务名称")
    description: str = Field(default="企业微信回调验签与消息加解密网关", description="应用描述")
    port: int = Field(default=1111, description="服务端口")
    debug: bool = Field(default=False, description="调试模式")
    env: str = Field(default="dev", description="环境")


class LoggerConfig(BaseModel):
    """日志配置"""
    level: LogLevel = Field(default=LogLevel.INFO, description="日志级别")
    to_console: bool = Field(default=True, description="是否输出到控制台")
    to_file: bool = Field(default=True, description="是否写入文件")
    file_path: str = Field(default="logs/app.log", description="日志文件路径")
    file_rotation: str = Field(default="1 day", description="文件存储天数")
    file_retention: str = Field(default="30 days", description="")


class RedisConfig(BaseModel):
    """Redis配置"""
    host: str = Field(default="localhost", description="Redis主机")
    port: int = Field(default=6379, description="Redis端口")
    db: int = Field(default=0, description="Redis数据库")
    user: Optional[str] = Field(default=None, description="Redis用户名")
    password: Optional[str] = Field(default=None, description="Redis密码")
    max_connections: int = Field(default=50, description="最大连接数")


class WecomConfig(BaseModel):
    """企业微信配置"""
    corp_id: Optional[str] = Field(default=None, description="企业微信的企业id")
    agent_id: Optional[str] = Field(default=None, description="企业微信的应用id")
    secret: Optional[str] = Field(default=None, description="企业微信的应用密钥")
    token: Optional[str] = Field(default=None, description="回调验签token")
    encoding_aes_key: Optional[str] = Field(default=None, description="回调消息加解密密钥(43位)")

    base_url: str = Field(default="https://qyapi.weixin.qq.com/cgi-bin", description="企业微信API地址")
    request_timeout: float = Field(default=10.0, description="外呼请求超时时间(秒)")
    token_refresh_margin: int = Field(default=300, description="access_token提前刷新的秒数")
    timestamp_tolerance: int = Field(default=300, description="回调时间戳允许的偏差(秒)，超出仅告警")

    # 平台兼容开关
    echostr_mode: Literal["decoded", "raw"] = Field(
        default="decoded", description="echostr取值方式：decoded=解析后的查询参数，raw=原始查询串(保留+号)"
    )
    decrypt_echostr: bool = Field(default=False, description="URL验证时是否返回解密后的echostr")

    cache_backend: Literal["memory", "redis"] = Field(default="memory", description="token缓存后端")

    # 通知默认值
    notification_recipients: str = Field(default="@all", description="默认通知接收人，多个用|分隔")
    message_type: Literal["text", "textcard", "markdown"] = Field(default="textcard", description="默认通知消息类型")
    site_url: str = Field(default="http://localhost:3000", description="后台站点地址，用于卡片跳转链接")
    member_notification_enabled: bool = Field(default=True, description="是否发送会员登记通知")

    # 管理接口访问密钥，为空则不校验
    api_key: Optional[str] = Field(default=None, description="管理接口访问密钥")


# ==================================
# 全局设置
# ==================================
class GlobalSettings(BaseSettings):
    """全局配置设置"""
    app: AppConfig = Field(default_factory=AppConfig)
    logger: LoggerConfig = Field(default_factory=LoggerConfig)
    redis: RedisConfig = Field(default_factory=RedisConfig)
    wecom: WecomConfig = Field(default_factory=WecomConfig)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="allow",
        env_nested_delimiter="__",
    )


# ==================================
# 全局实例
# ==================================
settings = GlobalSettings()
global_settings = settings
