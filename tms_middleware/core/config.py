import re
from typing import List, Optional
from pathlib import Path
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field

_EXPIRY_PATTERN = re.compile(r"^(\d+)([smhd])$")
_EXPIRY_UNITS = {"s": 1, "m": 60, "h": 60 * 60, "d": 24 * 60 * 60}


def convert_expiry_to_seconds(expiry: str, default: int = 3600) -> int:
    """
    将 "30m", "1d" 这类过期时间字符串转换为秒数

    Args:
        expiry: 过期时间字符串, 格式: 数字 + 单位(s/m/h/d)
        default: 无法解析时返回的默认值

    Returns:
        int: 秒数
    """
    match = _EXPIRY_PATTERN.match(expiry.strip())
    if not match:
        return default
    return int(match.group(1)) * _EXPIRY_UNITS[match.group(2)]


class Settings(BaseSettings):
    """应用配置，从环境变量读取"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",  # 忽略未定义的额外环境变量(如数据库容器初始化变量)
    )

    # 应用基础配置（非敏感，可保留默认值）
    APP_NAME: str = "TMS Middleware"
    APP_VERSION: str = "0.1.0"
    ENVIRONMENT: str = Field(
        default="development", pattern="^(development|production|test)$"
    )
    DEBUG: bool = False
    PORT: int = Field(default=3020, description="HTTP 服务端口")

    # API 配置
    API_PREFIX: str = "/api"
    CORS_ORIGINS: List[str] = Field(
        default_factory=list, description="生产环境允许的跨域来源, JSON 数组格式"
    )

    # 数据库配置（敏感，必须从环境变量读取）
    DATABASE_URL: str = Field(..., description="数据库连接 URL, 必须从环境变量读取")
    DB_AUTO_CREATE: bool = Field(
        default=False, description="启动时是否自动建表(仅用于开发环境)"
    )

    # Redis 配置
    REDIS_HOST: str = Field(default="localhost", description="Redis 主机地址")
    REDIS_PORT: int = Field(default=6379, description="Redis 端口")
    REDIS_DB: int = Field(default=0, description="Redis 数据库编号")
    REDIS_PASSWORD: Optional[str] = Field(default=None, description="Redis 密码")
    REDIS_TTL: int = Field(default=3600, description="缓存默认过期时间, 单位: 秒")
    REDIS_MAX_RETRIES: int = Field(default=10, description="Redis 命令最大重试次数")
    REDIS_RETRY_DELAY: float = Field(
        default=1.0, description="Redis 故障后暂停使用缓存的时间, 单位: 秒"
    )
    REDIS_SOCKET_TIMEOUT: float = Field(
        default=5.0, description="Redis 读写超时时间, 单位: 秒"
    )

    # 安全配置（敏感，必须从环境变量读取）
    SECRET_KEY: str = Field(..., description="密钥, 用于签名 JWT, 必须从环境变量读取")
    ALGORITHM: str = Field(default="HS256", description="JWT 算法")
    ACCESS_TOKEN_EXPIRE: str = Field(
        default="1d", description="访问令牌过期时间, 格式: 30m / 12h / 1d"
    )
    REFRESH_TOKEN_EXPIRE: str = Field(
        default="7d", description="刷新令牌过期时间, 格式同上"
    )
    BCRYPT_ROUNDS: int = Field(default=10, description="bcrypt 加密轮数")

    # TCP 微服务配置
    TCP_HOST: str = Field(default="0.0.0.0", description="RPC 监听地址")
    TCP_PORT: int = Field(default=3003, description="RPC 监听端口")
    RPC_TIMEOUT_SECONDS: float = Field(
        default=5.0, description="单条 RPC 消息的处理超时时间, 单位: 秒"
    )
    RPC_ENABLED: bool = Field(default=True, description="是否随 HTTP 服务一起启动 RPC 服务")

    # 下游 TMS 后端
    TMS_BACKEND_URL: Optional[str] = Field(
        default=None, description="TMS 后端地址, 用于健康检查"
    )

    # 日志配置
    LOG_LEVEL: str = Field(
        default="INFO", description="日志级别 (DEBUG/INFO/WARNING/ERROR/CRITICAL)"
    )
    LOG_DIR: Path = Field(
        default_factory=lambda: Path(__file__).resolve().parent.parent.parent / "logs",
        description="日志目录路径",
    )
    ENABLE_ACCESS_LOG: bool = Field(default=True, description="是否启用访问日志")

    @property
    def access_token_ttl(self) -> int:
        """访问令牌有效期(秒)"""
        return convert_expiry_to_seconds(self.ACCESS_TOKEN_EXPIRE)

    @property
    def refresh_token_ttl(self) -> int:
        """刷新令牌有效期(秒)"""
        return convert_expiry_to_seconds(self.REFRESH_TOKEN_EXPIRE)

    @property
    def redis_url(self) -> str:
        """构建 Redis 连接 URL"""
        if self.REDIS_PASSWORD:
            return f"redis://:{self.REDIS_PASSWORD}@{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"
        return f"redis://{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"


def get_settings() -> Settings:
    """
    读取配置

    只在进程启动时调用一次, 得到的 Settings 通过 app.state 注入各组件,
    不在模块级别保存实例.
    """
    return Settings()
