# -*- coding: utf-8 -*-
"""
简化的配置管理模块
"""
from typing import Optional
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from enum import Enum


def safe_print(message: str):
    """Windows safe print that handles emoji characters"""
    try:
        print(message, flush=True)
    except UnicodeEncodeError:
        safe_message = message.encode('ascii', 'ignore').decode('ascii')
        print(safe_message, flush=True)


# === 枚举类型 ===

class StorageBackend(str, Enum):
    """会话持久化后端"""
    FILE = "file"
    REDIS = "redis"
    MEMORY = "memory"


# === 配置子类 ===

class AppConfig(BaseModel):
    name: str = 'qrlogin'
    host: str = '127.0.0.1'
    port: int = 5000
    debug: bool = False
    env: str = 'dev'
    version: str = '1.0.0'


class LoggerConfig(BaseModel):
    """日志配置"""
    level: str = 'INFO'
    log_file: Optional[str] = None
    enable_file: bool = False
    enable_console: bool = True
    max_file_size: str = '10 MB'
    retention_days: int = 7


class GatewayConfig(BaseModel):
    """网易云音乐 API 网关配置"""
    api_base: str = 'https://neteaseapi-enhanced.vercel.app'
    timeout: float = 15.0
    random_cn_ip: bool = True

    @field_validator("api_base")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        value = (value or "").strip()
        if not value:
            raise ValueError("api_base 不能为空")
        return value.rstrip("/")


class LoginConfig(BaseModel):
    """扫码登录流程配置"""
    poll_interval: float = Field(default=2.0, ge=0, description="扫码状态轮询间隔(秒)")
    max_tick_failures: int = Field(default=3, ge=1, description="连续轮询失败多少次后放弃")
    fetch_detail: bool = Field(default=True, description="登录成功后是否拉取用户详情")


class StorageConfig(BaseModel):
    """会话存储配置"""
    backend: StorageBackend = StorageBackend.FILE
    data_dir: str = './browser_data/netease'
    session_key: str = 'netease_session'
    api_base_key: str = 'netease_api_base'
    ttl: Optional[int] = None  # 仅 redis 后端生效，None 表示永不过期


class RedisConfig(BaseModel):
    """Redis配置"""
    host: str = 'localhost'
    port: int = 6379
    db: int = 0
    user: str = ''
    password: Optional[str] = None


class GlobalSettings(BaseSettings):
    """全局配置设置"""
    app: AppConfig = Field(default_factory=AppConfig)
    logger: LoggerConfig = Field(default_factory=LoggerConfig)
    gateway: GatewayConfig = Field(default_factory=GatewayConfig)
    login: LoginConfig = Field(default_factory=LoginConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    redis: RedisConfig = Field(default_factory=RedisConfig)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="allow",
        env_nested_delimiter="__",
    )


def load_config() -> GlobalSettings:
    """
    加载配置的入口函数

    Pydantic Settings 会自动：
    1. 从 .env 文件加载环境变量
    2. 使用 env_nested_delimiter='__' 处理嵌套配置

    环境变量命名规则示例：
    - APP__PORT=5000
    - GATEWAY__API_BASE=https://example.com
    - LOGIN__POLL_INTERVAL=2
    - STORAGE__BACKEND=redis
    """
    try:
        settings = GlobalSettings()
        safe_print(f"✅ 配置加载成功: APP_ENV={settings.app.env}, STORAGE={settings.storage.backend.value}")
        return settings
    except Exception as e:
        safe_print(f"❌ 加载配置失败: {e}")
        return GlobalSettings.model_construct(
            app=AppConfig(),
            logger=LoggerConfig(),
            gateway=GatewayConfig(),
            login=LoginConfig(),
            storage=StorageConfig(),
            redis=RedisConfig(),
        )


# 全局配置实例
global_settings = load_config()
