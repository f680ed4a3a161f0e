"""配置模块：负责加载和缓存基于环境变量的应用设置。"""

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


# 探测项目根目录并加载环境文件，支持通过 ENV_FILE/ENVIRONMENT 定制优先级。
def _detect_base_dir() -> Path:
    """向上遍历目录树，寻找包含 `app` 目录的项目根路径。"""
    current = Path(__file__).resolve()
    for candidate in current.parents:
        if (candidate / "app").is_dir():
            return candidate
    return current.parent


BASE_DIR = _detect_base_dir()


def _as_bool(value: Optional[str]) -> bool:
    if value is None:
        return False
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _load_environment() -> None:
    env_file_override = os.getenv("ENV_FILE")
    if env_file_override:
        candidate = BASE_DIR / env_file_override
        if candidate.exists():
            load_dotenv(candidate, override=True, encoding="utf-8")
        return

    base_env = BASE_DIR / ".env"
    if base_env.exists():
        load_dotenv(base_env, override=False, encoding="utf-8")

    environment = os.getenv("ENVIRONMENT")
    if environment is None and _as_bool(os.getenv("DEBUG")):
        environment = "development"

    if environment:
        if environment.startswith(".env"):
            candidate_name = environment
        else:
            candidate_name = f".env.{environment}"
        candidate_path = BASE_DIR / candidate_name
        if candidate_path.exists():
            load_dotenv(candidate_path, override=True, encoding="utf-8")


_load_environment()


class Settings(BaseSettings):
    """
    封装应用运行所需的所有配置项，每个字段都可以通过环境变量重写。
    对象存储与目录树策略相关的字段会被收敛为 ``FileTreeConfig`` 传入各组件。
    """

    project_name: str = Field(default="File Tree API", alias="PROJECT_NAME")
    api_v1_str: str = Field(default="/api/v1", alias="API_V1_STR")
    debug: bool = Field(default=False, alias="DEBUG")

    database_url: Optional[str] = Field(default=None, alias="DATABASE_URL")
    database_host: str = Field(default="localhost", alias="DATABASE_HOST")
    database_port: int = Field(default=5432, alias="DATABASE_PORT")
    database_user: str = Field(default="postgres", alias="DATABASE_USER")
    database_password: str = Field(default="postgres", alias="DATABASE_PASSWORD")
    database_name: str = Field(default="filetree", alias="DATABASE_NAME")
    database_echo: bool = Field(default=False, alias="DATABASE_ECHO")

    # 对象存储（S3 兼容）
    s3_bucket: str = Field(default="filetree", alias="S3_BUCKET")
    s3_region: str = Field(default="us-east-1", alias="S3_REGION")
    s3_access_key_id: Optional[str] = Field(default=None, alias="S3_ACCESS_KEY_ID")
    s3_secret_access_key: Optional[str] = Field(default=None, alias="S3_SECRET_ACCESS_KEY")
    s3_endpoint_url: Optional[str] = Field(default=None, alias="S3_ENDPOINT_URL")
    s3_cdn_hostname: Optional[str] = Field(default=None, alias="S3_CDN_HOSTNAME")
    s3_signed_url_expires_in: int = Field(default=3600, alias="S3_SIGNED_URL_EXPIRES_IN")
    s3_list_page_size: int = Field(default=1000, alias="S3_LIST_PAGE_SIZE")
    s3_max_attempts: int = Field(default=3, alias="S3_MAX_ATTEMPTS")
    s3_connect_timeout: int = Field(default=10, alias="S3_CONNECT_TIMEOUT")
    s3_read_timeout: int = Field(default=60, alias="S3_READ_TIMEOUT")

    # 目录树策略开关
    upload_overwrite_default: bool = Field(default=False, alias="UPLOAD_OVERWRITE_DEFAULT")
    upload_use_original_name_default: bool = Field(default=False, alias="UPLOAD_USE_ORIGINAL_NAME_DEFAULT")
    upload_allowed_extensions_raw: str = Field(default="", alias="UPLOAD_ALLOWED_EXTENSIONS")
    multipart_abort_deletes_placeholder: bool = Field(
        default=False, alias="MULTIPART_ABORT_DELETES_PLACEHOLDER"
    )
    max_tree_depth: int = Field(default=256, alias="MAX_TREE_DEPTH")

    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_dir: str = Field(default="log", alias="LOG_DIR")
    log_file_name: str = Field(default="app.log", alias="LOG_FILE_NAME")
    log_json: bool = Field(default=False, alias="LOG_JSON")
    app_port: int = Field(default=8000, alias="APP_PORT")
    timezone: str = Field(default="Asia/Shanghai", alias="TIMEZONE")

    model_config = SettingsConfigDict(extra='ignore')

    @property
    def sql_database_url(self) -> str:
        """优先使用 DATABASE_URL，否则根据当前设置拼接 PostgreSQL 连接串。"""
        if self.database_url:
            return self.database_url
        return (
            f"postgresql+psycopg2://{self.database_user}:{self.database_password}"
            f"@{self.database_host}:{self.database_port}/{self.database_name}"
        )

    def _resolve_path(self, raw: str) -> Path:
        path = Path(raw)
        if not path.is_absolute():
            path = BASE_DIR / path
        return path

    @property
    def log_directory(self) -> Path:
        """返回日志目录的绝对路径，支持相对路径配置。"""
        return self._resolve_path(self.log_dir)

    @property
    def log_file_path(self) -> Path:
        """组合日志目录与文件名，得到完整的日志文件路径。"""
        return self.log_directory / self.log_file_name

    @property
    def timezone_info(self) -> ZoneInfo:
        """返回当前配置对应的时区信息，无法解析时回退到 UTC。"""
        try:
            return ZoneInfo(self.timezone)
        except ZoneInfoNotFoundError:
            return ZoneInfo("UTC")

    @property
    def upload_allowed_extensions(self) -> frozenset[str]:
        raw = (self.upload_allowed_extensions_raw or "").strip()
        return frozenset(item.strip().lower().lstrip(".") for item in raw.split(",") if item.strip())


@lru_cache
def get_settings() -> Settings:
    """返回单例化的配置对象，避免重复解析环境变量造成性能浪费。"""
    return Settings()


@dataclass(frozen=True)
class FileTreeConfig:
    """目录树各组件共享的只读配置，进程启动时构建一次并显式注入。"""

    bucket: str
    cdn_hostname: Optional[str] = None
    signed_url_expires_in: int = 3600
    overwrite_default: bool = False
    use_original_name_default: bool = False
    allowed_extensions: frozenset[str] = frozenset()
    abort_deletes_placeholder: bool = False
    max_tree_depth: int = 256

    @classmethod
    def from_settings(cls, settings: Settings) -> "FileTreeConfig":
        return cls(
            bucket=settings.s3_bucket,
            cdn_hostname=settings.s3_cdn_hostname,
            signed_url_expires_in=settings.s3_signed_url_expires_in,
            overwrite_default=settings.upload_overwrite_default,
            use_original_name_default=settings.upload_use_original_name_default,
            allowed_extensions=settings.upload_allowed_extensions,
            abort_deletes_placeholder=settings.multipart_abort_deletes_placeholder,
            max_tree_depth=settings.max_tree_depth,
        )
