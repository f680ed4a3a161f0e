"""日志配置：控制台彩色或 JSON 输出，文件按天轮转，每条记录附带请求 ID。"""

import json
import logging
import logging.config
import sys
from contextvars import ContextVar
from datetime import datetime
from typing import Optional

from .config import get_settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - [%(request_id)s] %(message)s"

_request_id_ctx: ContextVar[Optional[str]] = ContextVar("request_id", default=None)


def set_request_id(request_id: Optional[str]) -> None:
    _request_id_ctx.set(request_id)


class RequestIdFilter(logging.Filter):
    """把当前请求 ID 写入 ``record.request_id``，无请求上下文时为 None。"""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = _request_id_ctx.get()
        return True


class LocalTimeFormatter(logging.Formatter):
    """时间戳按 ``Settings.timezone`` 渲染，精确到毫秒。"""

    def formatTime(self, record: logging.LogRecord, datefmt: Optional[str] = None) -> str:
        moment = datetime.fromtimestamp(record.created, get_settings().timezone_info)
        return moment.isoformat(sep=" ", timespec="milliseconds")


class ColorFormatter(LocalTimeFormatter):
    """终端输出按级别着色；非 TTY 时保持原样。"""

    RESET = "\033[0m"
    COLORS = {
        logging.DEBUG: "\033[36m",
        logging.INFO: "\033[32m",
        logging.WARNING: "\033[33m",
        logging.ERROR: "\033[31m",
        logging.CRITICAL: "\033[41m",
    }

    def __init__(self, fmt: str = LOG_FORMAT, use_colors: Optional[bool] = None) -> None:
        super().__init__(fmt=fmt)
        self.use_colors = sys.stderr.isatty() if use_colors is None else use_colors

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        color = self.COLORS.get(record.levelno) if self.use_colors else None
        return f"{color}{message}{self.RESET}" if color else message


class JsonFormatter(LocalTimeFormatter):
    """每条记录一行 JSON，便于日志采集。"""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "ts": self.formatTime(record),
            "logger": record.name,
            "level": record.levelname,
            "msg": record.getMessage(),
            "request_id": getattr(record, "request_id", None),
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)


def _logger_entry(level: str) -> dict:
    return {"handlers": ["console", "file"], "level": level, "propagate": False}


def setup_logging() -> None:
    """按配置安装日志处理器；``LOG_JSON`` 为真时控制台与文件都输出 JSON。"""
    settings = get_settings()
    settings.log_directory.mkdir(parents=True, exist_ok=True)
    level = settings.log_level
    console_formatter = "json" if settings.log_json else "color"
    file_formatter = "json" if settings.log_json else "plain"

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "filters": {
                "request_id": {"()": RequestIdFilter},
            },
            "formatters": {
                "color": {"()": ColorFormatter},
                "plain": {"()": LocalTimeFormatter, "fmt": LOG_FORMAT},
                "json": {"()": JsonFormatter},
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "level": level,
                    "formatter": console_formatter,
                    "filters": ["request_id"],
                },
                "file": {
                    "class": "logging.handlers.TimedRotatingFileHandler",
                    "level": level,
                    "formatter": file_formatter,
                    "filters": ["request_id"],
                    "filename": str(settings.log_file_path),
                    "when": "midnight",
                    "backupCount": 14,
                    "encoding": "utf-8",
                    "delay": True,
                },
            },
            "loggers": {
                "app": _logger_entry(level),
                "uvicorn": _logger_entry(level),
                "uvicorn.access": _logger_entry(level),
                # 只保留 boto 的警告以上
                "botocore": {"level": "WARNING"},
                "boto3": {"level": "WARNING"},
            },
            "root": {"handlers": ["console", "file"], "level": level},
        }
    )


logger = logging.getLogger("app")
