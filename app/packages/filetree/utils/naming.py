"""命名与 key 工具：路径拆分、重名后缀、内容类型推断等纯函数。"""

from __future__ import annotations

import json
import mimetypes
import os
import secrets
import string
import uuid
from typing import Any, Optional

from app.packages.filetree.core.constants import DEFAULT_CONTENT_TYPE, KEY_DELIMITER, NAME_SUFFIX_LENGTH

_SUFFIX_ALPHABET = string.ascii_lowercase + string.digits


def split_path(path: str | None) -> list[str]:
    """按 '/' 拆分并丢弃空段：'/a//b/' -> ['a', 'b']。"""
    return [seg for seg in (path or "").split(KEY_DELIMITER) if seg]


def folder_key(path: str) -> str:
    return path.rstrip(KEY_DELIMITER) + KEY_DELIMITER


def extension_of(name: str) -> str:
    """返回带点的扩展名（'.pdf'），无扩展名时返回空串。"""
    return os.path.splitext(name)[1]


def random_suffix(length: int = NAME_SUFFIX_LENGTH) -> str:
    return "".join(secrets.choice(_SUFFIX_ALPHABET) for _ in range(length))


def disambiguate(name: str) -> str:
    """在扩展名之前插入随机后缀：report.pdf -> reportk3x9a2.pdf。"""
    ext = extension_of(name)
    if not ext:
        return name + random_suffix()
    return name[: -len(ext)] + random_suffix() + ext


def unique_token(name: str) -> str:
    """生成保留原扩展名的唯一文件名。"""
    return uuid.uuid4().hex + extension_of(name)


def guess_content_type(name: str) -> str:
    mime, _ = mimetypes.guess_type(name)
    return mime or DEFAULT_CONTENT_TYPE


def last_segment(key: str) -> str:
    parts = split_path(key)
    return parts[-1] if parts else ""


def parent_key_of(key: str) -> Optional[str]:
    """由对象 key 推导父文件夹 key（带尾部 '/'），顶层对象返回 None。

    'docs/report.pdf' -> 'docs/'；'docs/sub/' -> 'docs/'；'docs/' -> None
    """
    stripped = key[:-1] if key.endswith(KEY_DELIMITER) else key
    if KEY_DELIMITER not in stripped:
        return None
    return stripped.rsplit(KEY_DELIMITER, 1)[0] + KEY_DELIMITER


def to_jsonable(payload: Any) -> Any:
    """将存储返回值转换为可写入 JSON 列的结构（datetime 等转字符串）。"""
    if payload is None:
        return None
    return json.loads(json.dumps(payload, default=str))
