"""单次上传编排：确定父目录、处理重名策略、写对象、写索引。

两步写入（对象存储 -> 索引）不在同一事务内：对象写入成功而索引写入失败时，
对象会成为孤儿，需要运维通过同步或手工清理。
"""

from __future__ import annotations

import base64
import binascii
import re
from typing import Any, Optional

from sqlalchemy.orm import Session

from app.packages.filetree.core.config import FileTreeConfig
from app.packages.filetree.core.exceptions import ConflictError, InvalidArgumentError
from app.packages.filetree.core.logger import logger
from app.packages.filetree.crud.file_node import file_node_crud
from app.packages.filetree.models.file_node import FileNode, NodeKind
from app.packages.filetree.services.object_store import ObjectStoreGateway
from app.packages.filetree.services.path_resolver import PathResolver, check_name
from app.packages.filetree.utils.naming import (
    disambiguate,
    extension_of,
    guess_content_type,
    to_jsonable,
    unique_token,
)

# data:<mime>[;param...][;base64],<payload>
_DATA_URL_RE = re.compile(r"^data:(?P<mime>[\w.+-]+/[\w.+-]+)?(?P<params>(;[^,;]+)*),(?P<payload>.*)$", re.DOTALL)


def resolve_parent(
    resolver: PathResolver,
    db: Session,
    *,
    parent_id: Optional[str],
    path: Optional[str],
) -> Optional[str]:
    """``parent_id`` 与 ``path`` 二选一，返回实际父目录 id（根目录为 None）。"""
    if parent_id and path:
        raise InvalidArgumentError("parentId 与 path 不能同时使用")
    if path:
        return resolver.resolve_or_create_folder_chain(db, path)
    if parent_id:
        resolver.get_folder(db, parent_id)
        return parent_id
    return None


def decode_base64_payload(data: str) -> tuple[bytes, Optional[str]]:
    """解码 base64 内容，支持 data URL；返回 (字节, data URL 中声明的 mime)。"""
    raw = (data or "").strip()
    mime: Optional[str] = None
    if raw.startswith("data:"):
        match = _DATA_URL_RE.match(raw)
        if match is None:
            raise InvalidArgumentError("data URL 格式非法")
        params = [p for p in (match.group("params") or "").split(";") if p]
        if "base64" not in params:
            raise InvalidArgumentError("仅支持 base64 编码的 data URL")
        mime = match.group("mime")
        raw = match.group("payload")
    try:
        return base64.b64decode(raw, validate=True), mime
    except (binascii.Error, ValueError) as exc:
        raise InvalidArgumentError("base64 内容非法") from exc


class UploadService:
    def __init__(self, gateway: ObjectStoreGateway, config: FileTreeConfig, resolver: PathResolver):
        self.gateway = gateway
        self.config = config
        self.resolver = resolver

    def _public_urls(self, key: str) -> dict[str, Optional[str]]:
        url = self.gateway.public_url(self.config.bucket, key)
        cdn_url = f"{self.config.cdn_hostname.rstrip('/')}/{key}" if self.config.cdn_hostname else None
        return {"url": url, "cdnUrl": cdn_url}

    def _check_extension(self, name: str) -> None:
        allowed = self.config.allowed_extensions
        if not allowed:
            return
        ext = extension_of(name).lower().lstrip(".")
        if ext not in allowed:
            raise InvalidArgumentError(f"不支持的文件类型: {ext or '(无扩展名)'}")

    def upload_file(
        self,
        db: Session,
        *,
        buffer: bytes,
        name: Optional[str] = None,
        content_type: Optional[str] = None,
        size: Optional[int] = None,
        parent_id: Optional[str] = None,
        path: Optional[str] = None,
        overwrite: Optional[bool] = None,
        use_original_name: Optional[bool] = None,
    ) -> dict[str, Any]:
        overwrite = self.config.overwrite_default if overwrite is None else overwrite
        use_original_name = self.config.use_original_name_default if use_original_name is None else use_original_name

        if parent_id and path:
            raise InvalidArgumentError("parentId 与 path 不能同时使用")
        name = check_name(name) if (name or "").strip() else unique_token("")
        self._check_extension(name)
        effective_parent = resolve_parent(self.resolver, db, parent_id=parent_id, path=path)
        content_type = content_type or guess_content_type(name)
        size = len(buffer) if size is None else size

        existing = file_node_crud.find_child(db, bucket=self.config.bucket, parent_id=effective_parent, name=name)

        if existing is not None and overwrite:
            if existing.is_folder:
                raise ConflictError(f"同名文件夹已存在，无法覆盖: {name}")
            key = existing.key
            display_name = existing.name
        else:
            if existing is not None:
                display_name = disambiguate(name)
                key_name = display_name
            else:
                display_name = name
                key_name = name if use_original_name else unique_token(name)
            key = self.resolver.available_key(db, effective_parent, key_name)

        logger.info(
            "upload.start parent_id=%s name=%s key=%s overwrite=%s size=%s",
            effective_parent, display_name, key, bool(existing is not None and overwrite), size,
        )
        output = self.gateway.put(self.config.bucket, key, buffer, content_type=content_type)

        if existing is not None and overwrite:
            node = self._overwrite(db, existing, content_type=content_type, size=size, output=output)
        else:
            node = file_node_crud.create(
                db,
                {
                    "name": display_name,
                    "kind": NodeKind.FILE,
                    "content_type": content_type,
                    "size": size,
                    "bucket": self.config.bucket,
                    "key": key,
                    "parent_id": effective_parent,
                    "store_response": to_jsonable(output),
                },
            )
        logger.info("upload.done id=%s key=%s", node.id, node.key)
        return {"id": node.id, "name": node.name, "key": node.key, **self._public_urls(node.key)}

    def _overwrite(self, db: Session, node: FileNode, *, content_type: str, size: int, output: Any) -> FileNode:
        node.content_type = content_type
        node.size = size
        node.store_response = to_jsonable(output)
        return file_node_crud.save(db, node)

    def upload_base64(
        self,
        db: Session,
        *,
        data: str,
        name: Optional[str] = None,
        content_type: Optional[str] = None,
        parent_id: Optional[str] = None,
        path: Optional[str] = None,
        overwrite: Optional[bool] = None,
        use_original_name: Optional[bool] = None,
    ) -> dict[str, Any]:
        buffer, declared_mime = decode_base64_payload(data)
        return self.upload_file(
            db,
            buffer=buffer,
            name=name,
            content_type=content_type or declared_mime,
            size=len(buffer),
            parent_id=parent_id,
            path=path,
            overwrite=overwrite,
            use_original_name=use_original_name,
        )
