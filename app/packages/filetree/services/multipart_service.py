"""分片上传状态机：INITIATED -> PART_UPLOADING -> COMPLETED / ABORTED。

分片顺序、完整性与拼装全部交给对象存储负责，这里只转发请求并维护占位行：
- upload_progress 直接采用调用方给出的进度提示，不与实际字节数核对；
- 完成后保留 upload_id 作为历史标记；
- 取消时默认保留占位行，可通过配置改为删除。
"""

from __future__ import annotations

from typing import Any, Iterable, Optional

from sqlalchemy.orm import Session

from app.packages.filetree.core.config import FileTreeConfig
from app.packages.filetree.core.exceptions import InvalidArgumentError, NotFoundError
from app.packages.filetree.core.logger import logger
from app.packages.filetree.crud.file_node import file_node_crud
from app.packages.filetree.models.file_node import FileNode, NodeKind
from app.packages.filetree.services.object_store import ObjectStoreGateway, PartETag
from app.packages.filetree.services.path_resolver import PathResolver, check_name
from app.packages.filetree.services.upload_service import resolve_parent
from app.packages.filetree.utils.naming import guess_content_type, to_jsonable, unique_token


def _as_part(item: Any) -> PartETag:
    if isinstance(item, PartETag):
        return item
    e_tag = item.get("eTag") or item.get("ETag")
    part_number = item.get("partNumber") or item.get("PartNumber")
    if not e_tag or not part_number:
        raise InvalidArgumentError("分片信息缺少 eTag 或 partNumber")
    return PartETag(e_tag=e_tag, part_number=int(part_number))


class MultipartUploadService:
    def __init__(self, gateway: ObjectStoreGateway, config: FileTreeConfig, resolver: PathResolver):
        self.gateway = gateway
        self.config = config
        self.resolver = resolver

    def _get_by_upload_id(self, db: Session, upload_id: str) -> FileNode:
        node = file_node_crud.get_by_upload_id(db, upload_id)
        if node is None:
            raise NotFoundError(f"分片上传不存在: {upload_id}")
        return node

    def generate_key(self, db: Session, *, name: str, parent_id: Optional[str]) -> str:
        """生成 ``<父文件夹 key><uuid><扩展名>`` 形式的对象 key。"""
        return self.resolver.available_key(db, parent_id, unique_token(name))

    def create_multipart_upload(
        self,
        db: Session,
        *,
        name: str,
        content_type: Optional[str] = None,
        size: Optional[int] = None,
        parent_id: Optional[str] = None,
        path: Optional[str] = None,
    ) -> FileNode:
        name = check_name(name)
        effective_parent = resolve_parent(self.resolver, db, parent_id=parent_id, path=path)
        key = self.generate_key(db, name=name, parent_id=effective_parent)
        content_type = content_type or guess_content_type(name)

        upload_id = self.gateway.create_multipart_upload(self.config.bucket, key, content_type=content_type)
        node = file_node_crud.create(
            db,
            {
                "name": name,
                "kind": NodeKind.FILE,
                "content_type": content_type,
                "size": size,
                "bucket": self.config.bucket,
                "key": key,
                "parent_id": effective_parent,
                "upload_id": upload_id,
                "upload_progress": 0,
                "upload_parts": [],
            },
        )
        logger.info("multipart.initiated id=%s key=%s upload_id=%s", node.id, key, upload_id)
        return node

    def upload_part(
        self,
        db: Session,
        *,
        upload_id: str,
        part_number: int,
        upload_progress: int,
        body: bytes,
    ) -> dict[str, Any]:
        if part_number < 1:
            raise InvalidArgumentError("partNumber 必须从 1 开始")
        if not 0 <= upload_progress <= 100:
            raise InvalidArgumentError("uploadProgress 必须在 0-100 之间")
        node = self._get_by_upload_id(db, upload_id)

        e_tag = self.gateway.upload_part(node.bucket, node.key, upload_id, part_number, body)

        part = PartETag(e_tag=e_tag, part_number=part_number)
        parts = [p for p in (node.upload_parts or []) if p.get("partNumber") != part_number]
        parts.append(part.as_record())
        # 重新赋值以触发 JSON 列变更检测
        node.upload_parts = parts
        node.upload_progress = upload_progress
        file_node_crud.save(db, node)
        logger.info(
            "multipart.part upload_id=%s part=%s progress=%s", upload_id, part_number, upload_progress
        )
        return part.as_record()

    def complete_multipart_upload(
        self,
        db: Session,
        *,
        upload_id: str,
        parts: Optional[Iterable[Any]] = None,
    ) -> FileNode:
        node = self._get_by_upload_id(db, upload_id)
        if parts is None:
            recorded = sorted(node.upload_parts or [], key=lambda p: p["partNumber"])
            part_list = [_as_part(p) for p in recorded]
        else:
            part_list = [_as_part(p) for p in parts]
        if not part_list:
            raise InvalidArgumentError("缺少分片信息，无法完成上传")

        response = self.gateway.complete_multipart_upload(node.bucket, node.key, upload_id, part_list)

        node.store_response = to_jsonable(response)
        node.upload_progress = 100
        node = file_node_crud.save(db, node)
        logger.info("multipart.completed id=%s upload_id=%s parts=%s", node.id, upload_id, len(part_list))
        return node

    def abort_multipart_upload(self, db: Session, *, upload_id: str) -> dict[str, Any]:
        node = self._get_by_upload_id(db, upload_id)
        response = self.gateway.abort_multipart_upload(node.bucket, node.key, upload_id)
        placeholder_deleted = False
        if self.config.abort_deletes_placeholder:
            file_node_crud.hard_delete(db, node)
            placeholder_deleted = True
        else:
            logger.warning("multipart.aborted placeholder kept id=%s upload_id=%s", node.id, upload_id)
        return {"uploadId": upload_id, "placeholderDeleted": placeholder_deleted, "response": to_jsonable(response)}
