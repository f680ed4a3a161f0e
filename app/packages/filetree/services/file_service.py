"""文件服务：目录树各组件的统一入口。

``FileService`` 由网关与配置显式构造，内部组合路径解析、上传、分片上传、
递归删除、移动与同步组件，并补充列表、重命名、移动、签名 URL 等操作。

key 策略：重命名只改 name，不重算 key；移动会重算整棵子树的 key 并搬移对象。
子节点 key 始终以父文件夹已存储的 key 为前缀。
"""

from __future__ import annotations

from typing import Any, Optional

from sqlalchemy.orm import Session

from app.packages.filetree.core.config import FileTreeConfig
from app.packages.filetree.core.constants import DEFAULT_PAGE_SIZE
from app.packages.filetree.core.exceptions import ConflictError, InvalidArgumentError
from app.packages.filetree.core.logger import logger
from app.packages.filetree.crud.file_node import file_node_crud
from app.packages.filetree.models.file_node import FileNode, NodeKind
from app.packages.filetree.services.delete_service import DeleteService
from app.packages.filetree.services.move_service import MoveService
from app.packages.filetree.services.multipart_service import MultipartUploadService
from app.packages.filetree.services.object_store import ObjectStoreGateway, ObjectStream
from app.packages.filetree.services.path_resolver import PathResolver, check_name
from app.packages.filetree.services.sync_service import SyncService
from app.packages.filetree.services.upload_service import UploadService, resolve_parent
from app.packages.filetree.utils.naming import guess_content_type


def serialize_node(node: FileNode, *, include_store_response: bool = False) -> dict[str, Any]:
    data = {
        "id": node.id,
        "name": node.name,
        "kind": node.kind.value,
        "contentType": node.content_type,
        "size": node.size,
        "bucket": node.bucket,
        "key": node.key,
        "parentId": node.parent_id,
        "uploadId": node.upload_id,
        "uploadProgress": node.upload_progress,
        "createTime": node.create_time.isoformat() if node.create_time else None,
        "updateTime": node.update_time.isoformat() if node.update_time else None,
    }
    if include_store_response:
        data["storeResponse"] = node.store_response
    return data


class FileService:
    def __init__(self, gateway: ObjectStoreGateway, config: FileTreeConfig):
        self.gateway = gateway
        self.config = config
        self.resolver = PathResolver(gateway, config)
        self.uploads = UploadService(gateway, config, self.resolver)
        self.multipart = MultipartUploadService(gateway, config, self.resolver)
        self.deletion = DeleteService(gateway, config, self.resolver)
        self.mover = MoveService(gateway, config, self.resolver)
        self.reconciler = SyncService(gateway, config)

    # ----------------------------
    # 查询
    # ----------------------------
    def get_node(self, db: Session, node_id: str) -> FileNode:
        return self.resolver.get_node(db, node_id)

    def list_children(
        self,
        db: Session,
        *,
        parent_id: Optional[str] = None,
        page: int = 1,
        page_size: int = DEFAULT_PAGE_SIZE,
        order_by: str = "name",
        order: str = "asc",
    ) -> dict[str, Any]:
        if parent_id is not None:
            self.resolver.get_folder(db, parent_id)
        rows, total = file_node_crud.page_children(
            db,
            parent_id=parent_id,
            page=page,
            page_size=page_size,
            order_by=order_by,
            order=order,
        )
        return {
            "records": [serialize_node(r) for r in rows],
            "pagination": {"page": page, "pageSize": page_size, "total": total},
        }

    def get_file_path(self, db: Session, node_id: str) -> list[dict[str, Any]]:
        """返回从根到当前节点的面包屑。"""
        return [
            {"id": n.id, "name": n.name, "kind": n.kind.value, "parentId": n.parent_id}
            for n in self.resolver.ancestors(db, node_id)
        ]

    def get_file_body(self, db: Session, node_id: str) -> tuple[FileNode, ObjectStream]:
        node = self.resolver.get_node(db, node_id)
        if node.is_folder:
            raise InvalidArgumentError("文件夹没有内容可供下载")
        return node, self.gateway.get(node.bucket, node.key)

    # ----------------------------
    # 变更
    # ----------------------------
    def create_folder(self, db: Session, *, path: str, parent_id: Optional[str] = None) -> FileNode:
        if not (path or "").strip().strip("/"):
            raise ConflictError("文件夹名称不能为空")
        folder_id = self.resolver.resolve_or_create_folder_chain(db, path, parent_id)
        return self.resolver.get_node(db, folder_id)

    def rename(self, db: Session, node_id: str, *, name: str) -> FileNode:
        new_name = check_name(name)
        node = self.resolver.get_node(db, node_id)
        old_name = node.name
        node.name = new_name
        node = file_node_crud.save(db, node)
        logger.info("node.renamed id=%s %s -> %s key=%s", node_id, old_name, new_name, node.key)
        return node

    def move(self, db: Session, node_id: str, *, parent_id: Optional[str]) -> FileNode:
        return self.mover.move(db, node_id, parent_id=parent_id)

    # ----------------------------
    # 签名 URL
    # ----------------------------
    def get_signed_upload_url(
        self,
        db: Session,
        *,
        name: str,
        content_type: Optional[str] = None,
        size: Optional[int] = None,
        parent_id: Optional[str] = None,
        path: Optional[str] = None,
    ) -> dict[str, Any]:
        """先写入索引行，再返回供客户端直传的 PUT 签名 URL。"""
        name = check_name(name)
        effective_parent = resolve_parent(self.resolver, db, parent_id=parent_id, path=path)
        key = self.multipart.generate_key(db, name=name, parent_id=effective_parent)
        node = file_node_crud.create(
            db,
            {
                "name": name,
                "kind": NodeKind.FILE,
                "content_type": content_type or guess_content_type(name),
                "size": size,
                "bucket": self.config.bucket,
                "key": key,
                "parent_id": effective_parent,
            },
        )
        url = self.gateway.signed_url(node.bucket, node.key, "put", self.config.signed_url_expires_in)
        return {"id": node.id, "key": node.key, "url": url, "expiresIn": self.config.signed_url_expires_in}

    def get_signed_download_url(self, db: Session, node_id: str) -> dict[str, Any]:
        node = self.resolver.get_node(db, node_id)
        url = self.gateway.signed_url(node.bucket, node.key, "get", self.config.signed_url_expires_in)
        return {"id": node.id, "url": url, "expiresIn": self.config.signed_url_expires_in}


def build_file_service(gateway: ObjectStoreGateway, config: FileTreeConfig) -> FileService:
    return FileService(gateway, config)
