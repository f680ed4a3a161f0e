"""递归删除：先删对象存储，再按深度优先删除索引子树。

顺序约定：对象存储先于索引删除。索引删除中途失败时，存储侧已被清空，
剩余索引行会指向不存在的对象；此处只记录日志并上抛，不做补偿。
"""

from __future__ import annotations

from typing import Any

from sqlalchemy.orm import Session

from app.packages.filetree.core.config import FileTreeConfig
from app.packages.filetree.core.exceptions import ConflictError
from app.packages.filetree.core.logger import logger
from app.packages.filetree.crud.file_node import file_node_crud
from app.packages.filetree.services.object_store import ObjectStoreGateway
from app.packages.filetree.services.path_resolver import PathResolver


class DeleteService:
    def __init__(self, gateway: ObjectStoreGateway, config: FileTreeConfig, resolver: PathResolver):
        self.gateway = gateway
        self.config = config
        self.resolver = resolver

    def delete_node(self, db: Session, node_id: str) -> dict[str, Any]:
        node = self.resolver.get_node(db, node_id)
        bucket, key, is_folder = node.bucket, node.key, node.is_folder

        logger.info("delete.start id=%s bucket=%s key=%s folder=%s", node_id, bucket, key, is_folder)
        if is_folder:
            # 文件夹 key 以 '/' 结尾，作为前缀可覆盖整个子树
            objects_deleted = self.gateway.delete_prefix(bucket, key)
        else:
            self.gateway.delete_batch(bucket, [key])
            objects_deleted = 1

        deleted_ids: list[str] = []
        try:
            self._delete_rows(db, node_id, deleted_ids, depth=0)
        except Exception:
            logger.error(
                "delete.index partial failure id=%s key=%s rows_deleted=%s; store objects already removed",
                node_id, key, len(deleted_ids), exc_info=True,
            )
            raise
        logger.info("delete.done id=%s objects=%s rows=%s", node_id, objects_deleted, len(deleted_ids))
        return {"id": node_id, "objectsDeleted": objects_deleted, "rowsDeleted": len(deleted_ids)}

    def _delete_rows(self, db: Session, node_id: str, deleted_ids: list[str], *, depth: int) -> None:
        """删除自身，再逐个递归删除子节点；每行独立提交。"""
        if depth > self.config.max_tree_depth:
            raise ConflictError("目录层级超出上限或存在环", data={"nodeId": node_id})
        node = file_node_crud.get(db, node_id)
        if node is None:
            return
        # 子节点 id 需在删除自身前读取：外键为 ON DELETE SET NULL
        child_ids = file_node_crud.child_ids(db, node_id)
        file_node_crud.hard_delete(db, node)
        deleted_ids.append(node_id)
        for child_id in child_ids:
            self._delete_rows(db, child_id, deleted_ids, depth=depth + 1)
