"""文件同步服务：从存储桶的原始对象列表重建目录树索引。

仅用于索引丢失后的恢复：
- 前置条件是索引表为空，否则直接拒绝，防止重复导入；
- 第一轮批量插入全部对象（parent_id 为空），第二轮按 key 推导父级并回填；
- 存储中没有显式占位对象的中间目录无法还原，对应子节点保持为根节点。
"""

from __future__ import annotations

from typing import Any

from sqlalchemy.orm import Session

from app.packages.filetree.core.config import FileTreeConfig
from app.packages.filetree.core.exceptions import ConflictError
from app.packages.filetree.core.logger import logger
from app.packages.filetree.crud.file_node import file_node_crud
from app.packages.filetree.models.file_node import NodeKind
from app.packages.filetree.services.object_store import ListedObject, ObjectStoreGateway
from app.packages.filetree.utils.naming import guess_content_type, last_segment, parent_key_of


def classify(entry: ListedObject, bucket: str) -> dict[str, Any]:
    """将列举结果转换为待插入的节点字段。"""
    if entry.key.endswith("/"):
        return {
            "name": last_segment(entry.key),
            "kind": NodeKind.FOLDER,
            "bucket": bucket,
            "key": entry.key,
        }
    name = entry.key.rsplit("/", 1)[-1]
    return {
        "name": name,
        "kind": NodeKind.FILE,
        "content_type": guess_content_type(name),
        "size": entry.size,
        "bucket": bucket,
        "key": entry.key,
    }


class SyncService:
    def __init__(self, gateway: ObjectStoreGateway, config: FileTreeConfig):
        self.gateway = gateway
        self.config = config

    def sync(self, db: Session) -> dict[str, int]:
        existing = file_node_crud.count(db)
        if existing > 0:
            raise ConflictError(
                "索引表非空，请先清空后再同步",
                data={"count": existing},
            )

        bucket = self.config.bucket
        logger.info("sync.start bucket=%s", bucket)

        rows = [classify(entry, bucket) for entry in self.gateway.list_all(bucket)]
        # 根级占位对象 '/' 没有名称，跳过
        rows = [row for row in rows if row["name"]]
        nodes = file_node_crud.bulk_create(db, rows)

        id_by_key = {node.key: node.id for node in nodes}
        linked = 0
        for node in nodes:
            parent_key = parent_key_of(node.key)
            if parent_key is None:
                continue
            parent_id = id_by_key.get(parent_key)
            if parent_id is None:
                logger.debug("sync.orphan key=%s missing_parent=%s", node.key, parent_key)
                continue
            node.parent_id = parent_id
            file_node_crud.save(db, node, auto_commit=False)
            linked += 1
        if linked:
            db.commit()

        folders = sum(1 for row in rows if row["kind"] == NodeKind.FOLDER)
        result = {"total": len(nodes), "folders": folders, "files": len(nodes) - folders, "linked": linked}
        logger.info("sync.done bucket=%s %s", bucket, result)
        return result
