"""移动节点：重算整棵子树的 key，并把对象搬到新前缀下。

顺序：复制对象 -> 更新索引 -> 删除旧对象。三步各自提交，不是原子操作：
- 复制后索引更新失败，新前缀下会留下副本；
- 索引更新后删除失败，旧前缀下会留下残留对象。
两种情况都只记录日志并上抛。
"""

from __future__ import annotations

from sqlalchemy.orm import Session

from app.packages.filetree.core.config import FileTreeConfig
from app.packages.filetree.core.exceptions import ConflictError, InvalidArgumentError
from app.packages.filetree.core.logger import logger
from app.packages.filetree.crud.file_node import file_node_crud
from app.packages.filetree.models.file_node import FileNode
from app.packages.filetree.services.object_store import ObjectStoreGateway
from app.packages.filetree.services.path_resolver import PathResolver
from app.packages.filetree.utils.naming import last_segment


class MoveService:
    def __init__(self, gateway: ObjectStoreGateway, config: FileTreeConfig, resolver: PathResolver):
        self.gateway = gateway
        self.config = config
        self.resolver = resolver

    def move(self, db: Session, node_id: str, *, parent_id: str | None) -> FileNode:
        node = self.resolver.get_node(db, node_id)
        if parent_id is not None:
            self.resolver.get_folder(db, parent_id)
            # 目标父级的祖先链不能包含自身，否则会形成环
            if any(a.id == node_id for a in self.resolver.ancestors(db, parent_id)):
                raise InvalidArgumentError("不能将节点移动到自身或其子目录下")
        if node.parent_id == parent_id:
            return node

        nodes = self.resolver.subtree(db, node_id)
        pending = [n.id for n in nodes if n.is_pending_upload]
        if pending:
            # 未完成的分片上传绑定在旧 key 上
            raise ConflictError("存在未完成的分片上传，无法移动", data={"uploading": pending})

        bucket, old_key = node.bucket, node.key
        new_key = self.resolver.available_key(db, parent_id, last_segment(old_key), folder=node.is_folder)

        if node.is_folder:
            copied = self.gateway.copy_prefix(bucket, old_key, new_key)
        else:
            copied = [e.key for e in self.gateway.list_all(bucket, old_key) if e.key == old_key]
            for key in copied:
                self.gateway.copy(bucket, key, new_key)

        for n in nodes:
            if n.key.startswith(old_key):
                n.key = new_key + n.key[len(old_key) :]
            else:
                logger.warning("move.key outside subtree prefix id=%s key=%s prefix=%s", n.id, n.key, old_key)
            file_node_crud.save(db, n, auto_commit=False)
        node.parent_id = parent_id
        try:
            node = file_node_crud.save(db, node)
        except Exception:
            logger.error(
                "move.index failed id=%s; copies left under %s", node_id, new_key, exc_info=True,
            )
            raise

        # 只删除复制过的旧对象，不按前缀清空
        self.gateway.delete_keys(bucket, copied)
        logger.info(
            "node.moved id=%s parent_id=%s key=%s -> %s nodes=%s objects=%s",
            node_id, parent_id, old_key, new_key, len(nodes), len(copied),
        )
        return node
