"""路径解析：沿 parent_id 链解析路径，按父文件夹 key 分配对象 key，并按需创建文件夹链。

key 约定：每个节点的 key 都以其父文件夹的 key 为前缀，文件夹 key 独占该前缀下的子树。
重命名不改 key；移动会重算整棵子树的 key 并搬移对象。
"""

from __future__ import annotations

from typing import Optional

from sqlalchemy.orm import Session

from app.packages.filetree.core.config import FileTreeConfig
from app.packages.filetree.core.constants import KEY_ALLOCATION_ATTEMPTS, KEY_DELIMITER
from app.packages.filetree.core.exceptions import ConflictError, InvalidArgumentError, NotFoundError
from app.packages.filetree.core.logger import logger
from app.packages.filetree.crud.file_node import file_node_crud
from app.packages.filetree.models.file_node import FileNode, NodeKind
from app.packages.filetree.services.object_store import ObjectStoreGateway
from app.packages.filetree.utils.naming import disambiguate, folder_key, split_path, to_jsonable


def check_name(name: Optional[str]) -> str:
    """校验单个节点名称：非空且不含 '/'，返回去除首尾空白后的名称。"""
    cleaned = (name or "").strip()
    if not cleaned or KEY_DELIMITER in cleaned:
        raise InvalidArgumentError("名称不能为空且不能包含 '/'", data={"name": name})
    return cleaned


class PathResolver:
    def __init__(self, gateway: ObjectStoreGateway, config: FileTreeConfig):
        self.gateway = gateway
        self.config = config

    def get_node(self, db: Session, node_id: str) -> FileNode:
        node = file_node_crud.get(db, node_id)
        if node is None:
            raise NotFoundError(f"节点不存在: {node_id}")
        return node

    def get_folder(self, db: Session, folder_id: str) -> FileNode:
        node = self.get_node(db, folder_id)
        if not node.is_folder:
            raise InvalidArgumentError(f"目标不是文件夹: {folder_id}")
        return node

    def ancestors(self, db: Session, node_id: str) -> list[FileNode]:
        """返回从根到 ``node_id`` 的节点链（含自身），每层一次查询。"""
        chain: list[FileNode] = []
        current_id: Optional[str] = node_id
        while current_id is not None:
            if len(chain) >= self.config.max_tree_depth:
                logger.error("path.ancestors depth exceeded node_id=%s depth=%s", node_id, len(chain))
                raise ConflictError("目录层级超出上限或存在环", data={"nodeId": node_id})
            node = file_node_crud.get(db, current_id)
            if node is None:
                raise NotFoundError(f"节点不存在: {current_id}")
            chain.append(node)
            current_id = node.parent_id
        chain.reverse()
        return chain

    def resolve_path_string(self, db: Session, node_id: str) -> str:
        """按名称拼接根到叶的路径：'docs/2024/report.pdf'。"""
        return "/".join(node.name for node in self.ancestors(db, node_id))

    def key_prefix(self, db: Session, parent_id: Optional[str]) -> str:
        """子节点 key 的前缀：父文件夹已存储的 key（以 '/' 结尾），根目录为空串。

        取已存储的 key 而非当前名称链，重命名后子树仍落在同一前缀下。
        """
        if parent_id is None:
            return ""
        return self.get_folder(db, parent_id).key

    def available_key(self, db: Session, parent_id: Optional[str], name: str, *, folder: bool = False) -> str:
        """在父目录下为 ``name`` 分配一个未被占用的 key。

        文件夹的 key 作为前缀独占其子树，因此该前缀下已有任意行即视为占用。
        占用时在扩展名前插入随机后缀重试。
        """
        prefix = self.key_prefix(db, parent_id)
        candidate = name
        for _ in range(KEY_ALLOCATION_ATTEMPTS):
            key = folder_key(prefix + candidate) if folder else prefix + candidate
            if not file_node_crud.key_in_use(db, bucket=self.config.bucket, key=key, as_prefix=folder):
                return key
            candidate = disambiguate(name)
        raise ConflictError(f"无法为 {name} 分配可用的对象 key", data={"prefix": prefix})

    def subtree(self, db: Session, node_id: str) -> list[FileNode]:
        """深度优先返回以 ``node_id`` 为根的全部节点（含自身）。"""
        nodes: list[FileNode] = []
        stack = [(node_id, 0)]
        while stack:
            current_id, depth = stack.pop()
            if depth > self.config.max_tree_depth:
                raise ConflictError("目录层级超出上限或存在环", data={"nodeId": node_id})
            nodes.append(self.get_node(db, current_id))
            stack.extend((child_id, depth + 1) for child_id in file_node_crud.child_ids(db, current_id))
        return nodes

    def resolve_or_create_folder_chain(self, db: Session, path: str, parent_id: Optional[str] = None) -> str:
        """逐段查找或创建文件夹，返回最深一级文件夹的 id。

        已存在的同名文件夹直接复用，重复调用返回同一个 id。
        新文件夹会先写入零字节占位对象 ``<path>/``，再写入索引行。
        """
        segments = split_path(path)
        if not segments:
            raise InvalidArgumentError("文件夹路径不能为空")
        if parent_id is not None:
            self.get_folder(db, parent_id)

        current_id = parent_id
        for segment in segments:
            existing = file_node_crud.find_child(
                db,
                bucket=self.config.bucket,
                parent_id=current_id,
                name=segment,
                kind=NodeKind.FOLDER,
            )
            if existing is not None:
                current_id = existing.id
                continue
            current_id = self._create_folder(db, parent_id=current_id, name=segment).id
        return current_id

    def _create_folder(self, db: Session, *, parent_id: Optional[str], name: str) -> FileNode:
        key = self.available_key(db, parent_id, name, folder=True)

        output = self.gateway.put(self.config.bucket, key, b"")
        folder = file_node_crud.create(
            db,
            {
                "name": name,
                "kind": NodeKind.FOLDER,
                "bucket": self.config.bucket,
                "key": key,
                "parent_id": parent_id,
                "store_response": to_jsonable(output),
            },
        )
        logger.info("folder.created id=%s key=%s", folder.id, key)
        return folder
