"""FileNode CRUD：目录树索引的全部查询入口。"""

from __future__ import annotations

from typing import Any, Iterable, Optional

from sqlalchemy import case, func
from sqlalchemy.orm import Session

from app.packages.filetree.crud.base import CRUDBase
from app.packages.filetree.models.file_node import FileNode, NodeKind

_ORDER_COLUMNS = {
    "name": lambda: func.lower(FileNode.name),
    "createTime": lambda: FileNode.create_time,
    "updateTime": lambda: FileNode.update_time,
    "size": lambda: FileNode.size,
}


def _filter_parent(query, parent_id: Optional[str]):
    if parent_id is None:
        return query.filter(FileNode.parent_id.is_(None))
    return query.filter(FileNode.parent_id == parent_id)


class CRUDFileNode(CRUDBase[FileNode]):
    def key_in_use(self, db: Session, *, bucket: str, key: str, as_prefix: bool = False) -> bool:
        """key 是否已被占用；``as_prefix`` 时该前缀下存在任意行也视为占用。"""
        q = self.query(db).filter(FileNode.bucket == bucket)
        if as_prefix:
            q = q.filter(FileNode.key.startswith(key, autoescape=True))
        else:
            q = q.filter(FileNode.key == key)
        return q.first() is not None

    def get_by_upload_id(self, db: Session, upload_id: str) -> FileNode | None:
        return self.query(db).filter(FileNode.upload_id == upload_id).first()

    def find_child(
        self,
        db: Session,
        *,
        bucket: str,
        parent_id: Optional[str],
        name: str,
        kind: Optional[NodeKind] = None,
    ) -> FileNode | None:
        q = _filter_parent(self.query(db), parent_id).filter(FileNode.bucket == bucket).filter(FileNode.name == name)
        if kind is not None:
            q = q.filter(FileNode.kind == kind)
        return q.order_by(FileNode.create_time.asc()).first()

    def child_ids(self, db: Session, parent_id: str) -> list[str]:
        rows = db.query(FileNode.id).filter(FileNode.parent_id == parent_id).all()
        return [row[0] for row in rows]

    def page_children(
        self,
        db: Session,
        *,
        parent_id: Optional[str],
        page: int,
        page_size: int,
        order_by: str = "name",
        order: str = "asc",
    ) -> tuple[list[FileNode], int]:
        q = _filter_parent(self.query(db), parent_id)
        total = q.count()
        sort_col = _ORDER_COLUMNS.get(order_by, _ORDER_COLUMNS["name"])()
        sort_expr = sort_col.asc() if order == "asc" else sort_col.desc()
        # 文件夹优先，其次按指定列排序，id 兜底保证翻页稳定
        rows = (
            q.order_by(case((FileNode.kind == NodeKind.FOLDER, 0), else_=1), sort_expr, FileNode.id.asc())
            .offset((page - 1) * page_size)
            .limit(page_size)
            .all()
        )
        return rows, total

    def bulk_create(self, db: Session, rows: Iterable[dict[str, Any]]) -> list[FileNode]:
        """批量插入并一次提交，返回带主键的对象列表。"""
        objs = [FileNode(**row) for row in rows]
        db.add_all(objs)
        self._commit(db)
        return objs


file_node_crud = CRUDFileNode(FileNode)
