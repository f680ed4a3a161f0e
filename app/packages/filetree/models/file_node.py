"""目录树节点模型：一行即对象存储中的一个文件或文件夹。

存储规则：
- (bucket, key) 唯一；key 在创建时由祖先链推导，重命名/移动不会重算；
- 文件夹的 key 以 '/' 结尾（即占位空对象的 key），文件的 key 不以 '/' 结尾；
- kind 为 folder 时 size、content_type 均为空（由检查约束保证）；
- upload_id 非空表示该行是分片上传的占位文件，完成后保留作为历史标记。
"""

from __future__ import annotations

import enum
import uuid
from dataclasses import dataclass
from typing import Any, Optional, Union

from sqlalchemy import (
    JSON,
    BigInteger,
    CheckConstraint,
    Enum,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from app.packages.filetree.models.base import Base, TimestampMixin


class NodeKind(str, enum.Enum):
    FOLDER = "folder"
    FILE = "file"


@dataclass(frozen=True)
class Folder:
    pass


@dataclass(frozen=True)
class File:
    content_type: str


NodeVariant = Union[Folder, File]


def _new_id() -> str:
    return str(uuid.uuid4())


class FileNode(TimestampMixin, Base):
    __tablename__ = "file_nodes"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    name: Mapped[str] = mapped_column(String(255), index=True)
    kind: Mapped[NodeKind] = mapped_column(
        Enum(NodeKind, name="node_kind", values_callable=lambda e: [m.value for m in e]),
        index=True,
    )
    content_type: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    size: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    bucket: Mapped[str] = mapped_column(String(255))
    key: Mapped[str] = mapped_column(String(1024))
    parent_id: Mapped[Optional[str]] = mapped_column(
        String(36),
        ForeignKey("file_nodes.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    upload_id: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True, index=True)
    upload_progress: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    # 已上传分片记录：[{"eTag": ..., "partNumber": ...}]
    upload_parts: Mapped[Optional[list[dict[str, Any]]]] = mapped_column(JSON, nullable=True)
    store_response: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON, nullable=True)

    __table_args__ = (
        UniqueConstraint("bucket", "key", name="uq_file_nodes_bucket_key"),
        CheckConstraint(
            "kind = 'file' OR (size IS NULL AND content_type IS NULL)",
            name="folder_has_no_size",
        ),
        CheckConstraint(
            "upload_progress IS NULL OR (upload_progress >= 0 AND upload_progress <= 100)",
            name="upload_progress_range",
        ),
    )

    @property
    def is_folder(self) -> bool:
        return self.kind == NodeKind.FOLDER

    @property
    def variant(self) -> NodeVariant:
        if self.is_folder:
            return Folder()
        return File(content_type=self.content_type or "")

    @property
    def is_pending_upload(self) -> bool:
        return self.upload_id is not None and (self.upload_progress or 0) < 100

    def __repr__(self) -> str:  # pragma: no cover - 调试辅助
        return f"<FileNode id={self.id} kind={self.kind.value} key={self.key!r}>"
