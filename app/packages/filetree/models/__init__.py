"""模型包：导出所有数据库模型，供建表与查询使用。"""

from app.packages.filetree.models.base import Base
from app.packages.filetree.models.file_node import File, FileNode, Folder, NodeKind

__all__ = ["Base", "File", "FileNode", "Folder", "NodeKind"]
