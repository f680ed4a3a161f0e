"""依赖注入模块：封装 FastAPI 中复用度高的依赖函数。"""

from collections.abc import Generator
from functools import lru_cache

from fastapi import Depends
from sqlalchemy.orm import Session

from app.packages.filetree.core.config import FileTreeConfig, get_settings
from app.packages.filetree.db import session as db_session
from app.packages.filetree.services.file_service import FileService, build_file_service
from app.packages.filetree.services.object_store import ObjectStoreGateway, build_gateway


def get_db() -> Generator[Session, None, None]:
    """生成一个数据库会话，并在请求结束后自动关闭。"""
    db = db_session.SessionLocal()
    try:
        yield db
    finally:
        db.close()


@lru_cache
def get_file_tree_config() -> FileTreeConfig:
    return FileTreeConfig.from_settings(get_settings())


@lru_cache
def get_gateway() -> ObjectStoreGateway:
    """boto3 客户端线程安全且创建开销较大，进程内复用一个。"""
    return build_gateway(get_settings())


def get_file_service(
    gateway: ObjectStoreGateway = Depends(get_gateway),
    config: FileTreeConfig = Depends(get_file_tree_config),
) -> FileService:
    return build_file_service(gateway, config)
