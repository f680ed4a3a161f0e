"""测试夹具：为 pytest 提供数据库、内存对象存储与客户端的共享配置。"""

import os
from typing import Generator, Iterator, List, Optional

TEST_DB_PATH = os.path.join(os.path.dirname(__file__), "test.db")
TEST_DATABASE_URL = f"sqlite:///{TEST_DB_PATH}"
# 必须在导入 app 之前设置，避免模块级引擎连接 PostgreSQL
os.environ.setdefault("DATABASE_URL", TEST_DATABASE_URL)

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from app.main import app
from app.packages.filetree.core.config import FileTreeConfig
from app.packages.filetree.core.dependencies import get_db, get_file_service
from app.packages.filetree.db import session as db_session
from app.packages.filetree.models import Base, FileNode
from app.packages.filetree.services.file_service import FileService
from app.packages.filetree.services.object_store import (
    ListedObject,
    ListPage,
    ObjectStoreGateway,
    ObjectStream,
    PartETag,
)

TEST_BUCKET = "test-bucket"


class InMemoryGateway(ObjectStoreGateway):
    """以有序字典模拟存储桶，页大小很小以覆盖翻页逻辑。"""

    def __init__(self, page_size: int = 2):
        self.page_size = page_size
        self.buckets: dict[str, dict[str, tuple[bytes, Optional[str]]]] = {}
        self.uploads: dict[str, dict] = {}
        self.calls: list[tuple[str, str]] = []
        self._upload_seq = 0

    def objects(self, bucket: str = TEST_BUCKET) -> dict[str, tuple[bytes, Optional[str]]]:
        return self.buckets.setdefault(bucket, {})

    def keys(self, bucket: str = TEST_BUCKET) -> list[str]:
        return sorted(self.objects(bucket))

    def put(self, bucket, key, body=b"", *, content_type=None):
        self.calls.append(("put", key))
        self.objects(bucket)[key] = (bytes(body), content_type)
        return {"ETag": f'"{len(body)}"', "Bucket": bucket, "Key": key}

    def get(self, bucket, key):
        body, content_type = self.objects(bucket)[key]
        return ObjectStream(chunks=iter([body]), content_type=content_type, content_length=len(body))

    def list_paginated(self, bucket, prefix=None, *, continuation_token=None):
        self.calls.append(("list", prefix or ""))
        keys = [k for k in self.keys(bucket) if k.startswith(prefix or "")]
        # token 为上一页最后一个 key，与 S3 的 StartAfter 语义一致
        if continuation_token:
            keys = [k for k in keys if k > continuation_token]
        chunk = keys[: self.page_size]
        token = chunk[-1] if len(keys) > self.page_size else None
        store = self.objects(bucket)
        return ListPage(
            entries=[ListedObject(key=k, size=len(store[k][0])) for k in chunk],
            continuation_token=token,
        )

    def delete_batch(self, bucket, keys):
        self.calls.append(("delete", ",".join(keys)))
        store = self.objects(bucket)
        for key in keys:
            store.pop(key, None)
        return {"Deleted": [{"Key": k} for k in keys]}

    def copy(self, bucket, source_key, target_key):
        self.calls.append(("copy", f"{source_key}->{target_key}"))
        store = self.objects(bucket)
        store[target_key] = store[source_key]
        return {"CopyObjectResult": {"ETag": '"copy"'}}

    def create_multipart_upload(self, bucket, key, *, content_type=None):
        self._upload_seq += 1
        upload_id = f"upload-{self._upload_seq}"
        self.uploads[upload_id] = {"bucket": bucket, "key": key, "content_type": content_type, "parts": {}}
        return upload_id

    def upload_part(self, bucket, key, upload_id, part_number, body):
        self.uploads[upload_id]["parts"][part_number] = bytes(body)
        return f'"etag-{part_number}"'

    def complete_multipart_upload(self, bucket, key, upload_id, parts: List[PartETag]):
        upload = self.uploads.pop(upload_id)
        body = b"".join(upload["parts"].get(p.part_number, b"") for p in parts)
        self.objects(bucket)[key] = (body, upload["content_type"])
        return {"Bucket": bucket, "Key": key, "Location": f"https://{bucket}/{key}", "ETag": '"final"'}

    def abort_multipart_upload(self, bucket, key, upload_id):
        self.uploads.pop(upload_id, None)
        return {"ResponseMetadata": {"HTTPStatusCode": 204}}

    def signed_url(self, bucket, key, operation, ttl_seconds):
        return f"https://signed.test/{bucket}/{key}?op={operation}&ttl={ttl_seconds}"

    def public_url(self, bucket, key):
        return f"https://{bucket}.s3.us-east-1.amazonaws.com/{key}"


@pytest.fixture(scope="session", autouse=True)
def setup_test_database() -> Generator[None, None, None]:
    """创建隔离的 SQLite 测试数据库，并在会话结束后清理。"""
    if os.path.exists(TEST_DB_PATH):
        os.remove(TEST_DB_PATH)

    engine = create_engine(TEST_DATABASE_URL, connect_args={"check_same_thread": False})
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    db_session.engine = engine
    db_session.SessionLocal = TestingSessionLocal

    Base.metadata.create_all(bind=engine)
    yield

    engine.dispose()
    if os.path.exists(TEST_DB_PATH):
        os.remove(TEST_DB_PATH)


@pytest.fixture(autouse=True)
def clean_tables() -> Iterator[None]:
    """每个用例结束后清空索引表。"""
    yield
    session = db_session.SessionLocal()
    try:
        session.query(FileNode).delete()
        session.commit()
    finally:
        session.close()


@pytest.fixture()
def db_session_fixture() -> Generator[Session, None, None]:
    """提供给测试用例使用的数据库会话。"""
    session = db_session.SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def gateway() -> InMemoryGateway:
    return InMemoryGateway()


@pytest.fixture()
def tree_config() -> FileTreeConfig:
    return FileTreeConfig(
        bucket=TEST_BUCKET,
        cdn_hostname="https://cdn.test",
        signed_url_expires_in=600,
    )


@pytest.fixture()
def file_service(gateway, tree_config) -> FileService:
    return FileService(gateway, tree_config)


@pytest.fixture()
def client(gateway, tree_config):
    """构建 FastAPI TestClient，并注入测试专用的数据库与存储依赖。"""
    def override_get_db() -> Generator[Session, None, None]:
        session = db_session.SessionLocal()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_file_service] = lambda: FileService(gateway, tree_config)

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
