"""对象存储网关：目录树核心与 S3 兼容存储之间的唯一接缝。

核心只依赖 ``ObjectStoreGateway`` 定义的原语（put/get/复制/分页列举/批量删除/分片上传/签名 URL），
超时、重试与退避由 boto3 客户端配置负责，本层不做额外重试。
"""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Iterator, List, Optional

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from app.packages.filetree.core.config import Settings
from app.packages.filetree.core.constants import DELETE_BATCH_SIZE
from app.packages.filetree.core.exceptions import InvalidArgumentError, StoreFailureError
from app.packages.filetree.core.logger import logger


# ------------------------------------------
# 公共数据结构
# ------------------------------------------

@dataclass
class ListedObject:
    key: str
    size: int


@dataclass
class ListPage:
    entries: List[ListedObject] = field(default_factory=list)
    continuation_token: Optional[str] = None


@dataclass
class PartETag:
    e_tag: str
    part_number: int

    def as_record(self) -> dict:
        return {"eTag": self.e_tag, "partNumber": self.part_number}


@dataclass
class ObjectStream:
    chunks: Iterator[bytes]
    content_type: Optional[str] = None
    content_length: Optional[int] = None


SIGNED_OPERATIONS = {"get": "get_object", "put": "put_object"}


class ObjectStoreGateway:
    """对象存储网关接口。"""

    def put(self, bucket: str, key: str, body: bytes = b"", *, content_type: Optional[str] = None) -> dict:
        raise NotImplementedError

    def get(self, bucket: str, key: str) -> ObjectStream:
        raise NotImplementedError

    def list_paginated(
        self,
        bucket: str,
        prefix: Optional[str] = None,
        *,
        continuation_token: Optional[str] = None,
    ) -> ListPage:
        raise NotImplementedError

    def delete_batch(self, bucket: str, keys: List[str]) -> dict:
        raise NotImplementedError

    def copy(self, bucket: str, source_key: str, target_key: str) -> dict:
        raise NotImplementedError

    def create_multipart_upload(self, bucket: str, key: str, *, content_type: Optional[str] = None) -> str:
        raise NotImplementedError

    def upload_part(self, bucket: str, key: str, upload_id: str, part_number: int, body: bytes) -> str:
        raise NotImplementedError

    def complete_multipart_upload(self, bucket: str, key: str, upload_id: str, parts: List[PartETag]) -> dict:
        raise NotImplementedError

    def abort_multipart_upload(self, bucket: str, key: str, upload_id: str) -> dict:
        raise NotImplementedError

    def signed_url(self, bucket: str, key: str, operation: str, ttl_seconds: int) -> str:
        raise NotImplementedError

    def public_url(self, bucket: str, key: str) -> str:
        raise NotImplementedError

    # 以下组合操作只依赖上面的原语

    def list_all(self, bucket: str, prefix: Optional[str] = None) -> Iterator[ListedObject]:
        """沿 continuation token 翻页直到耗尽。"""
        token: Optional[str] = None
        while True:
            page = self.list_paginated(bucket, prefix, continuation_token=token)
            yield from page.entries
            token = page.continuation_token
            if not token:
                return

    def delete_keys(self, bucket: str, keys: List[str]) -> int:
        """按单批上限分批删除指定 key，返回删除数量。"""
        for i in range(0, len(keys), DELETE_BATCH_SIZE):
            self.delete_batch(bucket, keys[i : i + DELETE_BATCH_SIZE])
        return len(keys)

    def delete_prefix(self, bucket: str, prefix: str) -> int:
        """删除所有以 ``prefix`` 开头的对象，返回删除数量。"""
        deleted = 0
        token: Optional[str] = None
        while True:
            page = self.list_paginated(bucket, prefix, continuation_token=token)
            deleted += self.delete_keys(bucket, [entry.key for entry in page.entries])
            token = page.continuation_token
            if not token:
                return deleted

    def copy_prefix(self, bucket: str, source_prefix: str, target_prefix: str) -> list[str]:
        """把 ``source_prefix`` 下的全部对象复制到 ``target_prefix`` 下，保留相对路径。

        先取完整快照再复制；返回被复制的源 key，供调用方随后删除。
        """
        source_keys = [entry.key for entry in self.list_all(bucket, source_prefix)]
        for key in source_keys:
            self.copy(bucket, key, target_prefix + key[len(source_prefix) :])
        return source_keys


# ------------------------------------------
# S3 实现（boto3）
# ------------------------------------------


class S3Gateway(ObjectStoreGateway):
    def __init__(
        self,
        *,
        region: str,
        access_key_id: Optional[str] = None,
        secret_access_key: Optional[str] = None,
        endpoint_url: Optional[str] = None,
        page_size: int = 1000,
        max_attempts: int = 3,
        connect_timeout: int = 10,
        read_timeout: int = 60,
        client: Any = None,
    ):
        self.region = region
        self.endpoint_url = endpoint_url
        self.page_size = page_size
        if client is not None:
            self._client = client
            return
        self._client = boto3.client(
            "s3",
            region_name=region,
            aws_access_key_id=access_key_id,
            aws_secret_access_key=secret_access_key,
            endpoint_url=endpoint_url,
            config=Config(
                signature_version="s3v4",
                retries={"max_attempts": max_attempts, "mode": "standard"},
                connect_timeout=connect_timeout,
                read_timeout=read_timeout,
            ),
        )

    @contextmanager
    def _call(self, operation: str, bucket: str, key: Optional[str] = None):
        try:
            yield
        except ClientError as exc:
            error = exc.response.get("Error", {})
            logger.error(
                "s3.%s failed bucket=%s key=%s code=%s", operation, bucket, key, error.get("Code")
            )
            raise StoreFailureError(
                f"对象存储操作失败: {operation} ({error.get('Code') or 'unknown'})",
                operation=operation,
                data={"bucket": bucket, "key": key, "code": error.get("Code")},
            ) from exc
        except BotoCoreError as exc:
            logger.error("s3.%s failed bucket=%s key=%s error=%s", operation, bucket, key, exc)
            raise StoreFailureError(
                f"对象存储不可用: {operation}",
                operation=operation,
                data={"bucket": bucket, "key": key},
            ) from exc

    def put(self, bucket: str, key: str, body: bytes = b"", *, content_type: Optional[str] = None) -> dict:
        params: dict[str, Any] = {"Bucket": bucket, "Key": key, "Body": body}
        if content_type:
            params["ContentType"] = content_type
        with self._call("put_object", bucket, key):
            return self._client.put_object(**params)

    def get(self, bucket: str, key: str) -> ObjectStream:
        with self._call("get_object", bucket, key):
            resp = self._client.get_object(Bucket=bucket, Key=key)
        body = resp["Body"]
        return ObjectStream(
            chunks=body.iter_chunks(),
            content_type=resp.get("ContentType"),
            content_length=resp.get("ContentLength"),
        )

    def list_paginated(
        self,
        bucket: str,
        prefix: Optional[str] = None,
        *,
        continuation_token: Optional[str] = None,
    ) -> ListPage:
        params: dict[str, Any] = {"Bucket": bucket, "MaxKeys": self.page_size}
        if prefix:
            params["Prefix"] = prefix
        if continuation_token:
            params["ContinuationToken"] = continuation_token
        with self._call("list_objects_v2", bucket, prefix):
            resp = self._client.list_objects_v2(**params)
        entries = [
            ListedObject(key=obj["Key"], size=int(obj.get("Size") or 0))
            for obj in resp.get("Contents", [])
            if obj.get("Key")
        ]
        token = resp.get("NextContinuationToken") if resp.get("IsTruncated") else None
        return ListPage(entries=entries, continuation_token=token)

    def delete_batch(self, bucket: str, keys: List[str]) -> dict:
        if not keys:
            return {}
        with self._call("delete_objects", bucket, keys[0]):
            resp = self._client.delete_objects(
                Bucket=bucket,
                Delete={"Objects": [{"Key": k} for k in keys], "Quiet": True},
            )
        errors = resp.get("Errors") or []
        if errors:
            logger.error("s3.delete_objects partial failure bucket=%s errors=%s", bucket, errors[:5])
            raise StoreFailureError(
                f"对象存储批量删除失败: {len(errors)} 个对象未删除",
                operation="delete_objects",
                data={"bucket": bucket, "failed": [e.get("Key") for e in errors]},
            )
        return resp

    def copy(self, bucket: str, source_key: str, target_key: str) -> dict:
        with self._call("copy_object", bucket, source_key):
            return self._client.copy_object(
                Bucket=bucket,
                Key=target_key,
                CopySource={"Bucket": bucket, "Key": source_key},
            )

    def create_multipart_upload(self, bucket: str, key: str, *, content_type: Optional[str] = None) -> str:
        params: dict[str, Any] = {"Bucket": bucket, "Key": key}
        if content_type:
            params["ContentType"] = content_type
        with self._call("create_multipart_upload", bucket, key):
            resp = self._client.create_multipart_upload(**params)
        return resp["UploadId"]

    def upload_part(self, bucket: str, key: str, upload_id: str, part_number: int, body: bytes) -> str:
        with self._call("upload_part", bucket, key):
            resp = self._client.upload_part(
                Bucket=bucket,
                Key=key,
                UploadId=upload_id,
                PartNumber=part_number,
                Body=body,
            )
        return resp["ETag"]

    def complete_multipart_upload(self, bucket: str, key: str, upload_id: str, parts: List[PartETag]) -> dict:
        with self._call("complete_multipart_upload", bucket, key):
            return self._client.complete_multipart_upload(
                Bucket=bucket,
                Key=key,
                UploadId=upload_id,
                MultipartUpload={"Parts": [{"ETag": p.e_tag, "PartNumber": p.part_number} for p in parts]},
            )

    def abort_multipart_upload(self, bucket: str, key: str, upload_id: str) -> dict:
        with self._call("abort_multipart_upload", bucket, key):
            return self._client.abort_multipart_upload(Bucket=bucket, Key=key, UploadId=upload_id)

    def signed_url(self, bucket: str, key: str, operation: str, ttl_seconds: int) -> str:
        client_method = SIGNED_OPERATIONS.get(operation)
        if client_method is None:
            raise InvalidArgumentError(f"不支持的签名操作: {operation}")
        with self._call("generate_presigned_url", bucket, key):
            return self._client.generate_presigned_url(
                client_method,
                Params={"Bucket": bucket, "Key": key},
                ExpiresIn=ttl_seconds,
            )

    def public_url(self, bucket: str, key: str) -> str:
        """未签名的直链；配置了自定义 endpoint 时使用路径风格。"""
        if self.endpoint_url:
            return f"{self.endpoint_url.rstrip('/')}/{bucket}/{key}"
        return f"https://{bucket}.s3.{self.region}.amazonaws.com/{key}"


def build_gateway(settings: Settings) -> ObjectStoreGateway:
    return S3Gateway(
        region=settings.s3_region,
        access_key_id=settings.s3_access_key_id,
        secret_access_key=settings.s3_secret_access_key,
        endpoint_url=settings.s3_endpoint_url,
        page_size=settings.s3_list_page_size,
        max_attempts=settings.s3_max_attempts,
        connect_timeout=settings.s3_connect_timeout,
        read_timeout=settings.s3_read_timeout,
    )
