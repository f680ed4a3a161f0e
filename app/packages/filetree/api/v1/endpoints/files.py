"""文件与文件夹操作路由。

路由层只做参数整理与响应封装，所有业务规则在 FileService 中实现。
"""

from __future__ import annotations

from typing import Optional
from urllib.parse import quote

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from app.packages.filetree.api.v1.schemas.files import (
    Base64UploadBody,
    FilesListResponse,
    FilesMutationResponse,
    FolderCreateBody,
    MoveBody,
    RenameBody,
    SignedUploadBody,
)
from app.packages.filetree.core.constants import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE
from app.packages.filetree.core.dependencies import get_db, get_file_service
from app.packages.filetree.core.logger import logger
from app.packages.filetree.core.responses import create_response
from app.packages.filetree.services.file_service import FileService, serialize_node

router = APIRouter(tags=["files"])


@router.get("/files", response_model=FilesListResponse)
def list_children(
    parent_id: Optional[str] = Query(None, alias="parentId"),
    page: int = Query(1, ge=1),
    page_size: int = Query(DEFAULT_PAGE_SIZE, alias="pageSize", ge=1, le=MAX_PAGE_SIZE),
    order_by: str = Query("name", alias="orderBy", pattern=r"^(name|createTime|updateTime|size)$"),
    order: str = Query("asc", pattern=r"^(asc|desc)$"),
    db: Session = Depends(get_db),
    service: FileService = Depends(get_file_service),
):
    data = service.list_children(
        db, parent_id=parent_id, page=page, page_size=page_size, order_by=order_by, order=order
    )
    return create_response("获取文件列表成功", data)


@router.post("/files/folders", response_model=FilesMutationResponse)
def create_folder(
    body: FolderCreateBody,
    db: Session = Depends(get_db),
    service: FileService = Depends(get_file_service),
):
    folder = service.create_folder(db, path=body.path, parent_id=body.parentId)
    return create_response("文件夹创建成功", serialize_node(folder))


@router.post("/files", response_model=FilesMutationResponse)
def upload_file(
    file: UploadFile = File(...),
    name: Optional[str] = Form(None),
    parent_id: Optional[str] = Form(None, alias="parentId"),
    path: Optional[str] = Form(None),
    overwrite: Optional[bool] = Form(None),
    use_original_name: Optional[bool] = Form(None, alias="useOriginalName"),
    db: Session = Depends(get_db),
    service: FileService = Depends(get_file_service),
):
    content = file.file.read()
    result = service.uploads.upload_file(
        db,
        buffer=content,
        name=name or file.filename,
        content_type=file.content_type,
        size=len(content),
        parent_id=parent_id,
        path=path,
        overwrite=overwrite,
        use_original_name=use_original_name,
    )
    return create_response("文件上传成功", result)


@router.post("/files/base64", response_model=FilesMutationResponse)
def upload_base64(
    body: Base64UploadBody,
    db: Session = Depends(get_db),
    service: FileService = Depends(get_file_service),
):
    result = service.uploads.upload_base64(
        db,
        data=body.data,
        name=body.name,
        content_type=body.contentType,
        parent_id=body.parentId,
        path=body.path,
        overwrite=body.overwrite,
        use_original_name=body.useOriginalName,
    )
    return create_response("文件上传成功", result)


@router.post("/files/sync", response_model=FilesMutationResponse)
def sync_from_storage(
    db: Session = Depends(get_db),
    service: FileService = Depends(get_file_service),
):
    """从存储桶重建索引；索引非空时返回 409。"""
    logger.info("files.sync requested")
    return create_response("同步完成", service.reconciler.sync(db))


@router.post("/files/signed-upload-url", response_model=FilesMutationResponse)
def get_signed_upload_url(
    body: SignedUploadBody,
    db: Session = Depends(get_db),
    service: FileService = Depends(get_file_service),
):
    data = service.get_signed_upload_url(
        db,
        name=body.name,
        content_type=body.contentType,
        size=body.size,
        parent_id=body.parentId,
        path=body.path,
    )
    return create_response("获取上传链接成功", data)


@router.get("/files/{node_id}", response_model=FilesMutationResponse)
def get_node(
    node_id: str,
    db: Session = Depends(get_db),
    service: FileService = Depends(get_file_service),
):
    node = service.get_node(db, node_id)
    return create_response("获取节点成功", serialize_node(node, include_store_response=True))


@router.get("/files/{node_id}/path", response_model=FilesMutationResponse)
def get_file_path(
    node_id: str,
    db: Session = Depends(get_db),
    service: FileService = Depends(get_file_service),
):
    return create_response("获取路径成功", service.get_file_path(db, node_id))


@router.get("/files/{node_id}/content")
def get_file_content(
    node_id: str,
    db: Session = Depends(get_db),
    service: FileService = Depends(get_file_service),
):
    node, stream = service.get_file_body(db, node_id)
    headers = {"Content-Disposition": f"attachment; filename*=UTF-8''{quote(node.name)}"}
    if stream.content_length is not None:
        headers["Content-Length"] = str(stream.content_length)
    return StreamingResponse(
        stream.chunks,
        media_type=node.content_type or stream.content_type or "application/octet-stream",
        headers=headers,
    )


@router.get("/files/{node_id}/signed-download-url", response_model=FilesMutationResponse)
def get_signed_download_url(
    node_id: str,
    db: Session = Depends(get_db),
    service: FileService = Depends(get_file_service),
):
    return create_response("获取下载链接成功", service.get_signed_download_url(db, node_id))


@router.patch("/files/{node_id}", response_model=FilesMutationResponse)
def rename(
    node_id: str,
    body: RenameBody,
    db: Session = Depends(get_db),
    service: FileService = Depends(get_file_service),
):
    node = service.rename(db, node_id, name=body.name)
    return create_response("重命名成功", serialize_node(node))


@router.post("/files/{node_id}/move", response_model=FilesMutationResponse)
def move(
    node_id: str,
    body: MoveBody,
    db: Session = Depends(get_db),
    service: FileService = Depends(get_file_service),
):
    node = service.move(db, node_id, parent_id=body.parentId)
    return create_response("移动成功", serialize_node(node))


@router.delete("/files/{node_id}", response_model=FilesMutationResponse)
def delete_node(
    node_id: str,
    db: Session = Depends(get_db),
    service: FileService = Depends(get_file_service),
):
    return create_response("删除成功", service.deletion.delete_node(db, node_id))
