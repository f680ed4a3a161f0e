"""分片上传路由：初始化、上传分片、完成、取消。"""

from __future__ import annotations

from fastapi import APIRouter, Depends, File, Form, UploadFile
from sqlalchemy.orm import Session

from app.packages.filetree.api.v1.schemas.files import (
    FilesMutationResponse,
    MultipartCompleteBody,
    MultipartCreateBody,
)
from app.packages.filetree.core.dependencies import get_db, get_file_service
from app.packages.filetree.core.responses import create_response
from app.packages.filetree.services.file_service import FileService, serialize_node

router = APIRouter(prefix="/files/multipart", tags=["multipart"])


@router.post("", response_model=FilesMutationResponse)
def create_multipart_upload(
    body: MultipartCreateBody,
    db: Session = Depends(get_db),
    service: FileService = Depends(get_file_service),
):
    node = service.multipart.create_multipart_upload(
        db,
        name=body.name,
        content_type=body.contentType,
        size=body.size,
        parent_id=body.parentId,
        path=body.path,
    )
    return create_response("分片上传已创建", serialize_node(node))


@router.post("/{upload_id}/parts/{part_number}", response_model=FilesMutationResponse)
def upload_part(
    upload_id: str,
    part_number: int,
    upload_progress: int = Form(0, alias="uploadProgress"),
    file: UploadFile = File(...),
    db: Session = Depends(get_db),
    service: FileService = Depends(get_file_service),
):
    part = service.multipart.upload_part(
        db,
        upload_id=upload_id,
        part_number=part_number,
        upload_progress=upload_progress,
        body=file.file.read(),
    )
    return create_response("分片上传成功", part)


@router.post("/{upload_id}/complete", response_model=FilesMutationResponse)
def complete_multipart_upload(
    upload_id: str,
    body: MultipartCompleteBody,
    db: Session = Depends(get_db),
    service: FileService = Depends(get_file_service),
):
    parts = [p.model_dump() for p in body.parts] if body.parts is not None else None
    node = service.multipart.complete_multipart_upload(db, upload_id=upload_id, parts=parts)
    return create_response("分片上传已完成", serialize_node(node, include_store_response=True))


@router.delete("/{upload_id}", response_model=FilesMutationResponse)
def abort_multipart_upload(
    upload_id: str,
    db: Session = Depends(get_db),
    service: FileService = Depends(get_file_service),
):
    return create_response("分片上传已取消", service.multipart.abort_multipart_upload(db, upload_id=upload_id))
