"""文件管理 - 文件/文件夹/分片上传 请求与响应模型。"""

from typing import Any, Optional

from pydantic import BaseModel, Field

from app.packages.filetree.api.v1.schemas.common import ResponseEnvelope


class FolderCreateBody(BaseModel):
    path: str = Field(..., description="文件夹路径，如 'uploads/images'")
    parentId: Optional[str] = None


class RenameBody(BaseModel):
    name: str = Field(..., min_length=1)


class MoveBody(BaseModel):
    parentId: Optional[str] = None  # None 表示移动到根目录


class Base64UploadBody(BaseModel):
    data: str = Field(..., description="base64 内容，支持 data:<mime>;base64,<payload>")
    name: Optional[str] = None
    contentType: Optional[str] = None
    parentId: Optional[str] = None
    path: Optional[str] = None
    overwrite: Optional[bool] = None
    useOriginalName: Optional[bool] = None


class SignedUploadBody(BaseModel):
    name: str = Field(..., min_length=1)
    contentType: Optional[str] = None
    size: Optional[int] = Field(None, ge=0)
    parentId: Optional[str] = None
    path: Optional[str] = None


class MultipartCreateBody(BaseModel):
    name: str = Field(..., min_length=1)
    contentType: Optional[str] = None
    size: Optional[int] = Field(None, ge=0)
    parentId: Optional[str] = None
    path: Optional[str] = None


class PartItem(BaseModel):
    eTag: str
    partNumber: int = Field(..., ge=1)


class MultipartCompleteBody(BaseModel):
    parts: Optional[list[PartItem]] = None  # 省略时使用服务端记录的分片


FilesListResponse = ResponseEnvelope[dict]
FilesMutationResponse = ResponseEnvelope[Any]
