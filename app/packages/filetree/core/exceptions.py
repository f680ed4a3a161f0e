"""异常处理模块：定义统一的业务异常与响应格式。

目录树核心只区分四类错误：
- NotFoundError：节点或其祖先不存在；
- ConflictError：同步时索引非空、空文件夹名、层级异常等；
- InvalidArgumentError：参数互斥、编码内容非法、不支持的内容描述；
- StoreFailureError：对象存储调用失败，原样上抛，本层不做重试。
"""

from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse


class AppException(HTTPException):
    """携带统一响应结构的业务异常，方便在全局处理中转换响应体。"""

    def __init__(self, msg: str, code: int = status.HTTP_400_BAD_REQUEST, data=None) -> None:
        super().__init__(status_code=code, detail=msg)
        self.data = data


class NotFoundError(AppException):
    def __init__(self, msg: str = "节点不存在", data=None) -> None:
        super().__init__(msg, status.HTTP_404_NOT_FOUND, data)


class ConflictError(AppException):
    def __init__(self, msg: str, data=None) -> None:
        super().__init__(msg, status.HTTP_409_CONFLICT, data)


class InvalidArgumentError(AppException):
    def __init__(self, msg: str, data=None) -> None:
        super().__init__(msg, status.HTTP_400_BAD_REQUEST, data)


class StoreFailureError(AppException):
    """对象存储返回错误或网络异常。``operation`` 用于日志与排查。"""

    def __init__(self, msg: str, *, operation: str | None = None, data=None) -> None:
        super().__init__(msg, status.HTTP_502_BAD_GATEWAY, data)
        self.operation = operation


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:  # pragma: no cover - framework glue
    """将 FastAPI 的 ``HTTPException`` 转换为统一响应格式。"""
    payload = {"msg": exc.detail, "data": getattr(exc, "data", None), "code": exc.status_code}
    return JSONResponse(status_code=exc.status_code, content=payload)


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:  # pragma: no cover - framework glue
    """兜底处理：将未捕获异常转换为标准的 500 响应结构。"""
    payload = {
        "msg": "服务器内部错误",
        "data": None,
        "code": status.HTTP_500_INTERNAL_SERVER_ERROR,
    }
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=payload)
