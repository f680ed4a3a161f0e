"""API v1 汇总路由：统一挂载所有版本化的子路由。"""

from fastapi import APIRouter

from app.packages.filetree.api.v1.endpoints import files, multipart

api_router = APIRouter()
# 分片路由需先于 /files/{node_id} 系列注册
api_router.include_router(multipart.router)
api_router.include_router(files.router)
