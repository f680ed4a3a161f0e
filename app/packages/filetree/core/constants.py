"""常量定义：响应状态码与目录树通用约定。"""

from fastapi import status

HTTP_STATUS_OK = status.HTTP_200_OK

# 对象 key 的分隔符；目录占位对象以此结尾
KEY_DELIMITER = "/"

DEFAULT_CONTENT_TYPE = "application/octet-stream"

# 重名时插入到扩展名前的随机后缀长度
NAME_SUFFIX_LENGTH = 6

# S3 DeleteObjects 单次最多 1000 个 key
DELETE_BATCH_SIZE = 1000

DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 500

# key 冲突时随机后缀的重试次数
KEY_ALLOCATION_ATTEMPTS = 5
