"""
Pydanticスキーマ
APIリクエスト/レスポンスのバリデーションとシリアライズ
"""
from stack_control.schemas.build import BuildRequest, ImageRequest, StartRequest
from stack_control.schemas.error import ErrorCodes, ErrorResponse, create_error_response

__all__ = [
    "BuildRequest",
    "ImageRequest",
    "StartRequest",
    "ErrorCodes",
    "ErrorResponse",
    "create_error_response",
]
