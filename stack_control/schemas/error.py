"""
エラーレスポンススキーマ

統一されたエラーレスポンス形式を定義
"""
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, Field


class ErrorDetail(BaseModel):
    """エラー詳細"""
    field: str | None = Field(None, description="エラーが発生したフィールド")
    message: str = Field(..., description="エラーメッセージ")
    code: str | None = Field(None, description="エラーコード")


class ErrorBody(BaseModel):
    """エラー本体"""
    code: str = Field(..., description="エラーコード")
    message: str = Field(..., description="ユーザー向けエラーメッセージ")
    details: list[ErrorDetail] | None = Field(
        None,
        description="エラー詳細のリスト",
    )
    request_id: str | None = Field(
        None,
        description="リクエストID（トレーシング用）",
    )
    timestamp: str = Field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat(),
        description="エラー発生時刻",
    )


class ErrorResponse(BaseModel):
    """
    統一エラーレスポンス

    ストリーム開始前に発生したエラーはすべてこの形式で返す。
    ストリーム開始後のエラーはNDJSONの終端イベントで通知する。
    """
    error: ErrorBody


def create_error_response(
    code: str,
    message: str,
    details: list[dict[str, Any]] | None = None,
    request_id: str | None = None,
) -> dict:
    """
    エラーレスポンスを作成

    Args:
        code: エラーコード
        message: ユーザー向けメッセージ
        details: エラー詳細のリスト
        request_id: リクエストID

    Returns:
        エラーレスポンス辞書
    """
    error_details = None
    if details:
        error_details = [
            ErrorDetail(
                field=d.get("field"),
                message=d.get("message", d.get("msg", "")),
                code=d.get("code"),
            )
            for d in details
        ]

    return ErrorResponse(
        error=ErrorBody(
            code=code,
            message=message,
            details=error_details,
            request_id=request_id,
            timestamp=datetime.now(timezone.utc).isoformat(),
        )
    ).model_dump()


class ErrorCodes:
    """エラーコード定数"""
    # リソース
    NOT_FOUND = "NOT_FOUND"
    CONFLICT = "CONFLICT"

    # バリデーション
    VALIDATION_ERROR = "VALIDATION_ERROR"

    # ビルド
    BUILD_IN_PROGRESS = "BUILD_IN_PROGRESS"
    BUILD_FAILED = "BUILD_FAILED"

    # サーバーエラー
    INTERNAL_ERROR = "INTERNAL_ERROR"
    ENGINE_ERROR = "ENGINE_ERROR"
    SETTINGS_STORE_ERROR = "SETTINGS_STORE_ERROR"
