"""
例外ハンドラー
アプリケーション全体の例外処理を定義

ストリーム開始前に発生した例外のみがここで処理される。
"""
import structlog
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from stack_control.schemas.error import ErrorCodes, create_error_response
from stack_control.utils.exceptions import (
    AppError,
    ConflictError,
    EngineError,
    NotFoundError,
    SettingsStoreError,
    ValidationError,
)

logger = structlog.get_logger(__name__)


def _get_request_id(request: Request) -> str | None:
    """リクエストIDを取得"""
    return getattr(request.state, "request_id", None)


def register_exception_handlers(app: FastAPI) -> None:
    """全例外ハンドラーをアプリケーションに登録"""

    @app.exception_handler(NotFoundError)
    async def not_found_error_handler(request: Request, exc: NotFoundError):
        """リソース未検出エラーハンドラー"""
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND,
            content=create_error_response(
                code=ErrorCodes.NOT_FOUND,
                message=exc.message,
                details=[{"field": exc.resource_type, "message": exc.message}],
                request_id=_get_request_id(request),
            ),
        )

    @app.exception_handler(ValidationError)
    async def validation_error_handler(request: Request, exc: ValidationError):
        """バリデーションエラーハンドラー"""
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=create_error_response(
                code=ErrorCodes.VALIDATION_ERROR,
                message=exc.message,
                details=[{"field": exc.field, "message": exc.message}],
                request_id=_get_request_id(request),
            ),
        )

    @app.exception_handler(ConflictError)
    async def conflict_error_handler(request: Request, exc: ConflictError):
        """競合エラーハンドラー（ビルド実行中など）"""
        logger.warning("リクエスト競合", error_code=exc.error_code, details=exc.details)
        return JSONResponse(
            status_code=status.HTTP_409_CONFLICT,
            content=create_error_response(
                code=exc.error_code,
                message=exc.message,
                request_id=_get_request_id(request),
            ),
        )

    @app.exception_handler(SettingsStoreError)
    async def settings_store_error_handler(request: Request, exc: SettingsStoreError):
        """設定ストアエラーハンドラー"""
        logger.error("設定ストアエラー", message=exc.message, details=exc.details)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=create_error_response(
                code=ErrorCodes.SETTINGS_STORE_ERROR,
                message=exc.message,
                request_id=_get_request_id(request),
            ),
        )

    @app.exception_handler(EngineError)
    async def engine_error_handler(request: Request, exc: EngineError):
        """コンテナエンジンエラーハンドラー"""
        logger.error(
            "エンジンエラー",
            operation=exc.operation,
            status=exc.status,
            message=exc.message,
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=create_error_response(
                code=ErrorCodes.ENGINE_ERROR,
                message=exc.message,
                request_id=_get_request_id(request),
            ),
        )

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError):
        """アプリケーションエラーハンドラー"""
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=create_error_response(
                code=exc.error_code,
                message=exc.message,
                request_id=_get_request_id(request),
            ),
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_error_handler(
        request: Request, exc: RequestValidationError
    ):
        """リクエストバリデーションエラーハンドラー"""
        details = []
        for error in exc.errors():
            loc = error.get("loc", [])
            field = ".".join(str(l) for l in loc) if loc else "unknown"
            details.append(
                {
                    "field": field,
                    "message": error.get("msg", "Invalid value"),
                    "code": error.get("type"),
                }
            )

        logger.warning(
            "バリデーションエラー",
            errors=details,
            path=request.url.path,
        )

        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content=create_error_response(
                code=ErrorCodes.VALIDATION_ERROR,
                message="入力データが不正です",
                details=details,
                request_id=_get_request_id(request),
            ),
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        """一般エラーハンドラー"""
        logger.error(
            "内部エラー",
            error=str(exc),
            error_type=type(exc).__name__,
            path=request.url.path,
            exc_info=True,
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=create_error_response(
                code=ErrorCodes.INTERNAL_ERROR,
                message="内部サーバーエラーが発生しました",
                request_id=_get_request_id(request),
            ),
        )
