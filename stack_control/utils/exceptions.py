"""
カスタム例外クラス
アプリケーション全体で使用する例外の定義
"""
from typing import Optional


class AppError(Exception):
    """アプリケーション基底例外"""

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[dict] = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or "APP_ERROR"
        self.details = details or {}


class NotFoundError(AppError):
    """リソースが見つからない例外"""

    def __init__(
        self,
        resource_type: str,
        resource_id: str,
        message: Optional[str] = None,
    ):
        self.resource_type = resource_type
        self.resource_id = resource_id
        super().__init__(
            message=message or f"{resource_type} '{resource_id}' が見つかりません",
            error_code="NOT_FOUND",
            details={
                "resource_type": resource_type,
                "resource_id": resource_id,
            },
        )


class ValidationError(AppError):
    """バリデーションエラー"""

    def __init__(
        self,
        field: str,
        message: str,
        value: Optional[str] = None,
    ):
        self.field = field
        self.value = value
        super().__init__(
            message=message,
            error_code="VALIDATION_ERROR",
            details={
                "field": field,
                "value": value,
            },
        )


class UnknownServiceError(ValidationError):
    """未登録サービス指定エラー"""

    def __init__(self, names: list[str]):
        self.names = names
        super().__init__(
            field="services",
            message=f"未登録のサービスが指定されました: {', '.join(names)}",
            value=",".join(names),
        )


class ConflictError(AppError):
    """リソース競合エラー"""

    def __init__(
        self,
        message: str,
        error_code: str = "CONFLICT",
        details: Optional[dict] = None,
    ):
        super().__init__(
            message=message,
            error_code=error_code,
            details=details or {},
        )


class BuildInProgressError(ConflictError):
    """同一サービスのビルド実行中エラー"""

    def __init__(self, services: list[str]):
        self.services = services
        super().__init__(
            message=f"ビルドが既に実行中です: {', '.join(services)}",
            error_code="BUILD_IN_PROGRESS",
            details={"services": services},
        )


class EngineError(AppError):
    """コンテナエンジン操作エラー"""

    def __init__(
        self,
        operation: str,
        message: str,
        status: Optional[int] = None,
        context: Optional[dict] = None,
    ):
        self.operation = operation
        self.status = status
        super().__init__(
            message=message,
            error_code="ENGINE_ERROR",
            details={
                "operation": operation,
                "status": status,
                "context": context or {},
            },
        )


class BuildFailedError(AppError):
    """サービスビルド失敗エラー"""

    def __init__(
        self,
        service: str,
        message: str,
        logs: Optional[list[str]] = None,
    ):
        self.service = service
        self.logs = logs or []
        super().__init__(
            message=message,
            error_code="BUILD_FAILED",
            details={
                "service": service,
                "logs": self.logs,
            },
        )


class SettingsStoreError(AppError):
    """設定ストア読み書きエラー"""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(
            message=message,
            error_code="SETTINGS_STORE_ERROR",
            details=details,
        )
