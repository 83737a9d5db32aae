"""
アプリケーション設定
環境変数からの読み込みと設定値の管理を行う
"""
from functools import lru_cache
from pathlib import Path
from urllib.parse import urlparse

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# パッケージルート（deployment/ 配下の成果物参照用）
PROJECT_ROOT = Path(__file__).resolve().parent.parent


class Settings(BaseSettings):
    """アプリケーション設定クラス"""

    # ============================================
    # アプリケーション設定
    # ============================================
    app_env: str = "development"
    app_port: int = Field(
        default=4300,
        validation_alias=AliasChoices("deploy_server_port", "app_port", "port"),
    )
    log_level: str = "INFO"

    # ============================================
    # Docker設定
    # ============================================
    # 明示的なエンジンURL（未設定時は検出したソケットから解決）
    docker_url: str = ""
    docker_hub_user: str = "captainpax"
    # レジストリ認証（未設定時は匿名でプッシュ・プル）
    registry_username: str = ""
    registry_password: str = ""
    registry_server: str = ""
    container_prefix: str = "noona-"
    network_name: str = "noona-network"

    # ============================================
    # サービスレジストリ設定
    # ============================================
    stack_services: str = "moon,warden,raven,sage,vault,portal"
    # 他サービス完了後に単独でビルドするサービス
    heavy_services: str = "raven"
    warden_api_port: int = 4001

    # ============================================
    # ビルド設定
    # ============================================
    build_context_dir: str = str(PROJECT_ROOT)
    dockerfile_dir: str = str(PROJECT_ROOT / "deployment")

    # ビルドスケジューラーのデフォルト値
    default_worker_threads: int = 4
    default_subprocesses_per_worker: int = 2
    default_debug_level: str = "false"
    default_boot_mode: str = "minimal"

    # ============================================
    # 永続化設定
    # ============================================
    settings_file: str = str(PROJECT_ROOT / "deployment" / "build.config.json")
    history_file: str = str(PROJECT_ROOT / "deployment" / "lifecycleHistory.json")
    max_history_entries: int = 50

    # ============================================
    # ダッシュボード設定
    # ============================================
    dashboard_path: str = str(PROJECT_ROOT / "deployment" / "dist" / "index.html")
    cors_origins: str = "http://localhost:4300,http://localhost:5173"

    # ============================================
    # バリデーション
    # ============================================

    @field_validator("app_port")
    @classmethod
    def validate_app_port(cls, v: int) -> int:
        """ポート番号のバリデーション"""
        if v <= 0 or v > 65535:
            raise ValueError(f"無効なポート番号: {v}")
        return v

    @field_validator("stack_services")
    @classmethod
    def validate_stack_services(cls, v: str) -> str:
        """サービス一覧のバリデーション"""
        if not [s for s in v.split(",") if s.strip()]:
            raise ValueError("STACK_SERVICESには1つ以上のサービスが必要です")
        return v

    @field_validator("cors_origins")
    @classmethod
    def validate_cors_origins(cls, v: str) -> str:
        """CORS originsのバリデーション"""
        for origin in v.split(","):
            origin = origin.strip()
            if origin and origin != "*":
                parsed = urlparse(origin)
                if parsed.scheme not in ("http", "https"):
                    raise ValueError(f"無効なCORSオリジン: {origin}")
        return v

    @field_validator("max_history_entries")
    @classmethod
    def validate_max_history_entries(cls, v: int) -> int:
        """履歴保持件数のバリデーション"""
        if v < 1:
            raise ValueError("MAX_HISTORY_ENTRIESは1以上である必要があります")
        return v

    # ============================================
    # プロパティ
    # ============================================

    @property
    def stack_services_list(self) -> list[str]:
        """サービス名をリストとして取得"""
        return [s.strip().lower() for s in self.stack_services.split(",") if s.strip()]

    @property
    def heavy_services_list(self) -> list[str]:
        """後回しビルド対象サービスをリストとして取得"""
        return [s.strip().lower() for s in self.heavy_services.split(",") if s.strip()]

    @property
    def cors_origins_list(self) -> list[str]:
        """CORS originsをリストとして取得"""
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @property
    def registry_auth(self) -> dict[str, str] | None:
        """レジストリ認証情報（aiodocker の auth 形式、未設定ならNone）"""
        if not self.registry_username:
            return None
        auth = {"username": self.registry_username, "password": self.registry_password}
        if self.registry_server:
            auth["serveraddress"] = self.registry_server
        return auth

    @property
    def is_development(self) -> bool:
        """開発環境かどうか"""
        return self.app_env == "development"

    @property
    def log_level_int(self) -> int:
        """ログレベルを数値で取得"""
        import logging
        return getattr(logging, self.log_level.upper(), logging.INFO)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )


@lru_cache()
def get_settings() -> Settings:
    """設定インスタンスを取得（キャッシュ付き）"""
    return Settings()


def clear_settings_cache() -> None:
    """設定キャッシュをクリア（テスト用）"""
    get_settings.cache_clear()
