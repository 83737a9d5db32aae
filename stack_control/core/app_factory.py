"""
アプリケーションファクトリ
FastAPIアプリケーションの作成と設定
"""
import logging
import sys

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from stack_control import __version__
from stack_control.api import api_router
from stack_control.api.dashboard import router as dashboard_router
from stack_control.api.health import router as health_router
from stack_control.config import get_settings
from stack_control.core.exception_handlers import register_exception_handlers
from stack_control.core.lifespan import lifespan
from stack_control.middleware.tracing import TracingMiddleware


def _configure_logging(settings) -> None:
    """ログ設定の初期化"""
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=settings.log_level_int,
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def _register_middleware(app: FastAPI, settings) -> None:
    """
    ミドルウェアを登録

    適用順序は逆順になる点に注意:
      2. TracingMiddleware（最も外側、リクエスト時に最初に適用）
      1. CORSMiddleware
    """
    # 1. CORS（ダッシュボード開発サーバーからのアクセス用）
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "X-Process-Time"],
    )

    # 2. リクエストトレーシング（最も外側）
    app.add_middleware(
        TracingMiddleware,
        log_requests=True,
    )


def _register_routes(app: FastAPI) -> None:
    """ルーターとエンドポイントを登録"""
    # ダッシュボード・ヘルスチェック（ルートレベル）
    app.include_router(dashboard_router)
    app.include_router(health_router)

    # APIルーター
    app.include_router(api_router, prefix="/api")


def create_app() -> FastAPI:
    """
    FastAPIアプリケーションを作成・設定

    Returns:
        設定済みのFastAPIアプリケーション
    """
    settings = get_settings()

    # ログ設定
    _configure_logging(settings)

    # FastAPIインスタンス作成
    app = FastAPI(
        title="Noona スタックコントロール",
        description="""
## 概要

Noona スタックを構成するサービスのイメージビルド・起動・状態確認を行うローカル制御APIです。

## 主要機能

- **ビルド**: 選択したサービスのイメージをビルドし、進捗をNDJSONで逐次返却
- **イメージ転送**: サービスイメージのレジストリへのプッシュ・プル
- **起動・停止**: スタックサービスのコンテナ起動と一括停止
- **状態確認**: サービス一覧・管理対象コンテナ・ライフサイクル履歴
- **ランタイム設定**: ビルドスケジューラー・起動既定値・ソケット上書き設定
    """,
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
    )

    # ミドルウェア登録
    _register_middleware(app, settings)

    # 例外ハンドラー登録
    register_exception_handlers(app)

    # ルーター・エンドポイント登録
    _register_routes(app)

    return app
