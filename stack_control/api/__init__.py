"""
APIルーター
REST APIエンドポイントの定義
"""
from fastapi import APIRouter

from stack_control.api import build, images, lifecycle, services, settings

# メインルーター
api_router = APIRouter()

# サービス状態API
api_router.include_router(
    services.router,
    tags=["サービス状態"],
)

# ランタイム設定API
api_router.include_router(
    settings.router,
    tags=["ランタイム設定"],
)

# ビルドAPI（NDJSONストリーミング）
api_router.include_router(
    build.router,
    tags=["ビルド"],
)

# イメージ転送API（NDJSONストリーミング）
api_router.include_router(
    images.router,
    tags=["イメージ転送"],
)

# 起動・停止API（NDJSONストリーミング）
api_router.include_router(
    lifecycle.router,
    tags=["起動・停止"],
)
