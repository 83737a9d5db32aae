"""
ランタイム設定エンドポイント
"""
from typing import Any

from fastapi import APIRouter, Body, Depends

from stack_control.api.dependencies import get_settings_store
from stack_control.services.settings_store import SettingsStore

router = APIRouter()


@router.get("/settings")
async def get_runtime_settings(
    store: SettingsStore = Depends(get_settings_store),
):
    """現在の設定を取得"""
    return await store.fetch()


@router.patch("/settings")
async def update_runtime_settings(
    updates: dict[str, Any] = Body(..., description="部分的な設定"),
    store: SettingsStore = Depends(get_settings_store),
):
    """
    設定を部分更新

    マージ後の設定オブジェクトのみを返す。
    """
    result = await store.update(updates)
    return result["settings"]
