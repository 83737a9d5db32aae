"""
ヘルスチェックエンドポイント

依存サービスは確認せず、プロセスが応答可能であることのみを返す。
"""
from fastapi import APIRouter

router = APIRouter(tags=["ヘルスチェック"])


@router.get("/health")
async def health_check():
    """ヘルスチェック"""
    return {"ok": True}
