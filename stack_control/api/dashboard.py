"""
ダッシュボード配信エンドポイント
ビルド済みのダッシュボードHTMLをそのまま返す
"""
from pathlib import Path

import structlog
from fastapi import APIRouter, Depends
from fastapi.responses import FileResponse

from stack_control.config import Settings, get_settings
from stack_control.utils.exceptions import NotFoundError

router = APIRouter(tags=["ダッシュボード"])
logger = structlog.get_logger(__name__)


@router.get("/", include_in_schema=False)
async def dashboard(settings: Settings = Depends(get_settings)):
    """ダッシュボード（未ビルドの場合は404）"""
    path = Path(settings.dashboard_path)
    if not path.is_file():
        logger.warning("ダッシュボード未検出", path=str(path))
        raise NotFoundError(
            "ダッシュボード",
            path.name,
            message="ダッシュボードが見つかりません。先にダッシュボードをビルドしてください",
        )
    return FileResponse(path, media_type="text/html")
