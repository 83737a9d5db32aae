"""
サービス状態エンドポイント
"""
from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import JSONResponse

from stack_control.api.dependencies import get_aggregator
from stack_control.services.state import StateAggregator

router = APIRouter()


@router.get("/services")
async def list_services(
    include_stopped: bool = Query(True, alias="includeStopped", description="停止中のコンテナも含める"),
    aggregator: StateAggregator = Depends(get_aggregator),
):
    """
    サービス一覧・管理対象コンテナ・ライフサイクル履歴を取得

    一部のソースの取得に失敗した場合は 207 を返し、errors に内容を含める。
    """
    snapshot = await aggregator.snapshot(
        include_containers=True,
        include_history=True,
        include_stopped=include_stopped,
    )
    return JSONResponse(
        status_code=status.HTTP_200_OK if snapshot.get("ok", True) else status.HTTP_207_MULTI_STATUS,
        content=snapshot,
    )
