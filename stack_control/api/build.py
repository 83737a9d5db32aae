"""
ビルドエンドポイント
ビルドの進捗をNDJSONストリームで返す
"""
import structlog
from fastapi import APIRouter, Depends

from stack_control.api.dependencies import get_build_locks, get_orchestrator, get_registry
from stack_control.schemas.build import BuildRequest
from stack_control.services.build import BuildOrchestrator, ServiceBuildLockManager
from stack_control.services.registry import ServiceRegistry
from stack_control.utils.streaming import create_ndjson_response, stream_operation

router = APIRouter()
logger = structlog.get_logger(__name__)


@router.post("/build")
async def build_services(
    request: BuildRequest,
    registry: ServiceRegistry = Depends(get_registry),
    orchestrator: BuildOrchestrator = Depends(get_orchestrator),
    locks: ServiceBuildLockManager = Depends(get_build_locks),
):
    """
    サービスイメージをビルド

    対象サービスの検証とロック取得はストリーム開始前に行い、
    失敗時は 400 / 409 のエラーレスポンスを返す。
    開始後の成否は終端の complete イベントで通知する。
    """
    services = registry.resolve(request.services)
    lease = await locks.acquire([service.name for service in services])

    logger.info(
        "ビルドストリーム開始",
        services=[service.name for service in services],
        use_no_cache=request.use_no_cache,
    )

    async def run(emit):
        await orchestrator.run(services, request.use_no_cache, emit)

    return create_ndjson_response(
        stream_operation(run, operation="build", on_close=lease.release),
        on_finish=lease.release,
    )
