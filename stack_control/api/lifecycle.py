"""
サービス起動・停止エンドポイント
進捗をNDJSONストリームで返す
"""
import structlog
from fastapi import APIRouter, Depends

from stack_control.api.dependencies import get_launcher, get_registry
from stack_control.schemas.build import StartRequest
from stack_control.services.launcher import Launcher
from stack_control.services.registry import ServiceRegistry
from stack_control.utils.streaming import create_ndjson_response, stream_operation

router = APIRouter()
logger = structlog.get_logger(__name__)


@router.post("/start")
async def start_services(
    request: StartRequest,
    registry: ServiceRegistry = Depends(get_registry),
    launcher: Launcher = Depends(get_launcher),
):
    """サービスを起動"""
    services = registry.resolve(request.services)
    logger.info("起動ストリーム開始", services=[service.name for service in services])

    async def run(emit):
        await launcher.start(
            services,
            emit,
            debug_level=request.debug_level,
            boot_mode=request.boot_mode,
        )

    return create_ndjson_response(stream_operation(run, operation="start"))


@router.post("/stop")
async def stop_services(
    launcher: Launcher = Depends(get_launcher),
):
    """稼働中の管理対象コンテナをすべて停止"""
    logger.info("停止ストリーム開始")

    async def run(emit):
        await launcher.stop_all(emit)

    return create_ndjson_response(stream_operation(run, operation="stop"))
