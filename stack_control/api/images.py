"""
イメージ転送エンドポイント
プッシュ・プルの進捗をNDJSONストリームで返す
"""
from collections.abc import Awaitable, Callable

import structlog
from fastapi import APIRouter, Depends

from stack_control.api.dependencies import get_build_locks, get_image_transfer, get_registry
from stack_control.schemas.build import ImageRequest
from stack_control.services.build import ServiceBuildLockManager
from stack_control.services.images import ImageTransfer
from stack_control.services.registry import Service, ServiceRegistry
from stack_control.utils.streaming import create_ndjson_response, stream_operation

router = APIRouter()
logger = structlog.get_logger(__name__)


async def _stream_transfer(
    action: str,
    request: ImageRequest,
    registry: ServiceRegistry,
    locks: ServiceBuildLockManager,
    operation: Callable[[list[Service], Callable[[dict], None]], Awaitable[dict]],
):
    # ビルド中のサービスとは同時に転送しない
    services = registry.resolve(request.services)
    lease = await locks.acquire([service.name for service in services])
    logger.info(
        "イメージ転送ストリーム開始",
        action=action,
        services=[service.name for service in services],
    )

    async def run(emit):
        await operation(services, emit)

    return create_ndjson_response(
        stream_operation(run, operation=action, on_close=lease.release),
        on_finish=lease.release,
    )


@router.post("/push")
async def push_images(
    request: ImageRequest,
    registry: ServiceRegistry = Depends(get_registry),
    locks: ServiceBuildLockManager = Depends(get_build_locks),
    transfer: ImageTransfer = Depends(get_image_transfer),
):
    """サービスイメージをレジストリへプッシュ"""
    return await _stream_transfer("push", request, registry, locks, transfer.push)


@router.post("/pull")
async def pull_images(
    request: ImageRequest,
    registry: ServiceRegistry = Depends(get_registry),
    locks: ServiceBuildLockManager = Depends(get_build_locks),
    transfer: ImageTransfer = Depends(get_image_transfer),
):
    """サービスイメージをレジストリからプル"""
    return await _stream_transfer("pull", request, registry, locks, transfer.pull)
