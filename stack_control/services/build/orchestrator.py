"""
ビルドオーケストレーター
ビルド要求の開始・進捗・終端イベントを1本のストリームへ順に発行する
"""
import asyncio
from collections.abc import Awaitable, Callable

import structlog

from stack_control.services.build.events import (
    BuildReporter,
    format_complete_event,
    format_start_event,
)
from stack_control.services.registry import Service
from stack_control.utils.exceptions import BuildFailedError, EngineError

logger = structlog.get_logger(__name__)

BuildFunction = Callable[[list[Service], bool, BuildReporter], Awaitable[dict]]

CANCELLED_MESSAGE = "ビルドがキャンセルされました"


class BuildOrchestrator:
    """
    ビルドオーケストレーター

    1回の run() で start を1つ、終端の complete を1つだけ発行する。
    ビルド処理本体は差し替え可能（既定は ServiceBuilder.build_services）。
    """

    def __init__(self, build_services: BuildFunction):
        self.build_services = build_services

    async def run(
        self,
        services: list[Service],
        use_no_cache: bool,
        emit: Callable[[dict], None],
    ) -> dict:
        """
        ビルドを実行しイベントを発行

        Args:
            services: ビルド対象サービス
            use_no_cache: キャッシュを使わない
            emit: イベント送出関数（同期）

        Returns:
            発行した complete イベント

        Raises:
            asyncio.CancelledError: キャンセル時（complete 発行後に再送出）
        """
        names = [service.name for service in services]
        emit(format_start_event("build", names, {"useNoCache": use_no_cache}))
        reporter = BuildReporter(emit, action="build")

        logger.info("ビルド開始", services=names, use_no_cache=use_no_cache)
        try:
            result = await self.build_services(services, use_no_cache, reporter)
        except (BuildFailedError, EngineError) as e:
            logger.warning("ビルド失敗", services=names, error=e.message)
            event = format_complete_event("build", False, error=e.message)
            emit(event)
            return event
        except asyncio.CancelledError:
            logger.warning("ビルドキャンセル", services=names)
            emit(format_complete_event("build", False, error=CANCELLED_MESSAGE))
            raise

        logger.info("ビルド完了", services=names)
        event = format_complete_event("build", True, result=result)
        emit(event)
        return event
