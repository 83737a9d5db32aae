"""
イメージ転送
サービスイメージのレジストリへのプッシュ・レジストリからのプル
"""
import asyncio
from collections.abc import Callable

import structlog

from stack_control.services.build.events import (
    BuildReporter,
    format_complete_event,
    format_start_event,
)
from stack_control.services.engine.client import EngineClient
from stack_control.services.history import LifecycleHistory
from stack_control.services.registry import Service
from stack_control.utils.exceptions import EngineError

logger = structlog.get_logger(__name__)

PUSH_ACTION = "push"
PULL_ACTION = "pull"

_VERBS = {PUSH_ACTION: "プッシュ", PULL_ACTION: "プル"}


class ImageTransfer:
    """
    イメージ転送

    サービスを順に処理し、1サービスの失敗で中断しない。
    """

    def __init__(
        self,
        engine: EngineClient,
        history: LifecycleHistory,
        auth: dict[str, str] | None = None,
        tag: str = "latest",
    ):
        self.engine = engine
        self.history = history
        self.auth = auth
        self.tag = tag

    async def push(self, services: list[Service], emit: Callable[[dict], None]) -> dict:
        """サービスイメージをプッシュし、発行した complete イベントを返す"""
        return await self._run(PUSH_ACTION, services, emit)

    async def pull(self, services: list[Service], emit: Callable[[dict], None]) -> dict:
        """サービスイメージをプルし、発行した complete イベントを返す"""
        return await self._run(PULL_ACTION, services, emit)

    async def _run(
        self,
        action: str,
        services: list[Service],
        emit: Callable[[dict], None],
    ) -> dict:
        names = [service.name for service in services]
        emit(format_start_event(action, names, {"tag": self.tag}))
        reporter = BuildReporter(emit, action=action)

        try:
            results = []
            for service in services:
                results.append(await self._transfer_one(action, service, reporter))
        except asyncio.CancelledError:
            logger.warning("イメージ転送キャンセル", action=action, services=names)
            emit(format_complete_event(
                action, False, error=f"{_VERBS[action]}がキャンセルされました"
            ))
            raise

        ok = all(result["ok"] for result in results)
        event = format_complete_event(
            action,
            ok,
            result={"results": results},
            error=None if ok else f"一部のイメージの{_VERBS[action]}に失敗しました",
        )
        emit(event)
        return event

    async def _transfer_one(self, action: str, service: Service, reporter: BuildReporter) -> dict:
        name = service.name
        reference = f"{service.image}:{self.tag}"
        verb = _VERBS[action]
        transfer = self.engine.push_image if action == PUSH_ACTION else self.engine.pull_image

        reporter.progress(step=action, service=name, message=f"{reference} を{verb}しています")

        def forward(line: str) -> None:
            reporter.progress(step=f"docker-{action}", service=name, message=line)

        try:
            records = await transfer(
                service.image,
                tag=self.tag,
                auth=self.auth,
                on_record=forward,
            )
        except EngineError as e:
            reporter.error(f"{reference} の{verb}に失敗しました: {e.message}")
            await self.history.record(action, name, "failed", {"error": e.message})
            return {"service": name, "ok": False, "image": reference, "error": e.message}
        except asyncio.CancelledError:
            await asyncio.shield(self.history.record(action, name, "cancelled"))
            raise

        reporter.success(f"{reference} の{verb}が完了しました")
        await self.history.record(action, name, "success", {"image": reference})
        logger.info("イメージ転送完了", action=action, image=reference, records=len(records))
        return {"service": name, "ok": True, "image": reference}
