"""
サービスランチャー
スタックサービスのコンテナ起動と、管理対象コンテナの一括停止
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
from stack_control.services.engine.options import build_container_options
from stack_control.services.history import LifecycleHistory
from stack_control.services.registry import Service, ServiceRegistry
from stack_control.services.settings_store import SettingsStore
from stack_control.utils.exceptions import EngineError

logger = structlog.get_logger(__name__)

WARDEN_SERVICE = "warden"
SUPER_BOOT_MODE = "super"


def resolve_boot_settings(
    debug_level: str | None,
    boot_mode: str | None,
    defaults: dict,
) -> dict:
    """
    起動時のデバッグレベル・起動モードを決定

    bootMode が super の場合は DEBUG も super に揃える。
    """
    resolved_boot = (boot_mode or defaults.get("bootMode") or "minimal").lower()
    requested_debug = (debug_level or defaults.get("debugLevel") or "false").lower()
    effective_debug = SUPER_BOOT_MODE if resolved_boot == SUPER_BOOT_MODE else requested_debug
    return {
        "bootMode": resolved_boot,
        "debugLevel": effective_debug,
        "requestedDebug": requested_debug,
    }


class Launcher:
    """サービスランチャー"""

    def __init__(
        self,
        engine: EngineClient,
        registry: ServiceRegistry,
        settings_store: SettingsStore,
        history: LifecycleHistory,
        network_name: str,
        warden_api_port: int = 4001,
        detect_endpoints: Callable[[], list[str]] | None = None,
        platform: str | None = None,
    ):
        self.engine = engine
        self.registry = registry
        self.settings_store = settings_store
        self.history = history
        self.network_name = network_name
        self.warden_api_port = warden_api_port
        self.detect_endpoints = detect_endpoints
        self.platform = platform

    async def start(
        self,
        services: list[Service],
        emit: Callable[[dict], None],
        debug_level: str | None = None,
        boot_mode: str | None = None,
    ) -> dict:
        """
        サービスを順に起動

        1サービスの失敗で中断せず、結果を complete イベントにまとめて返す。

        Args:
            services: 起動対象サービス
            emit: イベント送出関数
            debug_level: DEBUG 環境変数（省略時は設定の既定値）
            boot_mode: BOOT_MODE 環境変数（省略時は設定の既定値）

        Returns:
            発行した complete イベント
        """
        names = [service.name for service in services]
        emit(format_start_event(
            "start", names, {"debugLevel": debug_level, "bootMode": boot_mode}
        ))
        reporter = BuildReporter(emit, action="start")

        try:
            runtime_settings = await self.settings_store.fetch()
            boot = resolve_boot_settings(debug_level, boot_mode, runtime_settings["defaults"])
            if boot["bootMode"] == SUPER_BOOT_MODE and boot["requestedDebug"] != SUPER_BOOT_MODE:
                reporter.info('起動モード super に合わせて DEBUG="super" を適用します')

            if await self.engine.ensure_network(self.network_name):
                reporter.info(f"ネットワーク {self.network_name} を作成しました")

            results = []
            for service in services:
                results.append(await self._start_one(
                    service, boot, runtime_settings.get("hostDockerSocketOverride"), reporter
                ))
        except EngineError as e:
            logger.warning("サービス起動失敗", services=names, error=e.message)
            event = format_complete_event("start", False, error=e.message)
            emit(event)
            return event
        except asyncio.CancelledError:
            logger.warning("サービス起動キャンセル", services=names)
            emit(format_complete_event("start", False, error="起動がキャンセルされました"))
            raise

        ok = all(result["ok"] for result in results)
        event = format_complete_event(
            "start",
            ok,
            result={"results": results, "settings": boot},
            error=None if ok else "一部のサービスの起動に失敗しました",
        )
        emit(event)
        return event

    async def _start_one(
        self,
        service: Service,
        boot: dict,
        host_override: str | None,
        reporter: BuildReporter,
    ) -> dict:
        name = service.name
        container_name = self.registry.container_name(name)
        env = {"DEBUG": boot["debugLevel"], "BOOT_MODE": boot["bootMode"]}

        exposed_ports = None
        port_bindings = None
        if name == WARDEN_SERVICE:
            api_port = str(self.warden_api_port)
            env["WARDEN_API_PORT"] = api_port
            port_key = f"{api_port}/tcp"
            exposed_ports = {port_key: {}}
            port_bindings = {port_key: [{"HostPort": api_port}]}

        spec = build_container_options(
            name,
            f"{service.image}:latest",
            env,
            detect_endpoints=self.detect_endpoints,
            platform=self.platform,
            host_override=host_override,
        )
        reporter.progress(step="launch", service=name, container=container_name)

        try:
            container_id = await self.engine.run_container(
                container_name,
                spec,
                network=self.network_name,
                exposed_ports=exposed_ports,
                port_bindings=port_bindings,
            )
        except EngineError as e:
            reporter.error(f"{name} の起動に失敗しました: {e.message}")
            await self.history.record("start", name, "failed", {"error": e.message})
            return {"service": name, "ok": False, "error": e.message}
        except asyncio.CancelledError:
            await asyncio.shield(self.history.record("start", name, "cancelled"))
            raise

        reporter.success(f"{name} を起動しました")
        await self.history.record("start", name, "success", {"container": container_name})
        return {"service": name, "ok": True, "container": container_name, "id": container_id}

    async def stop_all(self, emit: Callable[[dict], None]) -> dict:
        """
        稼働中の管理対象コンテナをすべて停止

        Returns:
            発行した complete イベント
        """
        emit(format_start_event("stop", [], {}))
        reporter = BuildReporter(emit, action="stop")
        reporter.info("稼働中のコンテナを停止しています")

        try:
            containers = await self.engine.list_containers(
                self.registry.container_prefix, include_stopped=False
            )
            rows = []
            for container in containers:
                rows.append(await self._stop_one(container, reporter))
        except EngineError as e:
            logger.warning("コンテナ停止失敗", error=e.message)
            event = format_complete_event("stop", False, error=e.message)
            emit(event)
            return event
        except asyncio.CancelledError:
            logger.warning("コンテナ停止キャンセル")
            emit(format_complete_event("stop", False, error="停止がキャンセルされました"))
            raise

        if not rows:
            reporter.success("稼働中のコンテナはありません")

        ok = all(not row["result"].startswith("error") for row in rows)
        event = format_complete_event(
            "stop",
            ok,
            result={"rows": rows},
            error=None if ok else "一部のコンテナの停止に失敗しました",
        )
        emit(event)
        return event

    async def _stop_one(self, container: dict, reporter: BuildReporter) -> dict:
        name = container["name"]
        service = name.removeprefix(self.registry.container_prefix)
        try:
            stopped = await self.engine.stop_container(name)
            result = "stopped" if stopped else "already stopped"
            await self.history.record("stop", service, "success", {"result": result})
        except EngineError as e:
            reporter.error(f"{name} の停止に失敗しました: {e.message}")
            await self.history.record("stop", service, "failed", {"error": e.message})
            result = f"error: {e.message}"
        except asyncio.CancelledError:
            await asyncio.shield(self.history.record("stop", service, "cancelled"))
            raise

        reporter.progress(step="stop", service=service, container=name, result=result)
        return {
            "name": name,
            "state": container.get("state"),
            "ports": container.get("ports"),
            "result": result,
        }
