"""
サービスビルダー
選択されたサービスのイメージを順番にビルドする既定のビルド処理
"""
import asyncio
import time
from collections.abc import Callable

import structlog

from stack_control.services.build.events import BuildReporter
from stack_control.services.engine.client import EngineClient
from stack_control.services.engine.options import build_container_options
from stack_control.services.history import LifecycleHistory
from stack_control.services.registry import Service, ServiceRegistry
from stack_control.services.settings_store import SettingsStore
from stack_control.utils.exceptions import BuildFailedError, EngineError

logger = structlog.get_logger(__name__)


class ServiceBuilder:
    """
    サービスビルダー

    サービスを指定順に1つずつビルドし、最初の失敗で中断する（fail-fast）。
    ビルド済みサービスの結果は中断後もそのまま残る。
    """

    def __init__(
        self,
        engine: EngineClient,
        registry: ServiceRegistry,
        settings_store: SettingsStore,
        history: LifecycleHistory,
        build_context_dir: str,
        detect_endpoints: Callable[[], list[str]] | None = None,
        platform: str | None = None,
    ):
        self.engine = engine
        self.registry = registry
        self.settings_store = settings_store
        self.history = history
        self.build_context_dir = build_context_dir
        self.detect_endpoints = detect_endpoints
        self.platform = platform

    async def build_services(
        self,
        services: list[Service],
        use_no_cache: bool,
        reporter: BuildReporter,
    ) -> dict:
        """
        サービスを順番にビルド

        Args:
            services: ビルド対象（解決済み・順序確定済み）
            use_no_cache: キャッシュを使わない
            reporter: 進捗レポーター

        Returns:
            {"summary": [{service, image, durationMs, warnings}], "services": [...]}

        Raises:
            BuildFailedError: いずれかのサービスのビルドが失敗した場合
        """
        runtime_settings = await self.settings_store.fetch()
        host_override = runtime_settings.get("hostDockerSocketOverride")

        summary = []
        for service in services:
            summary.append(await self._build_one(service, use_no_cache, reporter, host_override))

        return {"summary": summary, "services": [s.name for s in services]}

    async def _build_one(
        self,
        service: Service,
        use_no_cache: bool,
        reporter: BuildReporter,
        host_override: str | None,
    ) -> dict:
        name = service.name
        tag = f"{service.image}:latest"
        started = time.monotonic()

        launch_spec = build_container_options(
            name,
            service.image,
            {},
            detect_endpoints=self.detect_endpoints,
            platform=self.platform,
            host_override=host_override,
        )
        reporter.progress(
            step="prepare",
            service=name,
            message="ビルドコンテキストを準備中",
            launchSpec=launch_spec.to_dict(),
        )

        def forward(line: str) -> None:
            reporter.progress(step="docker-build", service=name, message=line)

        try:
            result = await self.engine.build_image(
                context_dir=self.build_context_dir,
                dockerfile=self.registry.dockerfile_for(name),
                tag=tag,
                no_cache=use_no_cache,
                on_record=forward,
            )
        except EngineError as e:
            reporter.error(f"{name} のビルドに失敗しました: {e.message}")
            await self.history.record("build", name, "failed", {"error": e.message})
            logs = e.details.get("context", {}).get("records", [])
            raise BuildFailedError(name, f"{name} のビルドに失敗しました: {e.message}", logs) from e
        except asyncio.CancelledError:
            await asyncio.shield(self.history.record("build", name, "cancelled"))
            raise

        duration_ms = int((time.monotonic() - started) * 1000)
        for warning in result.warnings:
            reporter.warn(f"{name}: {warning}")
        reporter.success(f"{name} のビルドが完了しました（{duration_ms / 1000:.2f}秒）")
        await self.history.record(
            "build", name, "success", {"image": tag, "durationMs": duration_ms}
        )
        logger.info("サービスビルド完了", service=name, image=tag, duration_ms=duration_ms)

        return {
            "service": name,
            "image": tag,
            "durationMs": duration_ms,
            "warnings": result.warnings,
        }
