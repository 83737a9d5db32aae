"""
テスト用共通設定
一時ディレクトリ上のストアとモックエンジンでアプリケーションを構成する
"""
from typing import AsyncGenerator
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from stack_control.api.dependencies import (
    get_aggregator,
    get_build_locks,
    get_image_transfer,
    get_launcher,
    get_orchestrator,
    get_registry,
    get_settings_store,
)
from stack_control.config import Settings, get_settings
from stack_control.core.app_factory import create_app
from stack_control.services.build import BuildOrchestrator, ServiceBuilder, ServiceBuildLockManager
from stack_control.services.engine.client import BuildImageResult, EngineClient
from stack_control.services.history import LifecycleHistory
from stack_control.services.images import ImageTransfer
from stack_control.services.launcher import Launcher
from stack_control.services.registry import ServiceRegistry
from stack_control.services.settings_store import SettingsStore
from stack_control.services.state import StateAggregator


@pytest.fixture
def settings(tmp_path) -> Settings:
    """一時ディレクトリを参照する設定"""
    return Settings(
        app_env="test",
        build_context_dir=str(tmp_path),
        dockerfile_dir=str(tmp_path / "deployment"),
        settings_file=str(tmp_path / "build.config.json"),
        history_file=str(tmp_path / "lifecycleHistory.json"),
        dashboard_path=str(tmp_path / "dist" / "index.html"),
    )


@pytest.fixture
def registry(settings: Settings) -> ServiceRegistry:
    return ServiceRegistry.from_settings(settings)


@pytest.fixture
def settings_store(settings: Settings) -> SettingsStore:
    return SettingsStore.from_settings(settings)


@pytest.fixture
def history(settings: Settings) -> LifecycleHistory:
    return LifecycleHistory(settings.history_file, settings.max_history_entries)


@pytest.fixture
def engine() -> AsyncMock:
    """モックエンジンクライアント"""
    mock = AsyncMock(spec=EngineClient)
    mock.build_image.return_value = BuildImageResult(tag="captainpax/noona-moon:latest")
    mock.list_containers.return_value = []
    mock.ensure_network.return_value = False
    mock.run_container.return_value = "container-id"
    mock.stop_container.return_value = True
    mock.push_image.return_value = []
    mock.pull_image.return_value = []
    return mock


@pytest.fixture
def build_locks() -> ServiceBuildLockManager:
    return ServiceBuildLockManager()


@pytest.fixture
def detected_endpoints() -> list[str]:
    """接続先検出結果（テストごとに差し替え可能）"""
    return ["/var/run/docker.sock"]


@pytest.fixture
def build_calls() -> list[dict]:
    """fake_build の呼び出し記録"""
    return []


@pytest.fixture
def fake_build(build_calls):
    """進捗を発行して成功するビルド関数"""

    async def _build(services, use_no_cache, reporter):
        build_calls.append({"services": [s.name for s in services], "use_no_cache": use_no_cache})
        for service in services:
            reporter.progress(step="docker-build", service=service.name, message="Step 1/2 : FROM node")
            reporter.success(f"{service.name} built")
        return {"summary": [], "services": [s.name for s in services]}

    return _build


@pytest.fixture
def orchestrator(fake_build) -> BuildOrchestrator:
    return BuildOrchestrator(fake_build)


@pytest.fixture
def aggregator(registry, engine, history) -> StateAggregator:
    return StateAggregator(registry, engine, history)


@pytest.fixture
def launcher(registry, engine, settings_store, history, settings, detected_endpoints) -> Launcher:
    return Launcher(
        engine,
        registry,
        settings_store,
        history,
        network_name=settings.network_name,
        warden_api_port=settings.warden_api_port,
        detect_endpoints=lambda: list(detected_endpoints),
        platform="linux",
    )


@pytest.fixture
def image_transfer(engine, history) -> ImageTransfer:
    return ImageTransfer(engine, history)


@pytest.fixture
def builder(engine, registry, settings_store, history, settings, detected_endpoints) -> ServiceBuilder:
    """モックエンジンを使う既定のビルド処理"""
    return ServiceBuilder(
        engine,
        registry,
        settings_store,
        history,
        build_context_dir=settings.build_context_dir,
        detect_endpoints=lambda: list(detected_endpoints),
        platform="linux",
    )


@pytest.fixture
def app(
    settings,
    registry,
    orchestrator,
    build_locks,
    aggregator,
    settings_store,
    launcher,
    image_transfer,
) -> FastAPI:
    """依存関係を差し替えたアプリケーション（lifespan は実行しない）"""
    application = create_app()
    application.dependency_overrides[get_settings] = lambda: settings
    application.dependency_overrides[get_registry] = lambda: registry
    application.dependency_overrides[get_orchestrator] = lambda: orchestrator
    application.dependency_overrides[get_build_locks] = lambda: build_locks
    application.dependency_overrides[get_aggregator] = lambda: aggregator
    application.dependency_overrides[get_settings_store] = lambda: settings_store
    application.dependency_overrides[get_launcher] = lambda: launcher
    application.dependency_overrides[get_image_transfer] = lambda: image_transfer
    yield application
    application.dependency_overrides.clear()


@pytest_asyncio.fixture
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    """テスト用HTTPクライアント"""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
