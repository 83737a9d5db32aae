"""
アプリケーションライフサイクル管理
起動時・終了時の処理を定義

エンジン接続先は DOCKER_URL が指定されていればそれを使い、
未指定なら検出したソケットからプラットフォームに応じて解決する。
"""
import sys
from contextlib import asynccontextmanager

import aiodocker
import structlog
from fastapi import FastAPI

from stack_control.config import Settings, get_settings
from stack_control.services.build import BuildOrchestrator, ServiceBuilder, ServiceBuildLockManager
from stack_control.services.engine.client import EngineClient
from stack_control.services.engine.sockets import EndpointAddress, detect_endpoints, resolve_binding
from stack_control.services.history import LifecycleHistory
from stack_control.services.images import ImageTransfer
from stack_control.services.launcher import Launcher
from stack_control.services.registry import ServiceRegistry
from stack_control.services.settings_store import SettingsStore
from stack_control.services.state import StateAggregator

logger = structlog.get_logger(__name__)


def resolve_docker_url(settings: Settings) -> str:
    """aiodocker に渡すエンジンURLを決定"""
    if settings.docker_url:
        return settings.docker_url
    return EndpointAddress.from_path(resolve_binding(sys.platform, detect_endpoints())).url


def init_app_state(app: FastAPI, settings: Settings, docker: aiodocker.Docker) -> None:
    """
    サービス群を生成してアプリケーション状態に保存

    APIエンドポイントは api/dependencies.py 経由で参照する。
    """
    engine = EngineClient(docker)
    registry = ServiceRegistry.from_settings(settings)
    settings_store = SettingsStore.from_settings(settings)
    history = LifecycleHistory(settings.history_file, settings.max_history_entries)

    builder = ServiceBuilder(
        engine,
        registry,
        settings_store,
        history,
        build_context_dir=settings.build_context_dir,
    )

    app.state.docker_client = docker
    app.state.engine = engine
    app.state.registry = registry
    app.state.settings_store = settings_store
    app.state.history = history
    app.state.build_locks = ServiceBuildLockManager()
    app.state.orchestrator = BuildOrchestrator(builder.build_services)
    app.state.aggregator = StateAggregator(registry, engine, history)
    app.state.launcher = Launcher(
        engine,
        registry,
        settings_store,
        history,
        network_name=settings.network_name,
        warden_api_port=settings.warden_api_port,
    )
    app.state.image_transfer = ImageTransfer(engine, history, auth=settings.registry_auth)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """アプリケーションのライフサイクル管理"""
    from stack_control import __version__

    settings = get_settings()

    logger.info(
        "アプリケーション起動中...",
        version=__version__,
        environment=settings.app_env,
    )

    docker_url = resolve_docker_url(settings)
    docker = aiodocker.Docker(url=docker_url)
    logger.info("Dockerクライアント初期化完了", url=docker_url)

    init_app_state(app, settings, docker)

    logger.info(
        "アプリケーション起動完了",
        environment=settings.app_env,
        port=settings.app_port,
        services=app.state.registry.names,
    )

    yield

    # ---- 終了時 ----
    logger.info("アプリケーション終了中...")

    try:
        await docker.close()
        logger.info("Dockerクライアントクローズ完了")
    except Exception as e:
        logger.error("Dockerクライアントクローズエラー", error=str(e))

    logger.info("アプリケーション終了完了")
