"""
API共通依存関係
アプリケーション状態に保存されたサービス群を取得する

テストでは app.dependency_overrides で差し替える。
"""
from fastapi import Request

from stack_control.services.build import BuildOrchestrator, ServiceBuildLockManager
from stack_control.services.images import ImageTransfer
from stack_control.services.launcher import Launcher
from stack_control.services.registry import ServiceRegistry
from stack_control.services.settings_store import SettingsStore
from stack_control.services.state import StateAggregator


def get_registry(request: Request) -> ServiceRegistry:
    """アプリケーション状態からサービスレジストリを取得"""
    return request.app.state.registry


def get_orchestrator(request: Request) -> BuildOrchestrator:
    """アプリケーション状態からビルドオーケストレーターを取得"""
    return request.app.state.orchestrator


def get_build_locks(request: Request) -> ServiceBuildLockManager:
    """アプリケーション状態からビルドロックマネージャーを取得"""
    return request.app.state.build_locks


def get_aggregator(request: Request) -> StateAggregator:
    """アプリケーション状態から状態アグリゲーターを取得"""
    return request.app.state.aggregator


def get_settings_store(request: Request) -> SettingsStore:
    """アプリケーション状態から設定ストアを取得"""
    return request.app.state.settings_store


def get_launcher(request: Request) -> Launcher:
    """アプリケーション状態からサービスランチャーを取得"""
    return request.app.state.launcher


def get_image_transfer(request: Request) -> ImageTransfer:
    """アプリケーション状態からイメージ転送サービスを取得"""
    return request.app.state.image_transfer
