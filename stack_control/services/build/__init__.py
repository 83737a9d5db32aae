"""
ビルドパイプライン
ビルド要求の逐次実行・進捗イベント・サービス単位のロックを提供する
"""
from stack_control.services.build.builder import ServiceBuilder
from stack_control.services.build.events import BuildReporter
from stack_control.services.build.locks import BuildLease, ServiceBuildLockManager
from stack_control.services.build.orchestrator import BuildOrchestrator

__all__ = [
    "ServiceBuilder",
    "BuildReporter",
    "BuildLease",
    "ServiceBuildLockManager",
    "BuildOrchestrator",
]
