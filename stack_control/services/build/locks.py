"""
サービスビルドロック機構

同一サービスへの同時ビルドを防ぐためのロックマネージャー。
ビジーなサービスを含む要求は待機せず即座に拒否する。
"""
import asyncio
from collections.abc import Iterable
from datetime import datetime, timezone

import structlog

from stack_control.utils.exceptions import BuildInProgressError

logger = structlog.get_logger(__name__)


class BuildLease:
    """取得済みビルドロック（release は何度呼んでもよい）"""

    def __init__(self, manager: "ServiceBuildLockManager", services: list[str]):
        self._manager = manager
        self.services = services
        self.released = False

    async def release(self) -> None:
        if self.released:
            return
        self.released = True
        await self._manager.release(self.services)


class ServiceBuildLockManager:
    """
    サービスビルドロックマネージャー

    インメモリでサービスごとの実行中ビルドを管理する。
    """

    def __init__(self):
        # サービス名 -> 取得時刻
        self._active: dict[str, datetime] = {}
        self._manager_lock = asyncio.Lock()

    async def acquire(self, services: Iterable[str]) -> BuildLease:
        """
        複数サービスのロックをまとめて取得（全て取得できなければ何も取得しない）

        Args:
            services: サービス名リスト

        Returns:
            ビルドリース

        Raises:
            BuildInProgressError: いずれかのサービスがビルド中の場合
        """
        names = list(dict.fromkeys(services))
        async with self._manager_lock:
            busy = [name for name in names if name in self._active]
            if busy:
                logger.warning("ビルド実行中のため拒否", services=names, busy=busy)
                raise BuildInProgressError(busy)

            now = datetime.now(timezone.utc)
            for name in names:
                self._active[name] = now

        logger.debug("ビルドロック取得", services=names)
        return BuildLease(self, names)

    async def release(self, services: Iterable[str]) -> None:
        async with self._manager_lock:
            for name in services:
                self._active.pop(name, None)
        logger.debug("ビルドロック解放", services=list(services))

    @property
    def active_services(self) -> list[str]:
        return list(self._active)
