"""
ランタイム設定ストア

build.config.json に保存されるビルドスケジューラー・起動既定値・ソケット上書き設定を管理する。

保存形式:
    {
      "buildScheduler": {"workerThreads": int, "subprocessesPerWorker": int},
      "defaults": {"debugLevel": str, "bootMode": str},
      "hostDockerSocketOverride": str | null,
      ...（その他のキーは深いマージでそのまま保持）
    }
"""
import asyncio
import copy
from pathlib import Path
from typing import Any

import structlog

from stack_control.config import Settings
from stack_control.services.engine.sockets import is_remote_endpoint, normalize_endpoint
from stack_control.utils.exceptions import SettingsStoreError
from stack_control.utils.json_file import read_json, write_json_atomic

logger = structlog.get_logger(__name__)

# 正規化で取り込む既知キー（深いマージ対象外）
_KNOWN_KEYS = {
    "buildScheduler",
    "concurrency",
    "build",
    "defaults",
    "hostDockerSocketOverride",
    "workerThreads",
    "workers",
    "subprocessesPerWorker",
    "subprocesses",
    "debugLevel",
    "bootMode",
}


def parse_positive_int(value: Any, fallback: int) -> int:
    """正の整数に変換（不正値は fallback）"""
    if value is None or value == "" or isinstance(value, bool):
        return fallback
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        return fallback
    return parsed if parsed > 0 else fallback


def normalize_socket_override(value: Any) -> str | None:
    """ソケット上書き設定を正規化（リモートエンジン指定はそのまま保持）"""
    if not isinstance(value, str) or not value.strip():
        return None
    if is_remote_endpoint(value):
        return value.strip()
    return normalize_endpoint(value)


def deep_merge(base: dict, updates: dict) -> dict:
    """辞書を再帰的にマージ（updates 優先、base は変更しない）"""
    merged = copy.deepcopy(base)
    for key, value in updates.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def _pick(source: Any, *keys: str) -> Any:
    if not isinstance(source, dict):
        return None
    for key in keys:
        if source.get(key) is not None:
            return source[key]
    return None


class SettingsStore:
    """
    ランタイム設定ストア

    読み込み→変更→書き込みを asyncio.Lock で直列化し、
    ファイルは一時ファイル経由で置き換えるため部分書き込みは発生しない。
    """

    def __init__(
        self,
        path: str,
        default_worker_threads: int = 4,
        default_subprocesses_per_worker: int = 2,
        default_debug_level: str = "false",
        default_boot_mode: str = "minimal",
    ):
        self.path = Path(path)
        self.default_worker_threads = default_worker_threads
        self.default_subprocesses_per_worker = default_subprocesses_per_worker
        self.default_debug_level = default_debug_level
        self.default_boot_mode = default_boot_mode
        self._lock = asyncio.Lock()

    @classmethod
    def from_settings(cls, settings: Settings) -> "SettingsStore":
        return cls(
            settings.settings_file,
            default_worker_threads=settings.default_worker_threads,
            default_subprocesses_per_worker=settings.default_subprocesses_per_worker,
            default_debug_level=settings.default_debug_level,
            default_boot_mode=settings.default_boot_mode,
        )

    def defaults(self) -> dict:
        return {
            "buildScheduler": {
                "workerThreads": self.default_worker_threads,
                "subprocessesPerWorker": self.default_subprocesses_per_worker,
            },
            "defaults": {
                "debugLevel": self.default_debug_level,
                "bootMode": self.default_boot_mode,
            },
            "hostDockerSocketOverride": None,
        }

    def normalize(self, raw: dict) -> dict:
        """
        保存済み・更新後の設定を正規化

        buildScheduler は build / concurrency の別名、およびトップレベルの
        workerThreads / workers などの平坦なキーも受け付ける。
        """
        if not isinstance(raw, dict):
            raw = {}

        extras = {key: value for key, value in raw.items() if key not in _KNOWN_KEYS}

        scheduler = raw.get("buildScheduler") or raw.get("build") or raw.get("concurrency") or raw
        worker_threads = parse_positive_int(
            _pick(scheduler, "workerThreads", "workers"),
            self.default_worker_threads,
        )
        subprocesses = parse_positive_int(
            _pick(scheduler, "subprocessesPerWorker", "subprocesses"),
            self.default_subprocesses_per_worker,
        )

        defaults = raw.get("defaults") if isinstance(raw.get("defaults"), dict) else {}
        debug_level = defaults.get("debugLevel")
        boot_mode = defaults.get("bootMode")

        return {
            **extras,
            "buildScheduler": {
                "workerThreads": worker_threads,
                "subprocessesPerWorker": subprocesses,
            },
            "defaults": {
                "debugLevel": debug_level if isinstance(debug_level, str) else self.default_debug_level,
                "bootMode": boot_mode if isinstance(boot_mode, str) else self.default_boot_mode,
            },
            "hostDockerSocketOverride": normalize_socket_override(
                raw.get("hostDockerSocketOverride")
            ),
        }

    def _apply_updates(self, current: dict, updates: dict) -> dict:
        scheduler_source = updates.get("concurrency") or updates.get("buildScheduler") or {}
        defaults_source = updates.get("defaults") or {}

        worker_threads = _pick(scheduler_source, "workerThreads", "workers")
        if worker_threads is None:
            worker_threads = updates.get("workerThreads")
        subprocesses = _pick(scheduler_source, "subprocessesPerWorker", "subprocesses")
        if subprocesses is None:
            subprocesses = updates.get("subprocessesPerWorker")
        debug_level = _pick(defaults_source, "debugLevel") or updates.get("debugLevel")
        boot_mode = _pick(defaults_source, "bootMode") or updates.get("bootMode")

        if "hostDockerSocketOverride" in updates:
            override = updates["hostDockerSocketOverride"]
        elif isinstance(defaults_source, dict) and "hostDockerSocketOverride" in defaults_source:
            override = defaults_source["hostDockerSocketOverride"]
        else:
            override = current.get("hostDockerSocketOverride")

        extras = {key: value for key, value in updates.items() if key not in _KNOWN_KEYS}
        merged = deep_merge(current, extras)
        merged["buildScheduler"] = {
            "workerThreads": worker_threads
            if worker_threads is not None
            else current["buildScheduler"]["workerThreads"],
            "subprocessesPerWorker": subprocesses
            if subprocesses is not None
            else current["buildScheduler"]["subprocessesPerWorker"],
        }
        merged["defaults"] = {
            "debugLevel": debug_level if debug_level is not None else current["defaults"]["debugLevel"],
            "bootMode": boot_mode if boot_mode is not None else current["defaults"]["bootMode"],
        }
        merged["hostDockerSocketOverride"] = override
        return self.normalize(merged)

    async def _load(self) -> dict:
        try:
            raw = await asyncio.to_thread(read_json, self.path, None)
        except (OSError, ValueError) as e:
            raise SettingsStoreError(
                "設定ファイルの読み込みに失敗しました",
                details={"path": str(self.path), "error": str(e)},
            ) from e
        if raw is None:
            return self.defaults()
        return self.normalize(raw)

    async def fetch(self) -> dict:
        """
        現在の設定を取得

        Raises:
            SettingsStoreError: 読み込み失敗時
        """
        return await self._load()

    async def update(self, updates: dict) -> dict:
        """
        設定を部分更新

        Args:
            updates: 部分的な設定（既知キーは正規化、その他は深いマージ）

        Returns:
            {"ok": True, "settings": マージ後の設定}

        Raises:
            SettingsStoreError: 読み書き失敗時（ファイルは変更されない）
        """
        async with self._lock:
            current = await self._load()
            merged = self._apply_updates(current, updates or {})
            try:
                await asyncio.to_thread(write_json_atomic, self.path, merged)
            except (OSError, TypeError, ValueError) as e:
                raise SettingsStoreError(
                    "設定ファイルの書き込みに失敗しました",
                    details={"path": str(self.path), "error": str(e)},
                ) from e

        logger.info(
            "設定更新完了",
            path=str(self.path),
            keys=sorted(updates.keys()) if updates else [],
        )
        return {"ok": True, "settings": merged}
