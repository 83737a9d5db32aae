"""
ライフサイクル履歴ストア

ビルド・起動・停止の結果をJSONファイルに追記し、直近 max_entries 件のみ保持する。
"""
import asyncio
from datetime import datetime, timezone
from pathlib import Path

import structlog

from stack_control.utils.json_file import read_json, write_json_atomic

logger = structlog.get_logger(__name__)


class LifecycleHistory:
    """ライフサイクル履歴ストア"""

    def __init__(self, path: str, max_entries: int = 50):
        self.path = Path(path)
        self.max_entries = max_entries
        self._lock = asyncio.Lock()

    def _read_sync(self) -> list[dict]:
        parsed = read_json(self.path, default=[])
        return parsed if isinstance(parsed, list) else []

    async def read(self) -> list[dict]:
        """
        履歴を取得（古い順）

        Raises:
            OSError, ValueError: 読み込み・解析失敗時
        """
        return await asyncio.to_thread(self._read_sync)

    async def record(
        self,
        action: str,
        service: str,
        status: str,
        details: dict | None = None,
    ) -> dict:
        """
        履歴エントリを追記

        書き込み失敗は警告ログのみで呼び出し元には伝えない。

        Returns:
            追記したエントリ
        """
        entry = {"action": action, "service": service, "status": status}
        if details:
            entry["details"] = details
        entry["timestamp"] = datetime.now(timezone.utc).isoformat()

        async with self._lock:
            try:
                try:
                    history = await self.read()
                except ValueError as e:
                    logger.warning("履歴ファイル解析エラー（初期化）", path=str(self.path), error=str(e))
                    history = []
                history.append(entry)
                await asyncio.to_thread(
                    write_json_atomic, self.path, history[-self.max_entries:]
                )
            except OSError as e:
                logger.warning("履歴書き込みエラー", path=str(self.path), error=str(e))

        return entry
