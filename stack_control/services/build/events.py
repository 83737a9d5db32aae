"""
ビルドイベント

1リクエストのストリームに流れるイベントの生成と、ビルド処理から進捗を通知するレポーター。
"""
from collections.abc import Callable
from typing import Any

LOG_LEVELS = ("info", "success", "warn", "error")


def format_start_event(action: str, services: list[str], options: dict[str, Any]) -> dict:
    return {"type": "start", "action": action, "services": services, "options": options}


def format_progress_event(action: str, event: dict[str, Any]) -> dict:
    return {"type": "progress", "action": action, "event": event}


def format_log_event(level: str, message: str) -> dict:
    return {"type": "log", "level": level, "message": message}


def format_complete_event(
    action: str,
    ok: bool,
    result: dict[str, Any] | None = None,
    error: str | None = None,
) -> dict:
    """
    完了イベントを生成

    Args:
        action: 操作名（build / start / stop / push / pull）
        ok: 成功したかどうか
        result: 成功時の結果
        error: 失敗時のメッセージ

    Returns:
        completeイベント
    """
    event: dict[str, Any] = {"type": "complete", "action": action, "ok": ok}
    if ok or result is not None:
        event["result"] = result or {}
    if not ok:
        event["error"] = error or "不明なエラー"
    return event


class BuildReporter:
    """
    進捗レポーター

    progress() と info/success/warn/error() はイベントを同期的に発行し、
    呼び出し順がそのままストリーム上の順序になる。
    """

    def __init__(self, emit: Callable[[dict], None], action: str = "build"):
        self._emit = emit
        self.action = action

    def progress(self, **event: Any) -> None:
        self._emit(format_progress_event(self.action, event))

    def log(self, level: str, message: str) -> None:
        if level not in LOG_LEVELS:
            level = "info"
        self._emit(format_log_event(level, message))

    def info(self, message: str) -> None:
        self.log("info", message)

    def success(self, message: str) -> None:
        self.log("success", message)

    def warn(self, message: str) -> None:
        self.log("warn", message)

    def error(self, message: str) -> None:
        self.log("error", message)
