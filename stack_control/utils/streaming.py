"""
NDJSONストリーミングユーティリティ
長時間操作の進捗を1レスポンス上の改行区切りJSONとして送信する

イベントタイプ:
- start: 操作開始（対象サービス・オプション）
- progress: 進捗（自由形式のペイロード）
- log: ログ行（info / success / warn / error）
- complete: 操作完了（ok と result または error）
- error: 想定外の障害による終端イベント
"""
import asyncio
import json
from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Any

import anyio
import structlog
from fastapi.responses import StreamingResponse
from starlette.background import BackgroundTask

logger = structlog.get_logger(__name__)

NDJSON_MEDIA_TYPE = "application/x-ndjson"

Emit = Callable[[dict], None]

# キューの終端マーカー
_DONE = object()


def encode_ndjson(event: dict[str, Any]) -> str:
    """イベントを1行のNDJSONに変換"""
    return json.dumps(event, ensure_ascii=False, default=str) + "\n"


def format_error_event(message: str) -> dict:
    """
    想定外エラーの終端イベントを生成

    Args:
        message: エラーメッセージ

    Returns:
        {"type": "error", "ok": False, "message": ...}
    """
    return {"type": "error", "ok": False, "message": message}


async def stream_operation(
    run: Callable[[Emit], Awaitable[Any]],
    *,
    operation: str,
    on_close: Callable[[], Awaitable[None]] | None = None,
) -> AsyncIterator[str]:
    """
    操作をバックグラウンドタスクで実行し、発行イベントを順にNDJSONで送出

    run(emit) が呼び出した emit() は同期的にキューへ積まれ、発生順のまま送出される。
    run が想定外の例外で終了した場合は error イベントを終端として送出する。
    クライアント切断でジェネレーターが閉じられるとタスクをキャンセルする。

    Args:
        run: emit を受け取って操作を実行するコルーチン関数
        operation: ログ出力用の操作名
        on_close: ストリーム終了時に必ず呼ばれるクリーンアップ

    Yields:
        NDJSON行
    """
    queue: asyncio.Queue = asyncio.Queue()

    def emit(event: dict) -> None:
        queue.put_nowait(event)

    async def _runner() -> None:
        try:
            await run(emit)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(
                "ストリーム操作エラー",
                operation=operation,
                error=str(e),
                exc_info=True,
            )
            emit(format_error_event(str(e) or type(e).__name__))
        finally:
            queue.put_nowait(_DONE)

    task = asyncio.create_task(_runner())

    try:
        while True:
            event = await queue.get()
            if event is _DONE:
                break
            yield encode_ndjson(event)
    finally:
        # 切断時は応答側のスコープごとキャンセルされるため、後始末は遮蔽して待つ
        with anyio.CancelScope(shield=True):
            if not task.done():
                logger.warning("クライアント切断（操作をキャンセル）", operation=operation)
                task.cancel()
                await asyncio.gather(task, return_exceptions=True)
            if on_close is not None:
                await on_close()


def create_ndjson_response(
    stream: AsyncIterator[str],
    on_finish: Callable[[], Awaitable[None]] | None = None,
) -> StreamingResponse:
    """
    NDJSONストリーミングレスポンスを生成

    Args:
        stream: NDJSON行を送出するイテレーター
        on_finish: 送信終了後に呼ばれるクリーンアップ（ストリーム未開始でも呼ばれる）
    """
    return StreamingResponse(
        stream,
        media_type=NDJSON_MEDIA_TYPE,
        headers={
            "Cache-Control": "no-cache",
            "X-Accel-Buffering": "no",
        },
        background=BackgroundTask(on_finish) if on_finish is not None else None,
    )
