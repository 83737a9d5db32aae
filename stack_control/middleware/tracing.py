"""
リクエストトレーシングミドルウェア

純粋なASGIミドルウェアとして実装し、NDJSONストリーミングとの互換性を確保
"""
import re
import time
import uuid

import structlog
from starlette.types import ASGIApp, Message, Receive, Scope, Send
from structlog.contextvars import bind_contextvars, clear_contextvars

logger = structlog.get_logger(__name__)

# クライアント指定のリクエストIDとして受け付ける形式
_REQUEST_ID_PATTERN = re.compile(r"^[A-Za-z0-9._-]{1,128}$")


class TracingMiddleware:
    """
    リクエストトレーシングミドルウェア（純粋なASGI実装）

    各リクエストに一意のIDを付与し、ログとレスポンスヘッダーで追跡可能にする。
    ストリーミングレスポンスは本文送信完了時に所要時間を記録する。
    """

    REQUEST_ID_HEADER = b"x-request-id"
    PROCESS_TIME_HEADER = b"x-process-time"

    # ログ出力をスキップするパス
    SKIP_LOG_PATHS = {
        "/health",
    }

    def __init__(self, app: ASGIApp, log_requests: bool = True):
        self.app = app
        self.log_requests = log_requests

    def _get_headers_dict(self, scope: Scope) -> dict[str, str]:
        """scopeからヘッダー辞書を取得"""
        return dict(
            (k.decode("latin-1"), v.decode("latin-1"))
            for k, v in scope.get("headers", [])
        )

    def _should_log(self, path: str) -> bool:
        """ログ出力すべきパスか判定"""
        if not self.log_requests:
            return False
        return path not in self.SKIP_LOG_PATHS

    @staticmethod
    def _resolve_request_id(headers: dict[str, str]) -> str:
        candidate = headers.get("x-request-id", "")
        if _REQUEST_ID_PATTERN.match(candidate):
            return candidate
        return str(uuid.uuid4())

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        headers = self._get_headers_dict(scope)
        path = scope.get("path", "")
        request_id = self._resolve_request_id(headers)
        start_time = time.perf_counter()

        clear_contextvars()
        bind_contextvars(
            request_id=request_id,
            method=scope.get("method", ""),
            path=path,
        )

        # request.state.request_id として参照できるようにする
        if "state" not in scope:
            scope["state"] = {}
        scope["state"]["request_id"] = request_id

        should_log = self._should_log(path)
        if should_log:
            client = scope.get("client")
            logger.info(
                "リクエスト受信",
                client_ip=client[0] if client else "unknown",
                user_agent=headers.get("user-agent", "unknown"),
            )

        request_id_bytes = request_id.encode("latin-1")
        status_code: int | None = None

        async def send_with_tracing(message: Message) -> None:
            nonlocal status_code
            if message["type"] == "http.response.start":
                status_code = message.get("status")
                process_time = time.perf_counter() - start_time
                existing_headers = list(message.get("headers", []))
                existing_headers.append([self.REQUEST_ID_HEADER, request_id_bytes])
                existing_headers.append(
                    [self.PROCESS_TIME_HEADER, f"{process_time:.4f}".encode("latin-1")]
                )
                message = {**message, "headers": existing_headers}
            elif (
                message["type"] == "http.response.body"
                and not message.get("more_body", False)
                and should_log
            ):
                logger.info(
                    "レスポンス送信完了",
                    status_code=status_code,
                    process_time_ms=round((time.perf_counter() - start_time) * 1000, 2),
                )
            await send(message)

        try:
            await self.app(scope, receive, send_with_tracing)
        except Exception as e:
            logger.error(
                "リクエスト処理エラー",
                error=str(e),
                error_type=type(e).__name__,
                process_time_ms=round((time.perf_counter() - start_time) * 1000, 2),
                exc_info=True,
            )
            raise
        finally:
            clear_contextvars()
