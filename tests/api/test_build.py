"""
ビルド・起動停止ストリームAPIのテスト
"""
import asyncio
import json

import pytest
from httpx import AsyncClient

from stack_control.api.dependencies import get_orchestrator
from stack_control.services.build import BuildOrchestrator


def _events(response) -> list[dict]:
    return [json.loads(line) for line in response.text.splitlines() if line.strip()]


class TestBuildAPI:
    """ビルドAPI"""

    @pytest.mark.integration
    async def test_stream_shape(self, client: AsyncClient, build_calls, build_locks):
        response = await client.post("/api/build", json={"services": "Moon, raven ,warden"})

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("application/x-ndjson")
        assert response.headers["cache-control"] == "no-cache"

        events = _events(response)
        assert events[0]["type"] == "start"
        assert events[0]["services"] == ["moon", "warden", "raven"]
        assert events[1] == {
            "type": "progress",
            "action": "build",
            "event": {"step": "docker-build", "service": "moon", "message": "Step 1/2 : FROM node"},
        }
        assert events[2] == {"type": "log", "level": "success", "message": "moon built"}
        assert events[-1]["type"] == "complete"
        assert events[-1]["ok"] is True

        assert build_calls == [{"services": ["moon", "warden", "raven"], "use_no_cache": False}]
        assert build_locks.active_services == []

    @pytest.mark.integration
    async def test_all_with_no_cache(self, client: AsyncClient, build_calls):
        response = await client.post("/api/build", json={"services": "all", "useNoCache": True})

        assert response.status_code == 200
        assert build_calls[0]["use_no_cache"] is True
        assert build_calls[0]["services"][-1] == "raven"
        assert len(build_calls[0]["services"]) == 6

    @pytest.mark.integration
    async def test_unknown_service(self, client: AsyncClient, build_calls):
        response = await client.post("/api/build", json={"services": ["moon", "luna"]})

        assert response.status_code == 400
        error = response.json()["error"]
        assert error["code"] == "VALIDATION_ERROR"
        assert "luna" in error["message"]
        assert build_calls == []

    @pytest.mark.integration
    async def test_empty_selection(self, client: AsyncClient):
        response = await client.post("/api/build", json={"services": " , "})
        assert response.status_code == 400

        missing = await client.post("/api/build", json={})
        assert missing.status_code == 400

    @pytest.mark.integration
    async def test_rejects_when_service_busy(self, client: AsyncClient, build_locks, build_calls):
        lease = await build_locks.acquire(["warden"])

        response = await client.post("/api/build", json={"services": ["moon", "warden"]})

        assert response.status_code == 409
        assert response.json()["error"]["code"] == "BUILD_IN_PROGRESS"
        assert build_calls == []
        # 拒否時は他のサービスのロックも取得しない
        assert build_locks.active_services == ["warden"]

        await lease.release()
        retry = await client.post("/api/build", json={"services": ["moon", "warden"]})
        assert retry.status_code == 200

    @pytest.mark.integration
    async def test_failure_reported_in_stream(self, client: AsyncClient, app, build_locks):
        from stack_control.utils.exceptions import BuildFailedError

        async def failing(services, use_no_cache, reporter):
            raise BuildFailedError("moon", "moon のビルドに失敗しました")

        app.dependency_overrides[get_orchestrator] = lambda: BuildOrchestrator(failing)

        response = await client.post("/api/build", json={"services": ["moon"]})

        assert response.status_code == 200
        events = _events(response)
        assert events[-1] == {
            "type": "complete",
            "action": "build",
            "ok": False,
            "error": "moon のビルドに失敗しました",
        }
        assert build_locks.active_services == []


class TestBuildDisconnect:
    """クライアント切断時のビルド中断"""

    @pytest.mark.integration
    async def test_disconnect_cancels_build_and_records_history(
        self, app, builder, engine, history, build_locks
    ):
        """切断されると実行中のビルドを中断し、cancelled を履歴に残す"""
        app.dependency_overrides[get_orchestrator] = lambda: BuildOrchestrator(builder.build_services)
        started = asyncio.Event()

        async def hanging_build(**kwargs):
            kwargs["on_record"]("Step 1/9 : FROM node")
            started.set()
            await asyncio.sleep(3600)

        engine.build_image.side_effect = hanging_build

        body = json.dumps({"services": ["moon"]}).encode()
        scope = {
            "type": "http",
            "asgi": {"version": "3.0"},
            "http_version": "1.1",
            "method": "POST",
            "scheme": "http",
            "path": "/api/build",
            "raw_path": b"/api/build",
            "root_path": "",
            "query_string": b"",
            "headers": [(b"host", b"test"), (b"content-type", b"application/json")],
            "client": ("127.0.0.1", 50000),
            "server": ("test", 80),
        }
        request_sent = False
        disconnected = asyncio.Event()
        chunks: list[bytes] = []

        async def receive():
            nonlocal request_sent
            if not request_sent:
                request_sent = True
                return {"type": "http.request", "body": body, "more_body": False}
            await disconnected.wait()
            return {"type": "http.disconnect"}

        async def send(message):
            if message["type"] == "http.response.body" and message.get("body"):
                chunks.append(message["body"])
                # ビルドが始まった後の出力で切断
                if started.is_set():
                    disconnected.set()

        await asyncio.wait_for(app(scope, receive, send), timeout=5)

        assert started.is_set()
        assert json.loads(chunks[0])["type"] == "start"
        assert engine.build_image.await_count == 1
        entries = await history.read()
        assert [(e["service"], e["status"]) for e in entries] == [("moon", "cancelled")]
        assert build_locks.active_services == []


class TestLifecycleAPI:
    """起動・停止API"""

    @pytest.mark.integration
    async def test_start(self, client: AsyncClient, engine):
        response = await client.post(
            "/api/start",
            json={"services": ["warden"], "debugLevel": "true", "bootMode": "super"},
        )

        assert response.status_code == 200
        events = _events(response)
        assert events[0]["type"] == "start"
        assert events[-1]["type"] == "complete"
        assert events[-1]["ok"] is True
        assert events[-1]["result"]["settings"]["debugLevel"] == "super"

        spec = engine.run_container.await_args.args[1]
        assert spec.env["DEBUG"] == "super"
        assert spec.env["BOOT_MODE"] == "super"

    @pytest.mark.integration
    async def test_start_unknown_service(self, client: AsyncClient, engine):
        response = await client.post("/api/start", json={"services": ["luna"]})
        assert response.status_code == 400
        engine.run_container.assert_not_awaited()

    @pytest.mark.integration
    async def test_stop(self, client: AsyncClient, engine):
        engine.list_containers.return_value = [
            {"name": "noona-moon", "state": "running", "ports": "—"},
        ]

        response = await client.post("/api/stop")

        assert response.status_code == 200
        events = _events(response)
        assert events[-1]["ok"] is True
        assert events[-1]["result"]["rows"][0]["result"] == "stopped"
        engine.stop_container.assert_awaited_once_with("noona-moon")
