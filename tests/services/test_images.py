"""
イメージ転送のテスト
"""
import asyncio

import pytest

from stack_control.services.images import ImageTransfer
from stack_control.utils.exceptions import EngineError


class TestImageTransfer:
    """イメージ転送"""

    @pytest.mark.unit
    async def test_push_event_sequence(self, image_transfer, engine, registry, history):
        async def push(repository, *, tag, auth, on_record):
            on_record(f"{tag}: digest: sha256:abc")
            return [f"{tag}: digest: sha256:abc"]

        engine.push_image.side_effect = push
        events = []

        result = await image_transfer.push(registry.resolve("moon"), events.append)

        assert events[0] == {
            "type": "start",
            "action": "push",
            "services": ["moon"],
            "options": {"tag": "latest"},
        }
        progress = [e for e in events if e["type"] == "progress"]
        assert [e["event"]["step"] for e in progress] == ["push", "docker-push"]
        assert progress[1]["event"]["message"] == "latest: digest: sha256:abc"
        assert events[-1] == result
        assert result["ok"] is True
        assert result["result"] == {
            "results": [{"service": "moon", "ok": True, "image": "captainpax/noona-moon:latest"}],
        }

        entries = await history.read()
        assert [(e["action"], e["service"], e["status"]) for e in entries] == [
            ("push", "moon", "success"),
        ]
        assert entries[0]["details"] == {"image": "captainpax/noona-moon:latest"}

    @pytest.mark.unit
    async def test_pull_failure_continues(self, image_transfer, engine, registry, history):
        engine.pull_image.side_effect = [EngineError("pullImage", "manifest unknown"), []]
        events = []

        result = await image_transfer.pull(registry.resolve(["moon", "sage"]), events.append)

        assert result["ok"] is False
        assert result["error"] == "一部のイメージのプルに失敗しました"
        assert [r["ok"] for r in result["result"]["results"]] == [False, True]
        assert result["result"]["results"][0]["error"] == "manifest unknown"
        assert engine.pull_image.await_count == 2
        assert any(e["type"] == "log" and e["level"] == "error" for e in events)

        entries = await history.read()
        assert [(e["action"], e["service"], e["status"]) for e in entries] == [
            ("pull", "moon", "failed"),
            ("pull", "sage", "success"),
        ]

    @pytest.mark.unit
    async def test_registry_auth_forwarded(self, engine, registry, history):
        auth = {"username": "captainpax", "password": "secret"}
        transfer = ImageTransfer(engine, history, auth=auth, tag="edge")

        await transfer.push(registry.resolve("moon"), lambda event: None)

        args = engine.push_image.await_args
        assert args.args == ("captainpax/noona-moon",)
        assert args.kwargs["tag"] == "edge"
        assert args.kwargs["auth"] == auth

    @pytest.mark.unit
    async def test_cancellation_records_in_flight_service(self, image_transfer, engine, registry, history):
        started = asyncio.Event()

        async def hanging_pull(*args, **kwargs):
            started.set()
            await asyncio.sleep(3600)

        engine.pull_image.side_effect = hanging_pull
        events = []
        task = asyncio.create_task(image_transfer.pull(registry.resolve(["moon", "sage"]), events.append))
        await started.wait()
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task
        assert engine.pull_image.await_count == 1
        entries = await history.read()
        assert [(e["action"], e["service"], e["status"]) for e in entries] == [
            ("pull", "moon", "cancelled"),
        ]
        assert events[-1] == {
            "type": "complete",
            "action": "pull",
            "ok": False,
            "error": "プルがキャンセルされました",
        }
