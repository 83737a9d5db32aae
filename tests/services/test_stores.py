"""
設定ストア・ライフサイクル履歴のテスト
"""
import json

import pytest

from stack_control.services.history import LifecycleHistory
from stack_control.services.settings_store import SettingsStore, deep_merge, parse_positive_int
from stack_control.utils.exceptions import SettingsStoreError


class TestSettingsStore:
    """設定ストア"""

    @pytest.mark.unit
    async def test_fetch_defaults_when_missing(self, settings_store: SettingsStore):
        result = await settings_store.fetch()
        assert result == {
            "buildScheduler": {"workerThreads": 4, "subprocessesPerWorker": 2},
            "defaults": {"debugLevel": "false", "bootMode": "minimal"},
            "hostDockerSocketOverride": None,
        }

    @pytest.mark.unit
    async def test_update_concurrency_alias(self, settings_store: SettingsStore):
        """concurrency.workers は buildScheduler.workerThreads として保存"""
        result = await settings_store.update({"concurrency": {"workers": 2}})
        assert result["ok"] is True
        assert result["settings"]["buildScheduler"] == {
            "workerThreads": 2,
            "subprocessesPerWorker": 2,
        }
        assert "concurrency" not in result["settings"]

    @pytest.mark.unit
    async def test_update_persists(self, settings_store: SettingsStore):
        await settings_store.update({"defaults": {"bootMode": "super"}})
        saved = json.loads(settings_store.path.read_text(encoding="utf-8"))
        assert saved["defaults"] == {"debugLevel": "false", "bootMode": "super"}
        assert (await settings_store.fetch())["defaults"]["bootMode"] == "super"

    @pytest.mark.unit
    async def test_flat_keys(self, settings_store: SettingsStore):
        result = await settings_store.update({"workerThreads": 8, "debugLevel": "true"})
        assert result["settings"]["buildScheduler"]["workerThreads"] == 8
        assert result["settings"]["defaults"]["debugLevel"] == "true"

    @pytest.mark.unit
    async def test_invalid_worker_count_falls_back(self, settings_store: SettingsStore):
        result = await settings_store.update({"buildScheduler": {"workerThreads": -3}})
        assert result["settings"]["buildScheduler"]["workerThreads"] == 4

    @pytest.mark.unit
    async def test_socket_override_normalized(self, settings_store: SettingsStore):
        result = await settings_store.update({"hostDockerSocketOverride": "npipe:////./pipe/custom"})
        assert result["settings"]["hostDockerSocketOverride"] == "//./pipe/custom"

        cleared = await settings_store.update({"hostDockerSocketOverride": None})
        assert cleared["settings"]["hostDockerSocketOverride"] is None

    @pytest.mark.unit
    async def test_extra_keys_deep_merged(self, settings_store: SettingsStore):
        await settings_store.update({"ui": {"theme": "dark", "panels": {"logs": True}}})
        result = await settings_store.update({"ui": {"panels": {"history": False}}})
        assert result["settings"]["ui"] == {
            "theme": "dark",
            "panels": {"logs": True, "history": False},
        }

    @pytest.mark.unit
    async def test_corrupt_file_raises(self, settings_store: SettingsStore):
        settings_store.path.write_text("{not json", encoding="utf-8")
        with pytest.raises(SettingsStoreError):
            await settings_store.fetch()
        with pytest.raises(SettingsStoreError):
            await settings_store.update({"workerThreads": 2})
        # 失敗時はファイルを変更しない
        assert settings_store.path.read_text(encoding="utf-8") == "{not json"

    @pytest.mark.unit
    def test_helpers(self):
        assert parse_positive_int("3", 1) == 3
        assert parse_positive_int("x", 1) == 1
        assert parse_positive_int(True, 1) == 1
        assert deep_merge({"a": {"b": 1}}, {"a": {"c": 2}}) == {"a": {"b": 1, "c": 2}}


class TestLifecycleHistory:
    """ライフサイクル履歴"""

    @pytest.mark.unit
    async def test_read_missing_file(self, history: LifecycleHistory):
        assert await history.read() == []

    @pytest.mark.unit
    async def test_record_appends_with_timestamp(self, history: LifecycleHistory):
        await history.record("build", "moon", "success", {"durationMs": 10})
        await history.record("build", "warden", "failed")

        entries = await history.read()
        assert [(e["service"], e["status"]) for e in entries] == [
            ("moon", "success"),
            ("warden", "failed"),
        ]
        assert entries[0]["details"] == {"durationMs": 10}
        assert "details" not in entries[1]
        assert all("timestamp" in e for e in entries)

    @pytest.mark.unit
    async def test_trimmed_to_max_entries(self, tmp_path):
        history = LifecycleHistory(str(tmp_path / "history.json"), max_entries=3)
        for index in range(5):
            await history.record("build", f"svc{index}", "success")

        entries = await history.read()
        assert [e["service"] for e in entries] == ["svc2", "svc3", "svc4"]

    @pytest.mark.unit
    async def test_corrupt_file_reset_on_record(self, history: LifecycleHistory):
        history.path.write_text("oops", encoding="utf-8")
        with pytest.raises(ValueError):
            await history.read()

        await history.record("stop", "moon", "success")
        assert len(await history.read()) == 1
