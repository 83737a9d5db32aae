"""
アプリケーション設定のテスト
"""
import pytest
from pydantic import ValidationError

from stack_control.config import Settings, clear_settings_cache, get_settings


class TestSettings:
    """設定の読み込みとバリデーション"""

    @pytest.mark.unit
    def test_port_alias(self, monkeypatch):
        monkeypatch.setenv("DEPLOY_SERVER_PORT", "4400")
        clear_settings_cache()
        try:
            assert get_settings().app_port == 4400
        finally:
            clear_settings_cache()

    @pytest.mark.unit
    def test_service_lists(self):
        settings = Settings(stack_services=" Moon , warden,,raven ", heavy_services="RAVEN")
        assert settings.stack_services_list == ["moon", "warden", "raven"]
        assert settings.heavy_services_list == ["raven"]

    @pytest.mark.unit
    @pytest.mark.parametrize("port", [0, 70000])
    def test_invalid_port(self, port):
        with pytest.raises(ValidationError):
            Settings(app_port=port)

    @pytest.mark.unit
    def test_empty_service_list(self):
        with pytest.raises(ValidationError):
            Settings(stack_services=" , ")

    @pytest.mark.unit
    def test_registry_auth(self):
        assert Settings(registry_username="").registry_auth is None

        settings = Settings(
            registry_username="captainpax",
            registry_password="secret",
            registry_server="ghcr.io",
        )
        assert settings.registry_auth == {
            "username": "captainpax",
            "password": "secret",
            "serveraddress": "ghcr.io",
        }
