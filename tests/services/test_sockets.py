"""
エンジン接続先解決のテスト
"""
import pytest

from stack_control.services.engine.sockets import (
    DEFAULT_UNIX_SOCKET,
    DEFAULT_WINDOWS_PIPE,
    EndpointAddress,
    EndpointKind,
    detect_endpoints,
    is_windows_pipe_path,
    normalize_endpoint,
    normalize_endpoints,
    resolve_binding,
)


class TestNormalizeEndpoint:
    """接続先文字列の正規化"""

    @pytest.mark.unit
    @pytest.mark.parametrize(
        "raw",
        [
            "npipe:////./pipe/docker_engine",
            "npipe://./pipe/docker_engine",
            "\\\\.\\pipe\\docker_engine",
            "//./pipe/docker_engine",
        ],
    )
    def test_windows_pipe_forms(self, raw):
        """名前付きパイプの表記ゆれは同一パスに正規化"""
        assert normalize_endpoint(raw) == "//./pipe/docker_engine"

    @pytest.mark.unit
    def test_unix_scheme_stripped(self):
        assert normalize_endpoint("unix:///var/run/docker.sock") == "/var/run/docker.sock"

    @pytest.mark.unit
    def test_plain_path_verbatim(self):
        assert normalize_endpoint("  /custom/docker.sock ") == "/custom/docker.sock"

    @pytest.mark.unit
    @pytest.mark.parametrize("raw", [None, "", "   ", "tcp://10.0.0.2:2375"])
    def test_unbindable_values(self, raw):
        """空文字・リモートエンジンはNone"""
        assert normalize_endpoint(raw) is None

    @pytest.mark.unit
    def test_normalize_endpoints_dedup_keeps_order(self):
        result = normalize_endpoints([
            "unix:///a.sock",
            "tcp://remote:2375",
            "/a.sock",
            "/b.sock",
        ])
        assert result == ["/a.sock", "/b.sock"]

    @pytest.mark.unit
    def test_is_windows_pipe_path(self):
        assert is_windows_pipe_path("//./pipe/docker_engine")
        assert is_windows_pipe_path("\\\\.\\pipe\\docker_engine")
        assert not is_windows_pipe_path("/var/run/docker.sock")


class TestResolveBinding:
    """プライマリ接続先の決定"""

    @pytest.mark.unit
    def test_windows_default(self):
        """Windowsで検出なしの場合は既定の名前付きパイプ"""
        assert resolve_binding("win32", []) == DEFAULT_WINDOWS_PIPE

    @pytest.mark.unit
    @pytest.mark.parametrize("platform", ["linux", "darwin"])
    def test_unix_default(self, platform):
        assert resolve_binding(platform, []) == DEFAULT_UNIX_SOCKET

    @pytest.mark.unit
    def test_first_detected_entry_wins(self):
        assert resolve_binding("linux", ["/first.sock", "/second.sock"]) == "/first.sock"

    @pytest.mark.unit
    def test_first_entry_is_normalized(self):
        assert resolve_binding("win32", ["npipe:////./pipe/custom"]) == "//./pipe/custom"

    @pytest.mark.unit
    def test_remote_entries_skipped(self):
        """リモート接続先はバインド不可のため次の候補を使う"""
        assert resolve_binding("linux", ["tcp://remote:2375", "/x.sock"]) == "/x.sock"
        assert resolve_binding("linux", ["tcp://remote:2375"]) == DEFAULT_UNIX_SOCKET

    @pytest.mark.unit
    def test_resolved_default_is_addressable(self):
        """既定の接続先もそのままアドレス化できる"""
        address = EndpointAddress.from_path(resolve_binding("win32", []))
        assert address.kind is EndpointKind.NAMED_PIPE
        assert address.url == "npipe:////./pipe/docker_engine"
        assert EndpointAddress.from_path(resolve_binding("linux", [])).url == "unix:///var/run/docker.sock"


class TestEndpointAddress:
    """接続先アドレス"""

    @pytest.mark.unit
    def test_parse_pipe(self):
        address = EndpointAddress.parse("npipe:////./pipe/docker_engine")
        assert address == EndpointAddress(EndpointKind.NAMED_PIPE, "//./pipe/docker_engine")
        assert address.url == "npipe:////./pipe/docker_engine"

    @pytest.mark.unit
    def test_parse_unix(self):
        address = EndpointAddress.parse("/var/run/docker.sock")
        assert address.kind is EndpointKind.UNIX_SOCKET
        assert address.url == "unix:///var/run/docker.sock"

    @pytest.mark.unit
    def test_parse_remote(self):
        assert EndpointAddress.parse("tcp://remote:2375") is None


class TestDetectEndpoints:
    """接続先検出"""

    @pytest.mark.unit
    def test_env_lists_then_docker_host_then_existing_sockets(self):
        env = {
            "NOONA_HOST_DOCKER_SOCKETS": "/one.sock, /two.sock",
            "HOST_DOCKER_SOCKETS": "/two.sock,/three.sock",
            "DOCKER_HOST": "unix:///four.sock",
        }
        result = detect_endpoints(
            env=env,
            platform="linux",
            path_exists=lambda path: path == "/run/docker.sock",
        )
        assert result == [
            "/one.sock",
            "/two.sock",
            "/three.sock",
            "/four.sock",
            "/run/docker.sock",
        ]

    @pytest.mark.unit
    def test_windows_skips_socket_files(self):
        result = detect_endpoints(
            env={"DOCKER_HOST": "npipe:////./pipe/docker_engine"},
            platform="win32",
            path_exists=lambda path: True,
        )
        assert result == ["//./pipe/docker_engine"]

    @pytest.mark.unit
    def test_nothing_detected(self):
        assert detect_endpoints(env={}, platform="linux", path_exists=lambda path: False) == []


class TestResolveDockerUrl:
    """aiodocker 接続URLの決定"""

    @pytest.mark.unit
    def test_explicit_url_wins(self, settings):
        from stack_control.core.lifespan import resolve_docker_url

        settings.docker_url = "tcp://remote:2375"
        assert resolve_docker_url(settings) == "tcp://remote:2375"

    @pytest.mark.unit
    def test_detected_endpoint_used(self, settings, monkeypatch):
        from stack_control.core import lifespan

        monkeypatch.setattr(lifespan, "detect_endpoints", lambda: ["npipe:////./pipe/custom"])
        assert lifespan.resolve_docker_url(settings) == "npipe:////./pipe/custom"

    @pytest.mark.unit
    def test_falls_back_to_platform_default(self, settings, monkeypatch):
        from stack_control.core import lifespan

        monkeypatch.setattr(lifespan, "detect_endpoints", lambda: [])
        monkeypatch.setattr(lifespan.sys, "platform", "linux")
        assert lifespan.resolve_docker_url(settings) == "unix:///var/run/docker.sock"
