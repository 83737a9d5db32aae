"""
Dockerエンジン接続先の解決

ホストプラットフォームごとの接続先（Windows: 名前付きパイプ / その他: Unixソケット）を
正規化し、コンテナへバインドするプライマリ接続先を決定する。

正規化ルール:
  - npipe://./pipe/<name>   → //./pipe/<name>
  - \\\\.\\pipe\\<name>     → //./pipe/<name>
  - unix:///var/run/x.sock  → /var/run/x.sock
  - tcp://...               → None（リモートエンジンはバインド不可）
  - その他                  → 前後空白を除去してそのまま
"""
import os
import re
import sys
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from enum import Enum

import structlog

logger = structlog.get_logger(__name__)

WINDOWS_PLATFORM = "win32"
WINDOWS_PIPE_PREFIX = "//./pipe/"
DEFAULT_WINDOWS_PIPE = "//./pipe/docker_engine"
DEFAULT_UNIX_SOCKET = "/var/run/docker.sock"

# コンテナ側のソケットマウント先（固定）
CONTAINER_SOCKET_PATH = "/var/run/docker.sock"

# 起動コンテナに渡す既知ソケット一覧の環境変数
PRIMARY_SOCKETS_ENV = "NOONA_HOST_DOCKER_SOCKETS"
LEGACY_SOCKETS_ENV = "HOST_DOCKER_SOCKETS"

_WINDOWS_PIPE_PATTERN = re.compile(r"^(?:\\\\\.\\pipe\\|//\./pipe/)", re.IGNORECASE)

# 存在確認する既知のUnixソケット
WELL_KNOWN_UNIX_SOCKETS = (
    "/var/run/docker.sock",
    "/var/run/docker/docker.sock",
    "/run/docker.sock",
    "/run/docker/docker.sock",
    "/var/run/podman/podman.sock",
    "/run/podman/podman.sock",
)


class EndpointKind(str, Enum):
    """接続先の種別"""

    NAMED_PIPE = "named-pipe"
    UNIX_SOCKET = "unix-socket"


@dataclass(frozen=True)
class EndpointAddress:
    """正規化済みのエンジン接続先"""

    kind: EndpointKind
    path: str

    @classmethod
    def parse(cls, candidate: str | None) -> "EndpointAddress | None":
        """生の接続先文字列を解析（バインド不可ならNone）"""
        normalized = normalize_endpoint(candidate)
        if normalized is None:
            return None
        return cls.from_path(normalized)

    @classmethod
    def from_path(cls, path: str) -> "EndpointAddress":
        """正規化済みパスから生成（resolve_binding の戻り値など）"""
        kind = EndpointKind.NAMED_PIPE if is_windows_pipe_path(path) else EndpointKind.UNIX_SOCKET
        return cls(kind=kind, path=path)

    @property
    def url(self) -> str:
        """aiodocker に渡すURL形式"""
        if self.kind is EndpointKind.NAMED_PIPE:
            return f"npipe://{self.path}"
        return f"unix://{self.path}"


@dataclass(frozen=True)
class SocketBinding:
    """ホスト→コンテナのソケットバインド"""

    host_path: str
    kind: EndpointKind
    container_path: str = CONTAINER_SOCKET_PATH

    def to_bind(self) -> str:
        """HostConfig.Binds 形式"""
        return f"{self.host_path}:{self.container_path}"


def _normalize_windows_pipe_path(value: str) -> str | None:
    segments = [part.strip() for part in value.replace("\\", "/").split("/")]
    segments = [part for part in segments if part]
    if not segments:
        return None

    # //./pipe や .\pipe の先頭ドットセグメント
    if segments[0] == ".":
        segments.pop(0)
    if segments and segments[0].startswith("."):
        segments[0] = segments[0].lstrip(".")

    if not segments or segments[0].lower() != "pipe":
        segments.insert(0, "pipe")

    return f"{WINDOWS_PIPE_PREFIX}{'/'.join(segments[1:])}"


def normalize_endpoint(candidate: str | None) -> str | None:
    """
    接続先文字列を正規化

    Args:
        candidate: 検出値または明示指定値

    Returns:
        正規化済みパス（空・リモート・不正値はNone）
    """
    if not candidate or not isinstance(candidate, str):
        return None

    trimmed = candidate.strip()
    if not trimmed:
        return None

    if trimmed.startswith("unix://"):
        return trimmed[len("unix://"):] or None

    if trimmed.startswith("tcp://"):
        return None

    if trimmed.startswith("npipe://"):
        return _normalize_windows_pipe_path(trimmed[len("npipe://"):])

    if _WINDOWS_PIPE_PATTERN.match(trimmed):
        return _normalize_windows_pipe_path(trimmed)

    return trimmed


def is_windows_pipe_path(candidate: str | None) -> bool:
    """名前付きパイプのパスかどうか"""
    if not candidate or not isinstance(candidate, str):
        return False
    return candidate.replace("\\", "/").lower().startswith(WINDOWS_PIPE_PREFIX)


def is_remote_endpoint(candidate: str | None) -> bool:
    """TCP経由のリモートエンジンかどうか"""
    return isinstance(candidate, str) and candidate.strip().startswith("tcp://")


def normalize_endpoints(candidates: Iterable[str | None]) -> list[str]:
    """接続先リストを正規化（順序維持・重複/無効値除去）"""
    normalized: list[str] = []
    for candidate in candidates:
        value = normalize_endpoint(candidate)
        if value and value not in normalized:
            normalized.append(value)
    return normalized


def default_endpoint(platform: str) -> str:
    """プラットフォーム既定の接続先"""
    return DEFAULT_WINDOWS_PIPE if platform == WINDOWS_PLATFORM else DEFAULT_UNIX_SOCKET


def resolve_binding(platform: str, detected_endpoints: Iterable[str | None]) -> str:
    """
    プライマリ接続先を決定

    検出リストの先頭（正規化後）を優先し、空なら既定値へフォールバックする。
    検出なしは想定内の状態であり例外にはしない。

    Args:
        platform: sys.platform 相当のプラットフォーム識別子
        detected_endpoints: 検出済み接続先（優先順）

    Returns:
        コンテナへバインドするホスト側パス
    """
    candidates = normalize_endpoints(detected_endpoints)
    if candidates:
        return candidates[0]
    return default_endpoint(platform)


def detect_endpoints(
    env: Mapping[str, str] | None = None,
    platform: str | None = None,
    path_exists=os.path.exists,
) -> list[str]:
    """
    ホスト上のエンジン接続先を検出

    検出順:
      1. NOONA_HOST_DOCKER_SOCKETS / HOST_DOCKER_SOCKETS（カンマ区切り）
      2. DOCKER_HOST
      3. 既知のUnixソケット（Windows以外、存在するもののみ）

    Args:
        env: 参照する環境変数（省略時は os.environ）
        platform: プラットフォーム識別子（省略時は sys.platform）
        path_exists: ファイル存在確認関数（テスト用）

    Returns:
        正規化済み接続先リスト
    """
    env = os.environ if env is None else env
    platform = sys.platform if platform is None else platform

    raw: list[str] = []
    for key in (PRIMARY_SOCKETS_ENV, LEGACY_SOCKETS_ENV):
        value = env.get(key)
        if value and value.strip():
            raw.extend(value.split(","))

    docker_host = env.get("DOCKER_HOST")
    if docker_host:
        raw.append(docker_host)

    if platform != WINDOWS_PLATFORM:
        raw.extend(path for path in WELL_KNOWN_UNIX_SOCKETS if path_exists(path))

    endpoints = normalize_endpoints(raw)
    logger.debug("エンジン接続先検出", platform=platform, endpoints=endpoints)
    return endpoints
