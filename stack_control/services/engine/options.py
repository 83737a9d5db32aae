"""
コンテナ起動設定の生成

サービスごとのコンテナ起動仕様（イメージ・環境変数・ソケットバインド）を組み立てる。
エンジンへの問い合わせは行わない純粋な設定生成処理。
"""
import re
import sys
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

import structlog

from stack_control.services.engine.sockets import (
    LEGACY_SOCKETS_ENV,
    PRIMARY_SOCKETS_ENV,
    EndpointAddress,
    SocketBinding,
    detect_endpoints as default_detect_endpoints,
    normalize_endpoint,
    resolve_binding,
)

logger = structlog.get_logger(__name__)

_SCHEME_PREFIX = re.compile(r"^[A-Za-z][A-Za-z0-9+.-]*://")


@dataclass
class ContainerLaunchSpec:
    """コンテナ起動仕様（リクエストごとに生成し、呼び出し元が所有する）"""

    image: str
    env: dict[str, str] = field(default_factory=dict)
    binds: list[str] = field(default_factory=list)

    @property
    def host_config(self) -> dict[str, Any]:
        return {"Binds": list(self.binds)}

    def to_dict(self) -> dict[str, Any]:
        """APIレスポンス・ログ出力用の辞書形式"""
        return {
            "image": self.image,
            "env": dict(self.env),
            "hostConfig": self.host_config,
        }

    def to_create_config(self, **overrides: Any) -> dict[str, Any]:
        """aiodocker.Docker.containers.create() に渡す設定辞書"""
        host_config = {**self.host_config, **overrides.pop("HostConfig", {})}
        return {
            "Image": self.image,
            "Env": [f"{key}={value}" for key, value in self.env.items()],
            "HostConfig": host_config,
            **overrides,
        }


def _normalize_override(host_override: str | None) -> str | None:
    """明示指定の接続先を正規化（不正値はスキーム除去後そのまま扱う）"""
    if host_override is None or not host_override.strip():
        return None
    normalized = normalize_endpoint(host_override)
    if normalized:
        return normalized
    return _SCHEME_PREFIX.sub("", host_override.strip()) or None


def _safe_detect(detect: Callable[[], list[str]]) -> list[str]:
    try:
        return list(detect() or [])
    except Exception as e:
        # 検出失敗は既定値へのフォールバックで吸収する
        logger.warning("エンジン接続先検出エラー", error=str(e))
        return []


def build_container_options(
    service_name: str,
    image: str,
    caller_env: Mapping[str, str] | None = None,
    *,
    detect_endpoints: Callable[[], list[str]] | None = None,
    platform: str | None = None,
    host_override: str | None = None,
) -> ContainerLaunchSpec:
    """
    サービスのコンテナ起動仕様を生成

    優先順位:
      - プライマリ接続先: host_override > 検出リスト先頭 > プラットフォーム既定値
      - 既知ソケット環境変数: 呼び出し元の明示値 > 算出値

    Args:
        service_name: サービス名
        image: イメージ参照
        caller_env: 呼び出し元が指定する環境変数
        detect_endpoints: 接続先検出関数（優先順リストを返す）
        platform: プラットフォーム識別子（省略時は sys.platform）
        host_override: 明示的なホスト側接続先

    Returns:
        コンテナ起動仕様
    """
    platform = sys.platform if platform is None else platform
    if detect_endpoints is None:
        detect_endpoints = lambda: default_detect_endpoints(platform=platform)  # noqa: E731

    detected = [
        value
        for value in (normalize_endpoint(entry) for entry in _safe_detect(detect_endpoints))
        if value
    ]
    override = _normalize_override(host_override)

    primary = override or resolve_binding(platform, detected)
    binding = SocketBinding(host_path=primary, kind=EndpointAddress.from_path(primary).kind)

    env = dict(caller_env or {})
    candidates = list(dict.fromkeys([override, *detected] if override else detected))
    if candidates:
        joined = ",".join(candidates)
        # 呼び出し元の明示値は上書きしない
        env.setdefault(PRIMARY_SOCKETS_ENV, joined)
        env.setdefault(LEGACY_SOCKETS_ENV, env[PRIMARY_SOCKETS_ENV])

    logger.debug(
        "コンテナ起動仕様生成",
        service=service_name,
        image=image,
        binding=binding.to_bind(),
        override=bool(override),
        detected=len(detected),
    )
    return ContainerLaunchSpec(image=image, env=env, binds=[binding.to_bind()])
