"""
コンテナエンジン連携
接続先解決・起動仕様生成・aiodocker アダプターを提供する
"""
from stack_control.services.engine.client import BuildImageResult, EngineClient
from stack_control.services.engine.options import ContainerLaunchSpec, build_container_options
from stack_control.services.engine.sockets import (
    EndpointAddress,
    EndpointKind,
    SocketBinding,
    detect_endpoints,
    normalize_endpoint,
    resolve_binding,
)

__all__ = [
    "BuildImageResult",
    "EngineClient",
    "ContainerLaunchSpec",
    "build_container_options",
    "EndpointAddress",
    "EndpointKind",
    "SocketBinding",
    "detect_endpoints",
    "normalize_endpoint",
    "resolve_binding",
]
