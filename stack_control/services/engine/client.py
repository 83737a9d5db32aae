"""
Dockerエンジンクライアント
aiodocker を使ったイメージのビルド・プッシュ・プルとコンテナ操作を担当
"""
import asyncio
import io
import posixpath
import tarfile
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import aiodocker
import pathspec
import structlog

from stack_control.services.engine.options import ContainerLaunchSpec
from stack_control.utils.exceptions import EngineError

logger = structlog.get_logger(__name__)

# ビルドコンテキストから常に除外するパス
DEFAULT_CONTEXT_EXCLUDES = (".git", "node_modules", "dist", "build")


@dataclass
class BuildImageResult:
    """イメージビルド結果"""

    tag: str
    records: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


def _record_line(record: Any) -> str:
    """進捗ストリームの1レコードからログ行を取り出す"""
    if isinstance(record, str):
        return record.strip()
    if isinstance(record, dict):
        value = record.get("stream") or record.get("status") or record.get("error")
        if not isinstance(value, str):
            return ""
        # プッシュ・プルの進捗はレイヤーIDごとに届く
        layer = record.get("id")
        return f"{layer}: {value.strip()}" if layer and "stream" not in record else value.strip()
    return str(record).strip() if record is not None else ""


def read_dockerignore(context: Path, dockerfile: Path | None = None) -> pathspec.PathSpec:
    """
    除外パターンを読み込む

    既定除外のあとにコンテキスト直下、Dockerfileのあるディレクトリの順で
    .dockerignore を連結する。後の行が優先され、"!" で再包含できる。
    """
    lines = list(DEFAULT_CONTEXT_EXCLUDES)
    candidates = [context / ".dockerignore"]
    if dockerfile is not None and dockerfile.parent != context and context in dockerfile.parents:
        candidates.append(dockerfile.parent / ".dockerignore")

    for path in candidates:
        if path.is_file():
            lines.extend(path.read_text(encoding="utf-8").splitlines())
    return pathspec.PathSpec.from_lines("gitwildmatch", lines)


def normalize_dockerfile_path(context_dir: str, dockerfile: str | None) -> str | None:
    """Dockerfileパスをビルドコンテキストからの相対パスに変換"""
    if not dockerfile:
        return dockerfile
    normalized_context = context_dir.replace("\\", "/") if context_dir else context_dir
    normalized_dockerfile = dockerfile.replace("\\", "/")
    if not normalized_context:
        return normalized_dockerfile
    relative = posixpath.relpath(normalized_dockerfile, normalized_context)
    return relative or normalized_dockerfile


def create_build_context(context_dir: str, dockerfile: str | None = None) -> io.BytesIO:
    """
    ビルドコンテキストのgzip圧縮tarを作成

    .dockerignore と既定除外パターンに一致するファイルは含めない。

    Args:
        context_dir: ビルドコンテキストのディレクトリ
        dockerfile: Dockerfileのパス

    Returns:
        先頭にシーク済みのtarストリーム
    """
    context = Path(context_dir).resolve()
    dockerfile_path = Path(dockerfile).resolve() if dockerfile else None
    ignore = read_dockerignore(context, dockerfile_path)

    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode="w:gz") as tar:
        for path in sorted(context.rglob("*")):
            relative = path.relative_to(context).as_posix()
            # Dockerfile自体は除外パターンに関係なく含める
            if path != dockerfile_path and ignore.match_file(relative):
                continue
            if path.is_file() or path.is_symlink():
                tar.add(str(path), arcname=relative, recursive=False)
    buffer.seek(0)
    return buffer


def _format_ports(ports: dict | None) -> str:
    if not ports:
        return "—"
    entries = []
    for internal, bindings in ports.items():
        if not bindings:
            entries.append(internal)
            continue
        for binding in bindings:
            host_ip = binding.get("HostIp")
            host = host_ip if host_ip and host_ip not in ("0.0.0.0", "::") else "localhost"
            entries.append(f"{host}:{binding.get('HostPort')} → {internal}")
    return ", ".join(entries) if entries else "—"


def format_container(inspection: dict) -> dict:
    """コンテナ詳細をダッシュボード表示用レコードに整形"""
    state = inspection.get("State") or {}
    name = (inspection.get("Name") or "").lstrip("/") or inspection.get("Id", "unknown")
    return {
        "id": inspection.get("Id"),
        "name": name,
        "image": (inspection.get("Config") or {}).get("Image"),
        "state": state.get("Status") or "unknown",
        "status": (state.get("Health") or {}).get("Status") or state.get("Status") or "unknown",
        "ports": _format_ports((inspection.get("NetworkSettings") or {}).get("Ports")),
        "createdAt": inspection.get("Created"),
    }


class EngineClient:
    """Dockerエンジン操作アダプター"""

    def __init__(self, docker: aiodocker.Docker) -> None:
        self.docker = docker

    @staticmethod
    async def _consume_stream(
        operation: str,
        stream: AsyncIterator[Any],
        context: dict[str, Any],
        on_record: Callable[[str], None] | None,
    ) -> list[str]:
        """
        エンジンの進捗ストリームを読み切り、出力行を逐次通知

        エラーレコードを受け取った時点で直近の出力行を添えて EngineError にする。
        """
        records: list[str] = []
        async for record in stream:
            if isinstance(record, dict) and record.get("error"):
                detail = record.get("errorDetail") or {}
                raise EngineError(
                    operation,
                    detail.get("message") or record["error"],
                    context={**context, "records": records[-10:]},
                )
            line = _record_line(record)
            if not line:
                continue
            records.append(line)
            if on_record is not None:
                on_record(line)
        return records

    async def build_image(
        self,
        *,
        context_dir: str,
        dockerfile: str,
        tag: str,
        no_cache: bool = False,
        build_args: dict[str, str] | None = None,
        on_record: Callable[[str], None] | None = None,
    ) -> BuildImageResult:
        """
        イメージをビルドし、出力行を逐次通知

        呼び出し元タスクがキャンセルされるとビルドストリームの接続が閉じられ、
        エンジン側のビルドも中断される。

        Args:
            context_dir: ビルドコンテキストのディレクトリ
            dockerfile: Dockerfileのパス
            tag: 付与するイメージタグ
            no_cache: キャッシュを使わない
            build_args: ビルド引数
            on_record: 出力行ごとのコールバック

        Returns:
            ビルド結果

        Raises:
            EngineError: ビルド失敗時
        """
        context = await asyncio.to_thread(create_build_context, context_dir, dockerfile)

        logger.info("イメージビルド開始", tag=tag, dockerfile=dockerfile, no_cache=no_cache)
        try:
            stream = self.docker.images.build(
                fileobj=context,
                encoding="gzip",
                path_dockerfile=normalize_dockerfile_path(context_dir, dockerfile),
                tag=tag,
                nocache=no_cache,
                buildargs=build_args or {},
                stream=True,
            )
            records = await self._consume_stream("buildImage", stream, {"tag": tag}, on_record)
        except aiodocker.exceptions.DockerError as e:
            raise EngineError(
                "buildImage", e.message, status=e.status, context={"tag": tag}
            ) from e
        except asyncio.CancelledError:
            logger.warning("イメージビルドキャンセル", tag=tag)
            raise

        result = BuildImageResult(
            tag=tag,
            records=records,
            warnings=[line for line in records if "warning" in line.lower()],
        )
        logger.info("イメージビルド完了", tag=tag, records=len(records))
        return result

    async def push_image(
        self,
        repository: str,
        *,
        tag: str = "latest",
        auth: dict[str, str] | None = None,
        on_record: Callable[[str], None] | None = None,
    ) -> list[str]:
        """
        イメージをレジストリへプッシュ

        Returns:
            エンジンの出力行

        Raises:
            EngineError: プッシュ失敗時
        """
        reference = f"{repository}:{tag}"
        logger.info("イメージプッシュ開始", image=reference)
        try:
            stream = self.docker.images.push(repository, tag=tag, auth=auth, stream=True)
            records = await self._consume_stream("pushImage", stream, {"image": reference}, on_record)
        except aiodocker.exceptions.DockerError as e:
            raise EngineError(
                "pushImage", e.message, status=e.status, context={"image": reference}
            ) from e
        except asyncio.CancelledError:
            logger.warning("イメージプッシュキャンセル", image=reference)
            raise

        logger.info("イメージプッシュ完了", image=reference, records=len(records))
        return records

    async def pull_image(
        self,
        repository: str,
        *,
        tag: str = "latest",
        auth: dict[str, str] | None = None,
        on_record: Callable[[str], None] | None = None,
    ) -> list[str]:
        """
        イメージをレジストリからプル

        Returns:
            エンジンの出力行

        Raises:
            EngineError: プル失敗時
        """
        reference = f"{repository}:{tag}"
        logger.info("イメージプル開始", image=reference)
        try:
            stream = self.docker.images.pull(repository, tag=tag, auth=auth, stream=True)
            records = await self._consume_stream("pullImage", stream, {"image": reference}, on_record)
        except aiodocker.exceptions.DockerError as e:
            raise EngineError(
                "pullImage", e.message, status=e.status, context={"image": reference}
            ) from e
        except asyncio.CancelledError:
            logger.warning("イメージプルキャンセル", image=reference)
            raise

        logger.info("イメージプル完了", image=reference, records=len(records))
        return records

    async def ensure_network(self, name: str) -> bool:
        """
        ネットワークが存在しなければ作成

        Returns:
            True: 新規作成, False: 既存
        """
        try:
            await self.docker.networks.get(name)
            return False
        except aiodocker.exceptions.DockerError as e:
            if e.status != 404:
                raise EngineError("inspectNetwork", e.message, status=e.status) from e

        try:
            await self.docker.networks.create({"Name": name, "Driver": "bridge"})
        except aiodocker.exceptions.DockerError as e:
            raise EngineError("createNetwork", e.message, status=e.status) from e
        logger.info("ネットワーク作成完了", network=name)
        return True

    async def run_container(
        self,
        name: str,
        spec: ContainerLaunchSpec,
        *,
        network: str | None = None,
        exposed_ports: dict[str, dict] | None = None,
        port_bindings: dict[str, list[dict]] | None = None,
    ) -> str:
        """
        起動仕様からコンテナを作成・起動

        Returns:
            コンテナID
        """
        host_config: dict[str, Any] = {}
        if network:
            host_config["NetworkMode"] = network
        if port_bindings:
            host_config["PortBindings"] = port_bindings

        extra: dict[str, Any] = {"Hostname": name, "HostConfig": host_config}
        if network:
            extra["NetworkingConfig"] = {"EndpointsConfig": {network: {}}}
        if exposed_ports:
            extra["ExposedPorts"] = exposed_ports

        config = spec.to_create_config(**extra)
        try:
            container = await self.docker.containers.create_or_replace(
                name=name,
                config=config,
            )
            await container.start()
        except aiodocker.exceptions.DockerError as e:
            raise EngineError(
                "runContainer", e.message, status=e.status, context={"name": name}
            ) from e

        logger.info("コンテナ起動完了", name=name, image=spec.image)
        return container.id

    async def stop_container(self, name: str, timeout: int = 10) -> bool:
        """
        コンテナを停止

        Returns:
            True: 停止した, False: 存在しない・停止済み
        """
        try:
            container = await self.docker.containers.get(name)
            info = await container.show()
            if not (info.get("State") or {}).get("Running", False):
                return False
            await container.stop(t=timeout)
        except aiodocker.exceptions.DockerError as e:
            if e.status in (304, 404):
                logger.warning("コンテナ未検出（停止済み）", name=name)
                return False
            raise EngineError("stopContainer", e.message, status=e.status) from e
        logger.info("コンテナ停止完了", name=name)
        return True

    async def list_containers(
        self,
        name_prefix: str,
        include_stopped: bool = True,
    ) -> list[dict]:
        """
        名前プレフィックスに一致する管理対象コンテナを取得

        Returns:
            整形済みコンテナレコード（エンジンの返却順）
        """
        try:
            containers = await self.docker.containers.list(
                all=include_stopped,
                filters={"name": [name_prefix]},
            )
            result = []
            for c in containers:
                info = await c.show()
                result.append(format_container(info))
        except aiodocker.exceptions.DockerError as e:
            raise EngineError("listContainers", e.message, status=e.status) from e
        return result
