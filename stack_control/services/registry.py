"""
サービスレジストリ
スタックを構成する固定サービス一覧と選択指定の正規化
"""
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path

from stack_control.config import Settings
from stack_control.utils.exceptions import UnknownServiceError, ValidationError

CORE_GROUP = "core"
HEAVY_GROUP = "heavy"


@dataclass(frozen=True)
class Service:
    """スタックサービス（起動時に生成、以後不変）"""

    name: str
    group: str
    image: str

    def to_dict(self) -> dict:
        return {"name": self.name, "group": self.group, "image": self.image}


class ServiceRegistry:
    """スタックサービスのレジストリ"""

    def __init__(
        self,
        services: Iterable[Service],
        dockerfile_dir: str | None = None,
        container_prefix: str = "noona-",
    ):
        self._services: dict[str, Service] = {}
        for service in services:
            self._services[service.name] = service
        self.dockerfile_dir = dockerfile_dir
        self.container_prefix = container_prefix

    @classmethod
    def from_settings(cls, settings: Settings) -> "ServiceRegistry":
        """設定からレジストリを生成"""
        heavy = set(settings.heavy_services_list)
        services = [
            Service(
                name=name,
                group=HEAVY_GROUP if name in heavy else CORE_GROUP,
                image=f"{settings.docker_hub_user}/noona-{name}",
            )
            for name in settings.stack_services_list
        ]
        return cls(
            services,
            dockerfile_dir=settings.dockerfile_dir,
            container_prefix=settings.container_prefix,
        )

    def __contains__(self, name: str) -> bool:
        return name in self._services

    def __len__(self) -> int:
        return len(self._services)

    @property
    def names(self) -> list[str]:
        return list(self._services)

    def all(self) -> list[Service]:
        return list(self._services.values())

    def get(self, name: str) -> Service:
        try:
            return self._services[name]
        except KeyError:
            raise UnknownServiceError([name]) from None

    def container_name(self, name: str) -> str:
        return f"{self.container_prefix}{name}"

    def dockerfile_for(self, name: str) -> str:
        """サービスのDockerfileパス（<dockerfile_dir>/<name>.Dockerfile）"""
        base = Path(self.dockerfile_dir) if self.dockerfile_dir else Path.cwd()
        return str(base / f"{name}.Dockerfile")

    def resolve(self, selection: str | Iterable[str] | None) -> list[Service]:
        """
        サービス選択指定を解決

        "all"・カンマ区切り文字列・リストを受け付け、大文字小文字と前後空白を無視する。
        heavy グループは指定順を保ったまま末尾に並べる。

        Args:
            selection: 選択指定

        Returns:
            重複を除いたサービスリスト

        Raises:
            ValidationError: 選択が空の場合
            UnknownServiceError: 未登録のサービスが含まれる場合
        """
        if selection is None:
            raise ValidationError("services", "ビルド対象のサービスを1つ以上指定してください")

        if isinstance(selection, str):
            raw = selection.split(",")
        else:
            raw = [str(item) for item in selection]

        names: list[str] = []
        for item in raw:
            name = item.strip().lower()
            if name and name not in names:
                names.append(name)

        if "all" in names:
            names = self.names

        if not names:
            raise ValidationError("services", "ビルド対象のサービスを1つ以上指定してください")

        unknown = [name for name in names if name not in self._services]
        if unknown:
            raise UnknownServiceError(unknown)

        resolved = [self._services[name] for name in names]
        return sorted(resolved, key=lambda s: s.group == HEAVY_GROUP)
