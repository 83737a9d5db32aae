"""
スタック状態の集約
レジストリ・稼働コンテナ・ライフサイクル履歴を1つのスナップショットにまとめる
"""
import structlog

from stack_control.services.engine.client import EngineClient
from stack_control.services.history import LifecycleHistory
from stack_control.services.registry import ServiceRegistry

logger = structlog.get_logger(__name__)


class StateAggregator:
    """スタック状態アグリゲーター（読み取り専用、キャッシュしない）"""

    def __init__(
        self,
        registry: ServiceRegistry,
        engine: EngineClient,
        history: LifecycleHistory,
    ):
        self.registry = registry
        self.engine = engine
        self.history = history

    async def snapshot(
        self,
        include_containers: bool = False,
        include_history: bool = False,
        include_stopped: bool = True,
    ) -> dict:
        """
        現在のスナップショットを取得

        コンテナ一覧・履歴はソースが返した内容をそのままの順序で含める。
        取得に失敗したソースは errors に記録し ok を False にする。

        Args:
            include_containers: 管理対象コンテナを含める
            include_history: ライフサイクル履歴を含める
            include_stopped: 停止中のコンテナも含める

        Returns:
            {ok, services, containers?, history?, errors?}
        """
        payload: dict = {
            "ok": True,
            "services": [service.to_dict() for service in self.registry.all()],
        }
        errors = []

        if include_containers:
            try:
                payload["containers"] = await self.engine.list_containers(
                    self.registry.container_prefix,
                    include_stopped=include_stopped,
                )
            except Exception as e:
                logger.warning("コンテナ一覧取得エラー", error=str(e))
                payload["containers"] = []
                errors.append({"scope": "containers", "message": str(e) or "コンテナ一覧を取得できません"})

        if include_history:
            try:
                payload["history"] = await self.history.read()
            except Exception as e:
                logger.warning("履歴読み込みエラー", error=str(e))
                payload["history"] = []
                errors.append({"scope": "history", "message": str(e) or "ライフサイクル履歴を読み込めません"})

        if errors:
            payload["ok"] = False
            payload["errors"] = errors

        return payload
