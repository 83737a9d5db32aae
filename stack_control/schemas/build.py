"""
ビルド・イメージ転送・起動停止リクエストスキーマ
"""
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class BuildRequest(BaseModel):
    """ビルドリクエスト"""

    model_config = ConfigDict(populate_by_name=True)

    services: Optional[Union[list[str], str]] = Field(
        None,
        description='ビルド対象（サービス名リスト、"all"、またはカンマ区切り文字列）',
    )
    use_no_cache: bool = Field(
        default=False,
        alias="useNoCache",
        description="キャッシュを使わずにビルドする",
    )


class ImageRequest(BaseModel):
    """プッシュ・プルリクエスト"""

    services: Optional[Union[list[str], str]] = Field(
        None,
        description='対象（サービス名リスト、"all"、またはカンマ区切り文字列）',
    )


class StartRequest(BaseModel):
    """起動リクエスト"""

    model_config = ConfigDict(populate_by_name=True)

    services: Optional[Union[list[str], str]] = Field(
        None,
        description='起動対象（サービス名リスト、"all"、またはカンマ区切り文字列）',
    )
    debug_level: Optional[str] = Field(
        None,
        alias="debugLevel",
        description="DEBUG 環境変数（省略時は設定の既定値）",
    )
    boot_mode: Optional[str] = Field(
        None,
        alias="bootMode",
        description="BOOT_MODE 環境変数（省略時は設定の既定値）",
    )
