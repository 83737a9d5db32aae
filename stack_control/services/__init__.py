"""
サービス層
ビルド・イメージ転送・起動停止・状態集約・設定管理の実装
"""
