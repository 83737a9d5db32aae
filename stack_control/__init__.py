"""
スタックコントロール
Noonaスタックのローカルビルド・起動・監視用コントロールプレーン
"""

__version__ = "1.0.0"
