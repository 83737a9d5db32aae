"""
Noona スタックコントロール メインアプリケーション
"""
from stack_control.config import get_settings
from stack_control.core.app_factory import create_app

app = create_app()


def run() -> None:
    """開発サーバーを起動"""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "stack_control.main:app",
        host="0.0.0.0",
        port=settings.app_port,
        reload=settings.is_development,
    )


if __name__ == "__main__":
    run()
