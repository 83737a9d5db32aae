"""
ミドルウェア層
リクエストトレーシング
"""
from stack_control.middleware.tracing import TracingMiddleware

__all__ = ["TracingMiddleware"]
