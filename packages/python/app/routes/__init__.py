from .chat import chat_router
from .metrics import metrics_router

__all__ = ["chat_router", "metrics_router"]
