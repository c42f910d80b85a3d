from __future__ import annotations

from .routes_actions import router as actions_router
from .routes_conversation import router as conversation_router
from .routes_health import router as health_router

__all__ = [
    "actions_router",
    "conversation_router",
    "health_router",
]
