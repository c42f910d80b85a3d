from __future__ import annotations

from datetime import datetime, timezone
from importlib.metadata import PackageNotFoundError, version

from fastapi import APIRouter, Depends

from orb.api.dependencies import get_conversation
from orb.core.config import get_settings
from orb.core.conversation import Conversation

router = APIRouter(prefix="/health", tags=["health"])


@router.get("")
async def get_health(conversation: Conversation = Depends(get_conversation)) -> dict[str, object]:
    """Report process health and the conversation state."""
    try:
        pkg_version = version("orb-assistant")
    except PackageNotFoundError:  # pragma: no cover - depends on installation
        pkg_version = "unknown"

    settings = get_settings()
    return {
        "status": "ok",
        "version": pkg_version,
        "time": datetime.now(timezone.utc).isoformat(),
        "llm_configured": bool(settings.llm_model),
        "state": conversation.state.value,
    }
