from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends

from orb.api.dependencies import get_conversation, raise_http
from orb.core.conversation import Conversation
from orb.core.errors import OrbError

router = APIRouter(prefix="/actions", tags=["actions"])


@router.get("")
def list_actions(conversation: Conversation = Depends(get_conversation)) -> dict[str, Any]:
    return {
        "actions": [plan.to_payload() for plan in conversation.registry.plans()],
        "counts": conversation.registry.counts(),
    }


@router.post("/{plan_id}/confirm")
def confirm_action(plan_id: str, conversation: Conversation = Depends(get_conversation)) -> dict[str, Any]:
    try:
        plan = conversation.registry.confirm(plan_id)
    except OrbError as exc:
        raise_http(exc)
    return {"action": plan.to_payload()}


@router.post("/{plan_id}/reject")
def reject_action(plan_id: str, conversation: Conversation = Depends(get_conversation)) -> dict[str, Any]:
    try:
        plan = conversation.registry.discard(plan_id)
    except OrbError as exc:
        raise_http(exc)
    return {"status": "discarded", "id": plan.id}
