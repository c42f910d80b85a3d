from __future__ import annotations

import threading
from typing import NoReturn

from fastapi import HTTPException

from orb.core.config import get_settings
from orb.core.conversation import Conversation
from orb.core.errors import (
    AiCallFailed,
    AlreadyConfirmed,
    CaptureFailed,
    DuplicateId,
    IllegalTransition,
    NotFound,
    OrbError,
    error_response,
)
from orb.core.llm import LLMClient
from orb.core.logger import current_trace_id

_STATUS_CODES: dict[type[OrbError], int] = {
    IllegalTransition: 409,
    NotFound: 404,
    AlreadyConfirmed: 409,
    DuplicateId: 409,
    AiCallFailed: 502,
    CaptureFailed: 502,
}

_CONVERSATION: Conversation | None = None
_CONVERSATION_LOCK = threading.Lock()


def get_conversation() -> Conversation:
    """The conversation served by this process."""
    global _CONVERSATION
    with _CONVERSATION_LOCK:
        if _CONVERSATION is None:
            _CONVERSATION = Conversation(get_settings())
        return _CONVERSATION


def replace_conversation(conversation: Conversation | None) -> None:
    global _CONVERSATION
    with _CONVERSATION_LOCK:
        _CONVERSATION = conversation


def get_llm_client() -> LLMClient:
    return LLMClient(get_settings())


def raise_http(exc: OrbError) -> NoReturn:
    status_code = _STATUS_CODES.get(type(exc), 400)
    raise HTTPException(
        status_code=status_code,
        detail=error_response(exc.code, exc.message, trace_id=current_trace_id()),
    ) from exc
