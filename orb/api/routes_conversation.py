from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from orb.api.dependencies import get_conversation, get_llm_client, raise_http
from orb.core.conversation import Conversation
from orb.core.errors import OrbError, error_response
from orb.core.llm import LLMClient

router = APIRouter(prefix="/conversation", tags=["conversation"])


class TranscriptPayload(BaseModel):
    text: str = Field(min_length=1)


class ReplyPayload(BaseModel):
    text: str
    generation: int


class FailurePayload(BaseModel):
    reason: str = "unknown"
    generation: int | None = None


class PlaybackPayload(BaseModel):
    generation: int | None = None


def _state(conversation: Conversation) -> dict[str, Any]:
    return {"state": conversation.state.value, "generation": conversation.generation}


@router.get("")
def get_snapshot(conversation: Conversation = Depends(get_conversation)) -> dict[str, Any]:
    return conversation.snapshot()


@router.get("/messages")
def list_messages(conversation: Conversation = Depends(get_conversation)) -> dict[str, Any]:
    return {"messages": conversation.log.to_dicts()}


# event routes run on the loop so a playback timeout can be scheduled
@router.post("/listen")
async def start_listening(conversation: Conversation = Depends(get_conversation)) -> dict[str, Any]:
    try:
        conversation.begin_listening()
    except OrbError as exc:
        raise_http(exc)
    return _state(conversation)


@router.post("/transcript")
async def submit_transcript(
    payload: TranscriptPayload,
    conversation: Conversation = Depends(get_conversation),
) -> dict[str, Any]:
    try:
        generation = conversation.submit_transcript(payload.text)
    except OrbError as exc:
        raise_http(exc)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=error_response("empty_transcript", str(exc))) from exc
    return {"state": conversation.state.value, "generation": generation}


@router.post("/reply")
async def deliver_reply(
    payload: ReplyPayload,
    conversation: Conversation = Depends(get_conversation),
) -> dict[str, Any]:
    try:
        reply = conversation.deliver_reply(payload.text, payload.generation)
    except OrbError as exc:
        raise_http(exc)
    body = _state(conversation)
    body["stale"] = reply is None
    body["reply"] = reply.to_dict() if reply is not None else None
    return body


@router.post("/ai-failed")
async def ai_failed(
    payload: FailurePayload,
    conversation: Conversation = Depends(get_conversation),
) -> dict[str, Any]:
    try:
        conversation.fail_ai_call(payload.reason, payload.generation)
    except OrbError as exc:
        raise_http(exc)
    return _state(conversation)


@router.post("/capture-failed")
async def capture_failed(
    payload: FailurePayload,
    conversation: Conversation = Depends(get_conversation),
) -> dict[str, Any]:
    try:
        conversation.fail_capture(payload.reason)
    except OrbError as exc:
        raise_http(exc)
    return _state(conversation)


@router.post("/playback-finished")
async def playback_finished(
    payload: PlaybackPayload,
    conversation: Conversation = Depends(get_conversation),
) -> dict[str, Any]:
    try:
        conversation.finish_playback(payload.generation)
    except OrbError as exc:
        raise_http(exc)
    return _state(conversation)


@router.post("/reset")
async def reset(conversation: Conversation = Depends(get_conversation)) -> dict[str, Any]:
    conversation.reset()
    return _state(conversation)


@router.post("/ask")
async def ask(
    payload: TranscriptPayload,
    conversation: Conversation = Depends(get_conversation),
    client: LLMClient = Depends(get_llm_client),
) -> dict[str, Any]:
    """Run a complete turn through the configured AI service."""
    try:
        reply = await conversation.ask(client, payload.text)
    except OrbError as exc:
        raise_http(exc)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=error_response("empty_transcript", str(exc))) from exc
    body = _state(conversation)
    body["reply"] = reply.to_dict() if reply is not None else None
    body["error"] = conversation.last_error if reply is None else None
    return body
