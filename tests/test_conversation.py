from __future__ import annotations

import asyncio

import pytest

from orb.core.config import Settings
from orb.core.conversation import Conversation
from orb.core.errors import AiCallFailed, IllegalTransition
from orb.core.state_machine import ConversationState

S = ConversationState


class FakeClient:
    def __init__(self, text: str = "", *, fail: bool = False) -> None:
        self.text = text
        self.fail = fail
        self.calls: list[list[dict[str, str]]] = []

    async def chat(self, messages, **options):
        self.calls.append(list(messages))
        if self.fail:
            raise AiCallFailed("service down")
        return {"text": self.text}


def _conversation(**overrides) -> Conversation:
    return Conversation(Settings(**overrides))


def test_cycle_through_events() -> None:
    conversation = _conversation()
    assert conversation.begin_listening() is S.LISTENING
    generation = conversation.submit_transcript("  show me sales ")
    assert conversation.state is S.THINKING
    reply = conversation.deliver_reply('Here. [CHART:bar:{"labels": ["q1"], "data": [4]}]', generation)
    assert reply is not None
    assert conversation.state is S.VISUALIZING
    assert conversation.finish_playback(generation) is S.IDLE
    assert [r.role for r in conversation.log] == ["user", "assistant"]
    assert conversation.log[0].text == "show me sales"


def test_empty_transcript_is_refused_before_any_change() -> None:
    conversation = _conversation()
    conversation.begin_listening()
    with pytest.raises(ValueError):
        conversation.submit_transcript("   ")
    assert conversation.state is S.LISTENING
    assert len(conversation.log) == 0


def test_transcript_outside_listening_is_illegal_and_not_logged() -> None:
    conversation = _conversation()
    with pytest.raises(IllegalTransition):
        conversation.submit_transcript("hello")
    assert len(conversation.log) == 0


def test_stale_reply_after_reset_is_dropped() -> None:
    conversation = _conversation()
    conversation.begin_listening()
    old = conversation.submit_transcript("first question")
    conversation.reset()
    conversation.begin_listening()
    current = conversation.submit_transcript("second question")

    assert conversation.deliver_reply("late answer", old) is None
    assert conversation.state is S.THINKING
    assert [r.text for r in conversation.log] == ["first question", "second question"]

    reply = conversation.deliver_reply("fresh answer", current)
    assert reply is not None
    assert conversation.state is S.SPEAKING


def test_malformed_visual_reply_speaks() -> None:
    conversation = _conversation()
    conversation.begin_listening()
    generation = conversation.submit_transcript("chart please")
    reply = conversation.deliver_reply("Oops [CHART:bar:{not-json}]", generation)
    assert reply.record.visual is None
    assert conversation.state is S.SPEAKING


def test_failures_lead_to_error_and_reset_recovers() -> None:
    conversation = _conversation()
    conversation.begin_listening()
    assert conversation.fail_capture("microphone unplugged") is S.ERROR
    assert conversation.snapshot()["last_error"] == "microphone unplugged"
    with pytest.raises(IllegalTransition):
        conversation.begin_listening()
    assert conversation.reset() is S.IDLE
    assert conversation.snapshot()["last_error"] is None


def test_stale_ai_failure_is_ignored() -> None:
    conversation = _conversation()
    conversation.begin_listening()
    old = conversation.submit_transcript("q")
    conversation.reset()
    assert conversation.fail_ai_call("timeout", old) is S.IDLE
    assert conversation.last_error is None


def test_snapshot_counts() -> None:
    conversation = _conversation()
    conversation.begin_listening()
    generation = conversation.submit_transcript("q")
    conversation.deliver_reply("[ACTION:search:cats]", generation)
    snapshot = conversation.snapshot()
    assert snapshot["state"] == "speaking"
    assert snapshot["generation"] == generation
    assert snapshot["messages"] == 2
    assert snapshot["actions"] == {"pending": 1, "confirmed": 0}


@pytest.mark.asyncio
async def test_ask_runs_a_full_turn() -> None:
    conversation = _conversation(chat_history_max_messages=4, chat_system_prompt="be brief")
    client = FakeClient('Here is a map. [MINDMAP:{"center": "Trip", "branches": ["Food"]}]')
    reply = await conversation.ask(client, "plan my trip")
    assert reply is not None
    assert reply.record.visual is not None
    assert conversation.state is S.VISUALIZING
    messages = client.calls[0]
    assert messages[0] == {"role": "system", "content": "be brief"}
    assert messages[-1] == {"role": "user", "content": "plan my trip"}

    conversation.finish_playback(conversation.generation)
    await conversation.ask(client, "and the budget?")
    second = client.calls[1]
    assert [m["role"] for m in second] == ["system", "user", "assistant", "user"]


@pytest.mark.asyncio
async def test_ask_failure_enters_error() -> None:
    conversation = _conversation()
    reply = await conversation.ask(FakeClient(fail=True), "hello")
    assert reply is None
    assert conversation.state is S.ERROR
    assert conversation.last_error == "service down"


@pytest.mark.asyncio
async def test_playback_timeout_resets_current_cycle() -> None:
    conversation = _conversation(playback_timeout_sec=0.01)
    await conversation.ask(FakeClient("hi"), "hello")
    assert conversation.state is S.SPEAKING
    await asyncio.sleep(0.05)
    assert conversation.state is S.IDLE


@pytest.mark.asyncio
async def test_playback_timeout_does_not_touch_a_newer_cycle() -> None:
    conversation = _conversation(playback_timeout_sec=0.05)
    await conversation.ask(FakeClient("hi"), "hello")
    conversation.finish_playback(conversation.generation)
    conversation.begin_listening()
    await asyncio.sleep(0.1)
    assert conversation.state is S.LISTENING


@pytest.mark.asyncio
async def test_finished_playback_cancels_timeout() -> None:
    conversation = _conversation(playback_timeout_sec=0.05)
    await conversation.ask(FakeClient("hi"), "hello")
    generation = conversation.generation
    conversation.finish_playback(generation)
    await asyncio.sleep(0.1)
    assert conversation.state is S.IDLE
    assert conversation.generation == generation


class BrokenClient:
    async def chat(self, messages, **options):
        raise KeyError("choices")


@pytest.mark.asyncio
async def test_unexpected_client_error_enters_error() -> None:
    conversation = _conversation()
    reply = await conversation.ask(BrokenClient(), "hello")
    assert reply is None
    assert conversation.state is S.ERROR
    assert "choices" in conversation.last_error
