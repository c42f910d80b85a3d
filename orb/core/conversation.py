"""Coordinates one conversation: state machine, interpreter, log and actions.

External collaborators (speech capture, the AI service, speech playback)
report back through the methods of :class:`Conversation`. Results of an AI
call are tagged with the generation returned by ``submit_transcript`` so a
reply arriving after a reset is ignored.
"""

from __future__ import annotations

import asyncio
import threading
from typing import Any, Protocol, Sequence

from orb.core.actions import ActionPlanRegistry
from orb.core.config import Settings, get_settings
from orb.core.errors import AiCallFailed, IllegalTransition
from orb.core.interpreter import InterpretedReply, ResponseInterpreter
from orb.core.llm import build_chat_messages
from orb.core.logger import get_logger
from orb.core.message_log import MessageLog, now_ms
from orb.core.prompts import sanitize_prompt
from orb.core.state_machine import ConversationEvent, ConversationState, ConversationStateMachine

_PLAYBACK_STATES = (ConversationState.SPEAKING, ConversationState.VISUALIZING)


class ChatClient(Protocol):
    async def chat(self, messages: Sequence[dict[str, str]], **options: Any) -> dict[str, Any]:
        ...


class Conversation:
    """One assistant conversation and its interaction cycle."""

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        machine: ConversationStateMachine | None = None,
        log: MessageLog | None = None,
        registry: ActionPlanRegistry | None = None,
        clock=now_ms,
    ) -> None:
        self.settings = settings or get_settings()
        self.machine = machine or ConversationStateMachine()
        self.log = log or MessageLog()
        self.registry = registry or ActionPlanRegistry()
        self.interpreter = ResponseInterpreter(
            self.log,
            self.registry,
            clock=clock,
            confirmed_retention_turns=self.settings.action_confirmed_retention_turns,
        )
        self.last_error: str | None = None
        self._events = threading.RLock()
        self._timeout_task: asyncio.Task[None] | None = None
        self._logger = get_logger("conversation")

    @property
    def state(self) -> ConversationState:
        return self.machine.state

    @property
    def generation(self) -> int:
        return self.machine.generation

    # ------------------------------------------------------------------ #
    # Events from external collaborators
    # ------------------------------------------------------------------ #
    def begin_listening(self) -> ConversationState:
        with self._events:
            self._cancel_playback_timeout()
            return self.machine.start_listening()

    def submit_transcript(self, text: str) -> int:
        """Record the user's words and enter THINKING; returns the request generation."""
        cleaned = sanitize_prompt(text)
        if not cleaned:
            raise ValueError("transcript is empty")
        with self._events:
            generation = self.machine.finalize_transcript()
            self.interpreter.record_user(cleaned)
        self._logger.info("transcript received", extra={"generation": generation})
        return generation

    def deliver_reply(self, text: str, generation: int) -> InterpretedReply | None:
        """Interpret the AI reply of request ``generation``; stale replies return ``None``."""
        with self._events:
            if generation != self.machine.generation:
                self._logger.info("stale reply dropped", extra={"generation": generation})
                return None
            if self.machine.state is not ConversationState.THINKING:
                raise IllegalTransition(self.machine.state, ConversationEvent.REPLY_READY)
            reply = self.interpreter.interpret(text)
            self.machine.reply_ready(reply.has_visual, generation)
            self._arm_playback_timeout(generation)
        self._logger.info(
            "reply ready visual=%s actions=%d",
            reply.record.visual.kind.value if reply.record.visual else None,
            len(reply.actions),
            extra={"generation": generation},
        )
        return reply

    def fail_ai_call(self, reason: str, generation: int | None = None) -> ConversationState:
        with self._events:
            before = self.machine.generation
            state = self.machine.ai_call_failed(generation)
            if generation is None or generation == before:
                self.last_error = reason
                self._logger.error("AI call failed: %s", reason, extra={"generation": before})
        return state

    def fail_capture(self, reason: str) -> ConversationState:
        with self._events:
            state = self.machine.capture_failed()
            self.last_error = reason
        self._logger.error("speech capture failed: %s", reason)
        return state

    def finish_playback(self, generation: int | None = None) -> ConversationState:
        with self._events:
            state = self.machine.playback_finished(generation)
            if state is ConversationState.IDLE:
                self._cancel_playback_timeout()
        return state

    def reset(self, generation: int | None = None) -> ConversationState:
        """Return to IDLE from any state; in-flight results become stale."""
        with self._events:
            if generation is None or generation == self.machine.generation:
                self._cancel_playback_timeout()
                self.last_error = None
            return self.machine.reset(generation)

    # ------------------------------------------------------------------ #
    # Full turn
    # ------------------------------------------------------------------ #
    async def ask(self, client: ChatClient, text: str) -> InterpretedReply | None:
        """Run one turn against ``client``; returns ``None`` when the call failed or went stale."""
        with self._events:
            if self.machine.state is ConversationState.IDLE:
                self.begin_listening()
            history = self.log.history(self.settings.chat_history_max_messages)
            generation = self.submit_transcript(text)
        messages = build_chat_messages(
            system=self.settings.chat_system_prompt,
            history=history,
            prompt=sanitize_prompt(text),
        )
        try:
            result = await client.chat(messages)
        except AiCallFailed as exc:
            self.fail_ai_call(exc.message, generation)
            return None
        except Exception as exc:
            self._logger.exception("AI client raised", extra={"generation": generation})
            self.fail_ai_call(f"AI client error: {exc}", generation)
            return None
        return self.deliver_reply(str(result.get("text") or ""), generation)

    def snapshot(self) -> dict[str, Any]:
        with self._events:
            return {
                "state": self.machine.state.value,
                "generation": self.machine.generation,
                "turn": self.interpreter.turn,
                "messages": len(self.log),
                "actions": self.registry.counts(),
                "last_error": self.last_error,
            }

    # ------------------------------------------------------------------ #
    # Playback timeout
    # ------------------------------------------------------------------ #
    def _arm_playback_timeout(self, generation: int) -> None:
        delay = self.settings.playback_timeout_sec
        if delay is None:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # no loop: the playback collaborator has to report completion itself
            return
        self._cancel_playback_timeout()
        self._timeout_task = loop.create_task(self._expire_playback(generation, float(delay)))

    async def _expire_playback(self, generation: int, delay: float) -> None:
        await asyncio.sleep(delay)
        with self._events:
            if self.machine.generation != generation or self.machine.state not in _PLAYBACK_STATES:
                return
            self._timeout_task = None
            self._logger.warning("playback timed out after %.1fs", delay, extra={"generation": generation})
            self.machine.reset(generation)

    def _cancel_playback_timeout(self) -> None:
        task = self._timeout_task
        self._timeout_task = None
        if task is not None and not task.done():
            task.cancel()
