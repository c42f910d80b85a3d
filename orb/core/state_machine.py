"""Finite-state controller of the assistant lifecycle.

IDLE -> LISTENING -> THINKING -> SPEAKING | VISUALIZING -> IDLE, with ERROR
reachable from LISTENING and THINKING and ``reset`` accepted everywhere.

Every request cycle has a generation number. It increases when THINKING is
entered and on every reset. Events answering a request may carry the
generation they belong to; when it differs from the current one the event is
stale and is dropped without touching the state.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Callable

from orb.core.errors import IllegalTransition

logger = logging.getLogger(__name__)


class ConversationState(str, Enum):
    IDLE = "idle"
    LISTENING = "listening"
    THINKING = "thinking"
    SPEAKING = "speaking"
    VISUALIZING = "visualizing"
    ERROR = "error"


class ConversationEvent(str, Enum):
    INPUT_CAPTURE_STARTED = "input-capture-started"
    TRANSCRIPT_FINALIZED = "transcript-finalized"
    CAPTURE_FAILED = "capture-failed"
    REPLY_READY = "reply-ready"
    AI_CALL_FAILED = "ai-call-failed"
    PLAYBACK_FINISHED = "playback-finished"
    RESET = "reset"


_S = ConversationState
_E = ConversationEvent

# reply-ready is resolved separately: it branches on the presence of a visual.
TRANSITIONS: dict[tuple[ConversationState, ConversationEvent], ConversationState] = {
    (_S.IDLE, _E.INPUT_CAPTURE_STARTED): _S.LISTENING,
    (_S.LISTENING, _E.TRANSCRIPT_FINALIZED): _S.THINKING,
    (_S.LISTENING, _E.CAPTURE_FAILED): _S.ERROR,
    (_S.THINKING, _E.AI_CALL_FAILED): _S.ERROR,
    (_S.SPEAKING, _E.PLAYBACK_FINISHED): _S.IDLE,
    (_S.VISUALIZING, _E.PLAYBACK_FINISHED): _S.IDLE,
}


@dataclass(frozen=True, slots=True)
class Transition:
    source: ConversationState
    event: ConversationEvent
    target: ConversationState
    generation: int


TransitionObserver = Callable[[Transition], None]


class ConversationStateMachine:
    """Holds exactly one state and applies events one at a time."""

    def __init__(self) -> None:
        self._state = ConversationState.IDLE
        self._generation = 0
        self._lock = threading.RLock()
        self._observers: list[TransitionObserver] = []

    @property
    def state(self) -> ConversationState:
        with self._lock:
            return self._state

    @property
    def generation(self) -> int:
        with self._lock:
            return self._generation

    def subscribe(self, observer: TransitionObserver) -> Callable[[], None]:
        """Register ``observer`` for applied transitions; returns an unsubscribe callable."""
        with self._lock:
            self._observers.append(observer)

        def _unsubscribe() -> None:
            with self._lock:
                if observer in self._observers:
                    self._observers.remove(observer)

        return _unsubscribe

    def can_apply(self, event: ConversationEvent) -> bool:
        event = ConversationEvent(event)
        with self._lock:
            if event is ConversationEvent.RESET:
                return True
            if event is ConversationEvent.REPLY_READY:
                return self._state is ConversationState.THINKING
            return (self._state, event) in TRANSITIONS

    def apply(
        self,
        event: ConversationEvent | str,
        *,
        has_visual: bool = False,
        generation: int | None = None,
    ) -> ConversationState:
        """Apply ``event`` and return the resulting state.

        Raises :class:`IllegalTransition` when the event is not allowed in the
        current state; the state is left unchanged.
        """
        event = ConversationEvent(event)
        with self._lock:
            if generation is not None and generation != self._generation:
                logger.info(
                    "stale %s dropped (generation %s, current %s)",
                    event.value,
                    generation,
                    self._generation,
                    extra={"generation": self._generation},
                )
                return self._state
            source = self._state
            if event is ConversationEvent.RESET:
                target = ConversationState.IDLE
                self._generation += 1
            elif event is ConversationEvent.REPLY_READY:
                if source is not ConversationState.THINKING:
                    raise IllegalTransition(source, event)
                target = ConversationState.VISUALIZING if has_visual else ConversationState.SPEAKING
            else:
                target = TRANSITIONS.get((source, event))
                if target is None:
                    raise IllegalTransition(source, event)
                if target is ConversationState.THINKING:
                    self._generation += 1
            self._state = target
            transition = Transition(source, event, target, self._generation)
            logger.debug(
                "%s --%s--> %s",
                source.value,
                event.value,
                target.value,
                extra={"generation": self._generation},
            )
            for observer in list(self._observers):
                try:
                    observer(transition)
                except Exception:
                    logger.exception("transition observer failed")
            return target

    # ------------------------------------------------------------------ #
    # Event shortcuts
    # ------------------------------------------------------------------ #
    def start_listening(self) -> ConversationState:
        return self.apply(ConversationEvent.INPUT_CAPTURE_STARTED)

    def finalize_transcript(self) -> int:
        """Enter THINKING and return the generation of the new request."""
        with self._lock:
            self.apply(ConversationEvent.TRANSCRIPT_FINALIZED)
            return self._generation

    def capture_failed(self) -> ConversationState:
        return self.apply(ConversationEvent.CAPTURE_FAILED)

    def reply_ready(self, has_visual: bool, generation: int | None = None) -> ConversationState:
        return self.apply(ConversationEvent.REPLY_READY, has_visual=has_visual, generation=generation)

    def ai_call_failed(self, generation: int | None = None) -> ConversationState:
        return self.apply(ConversationEvent.AI_CALL_FAILED, generation=generation)

    def playback_finished(self, generation: int | None = None) -> ConversationState:
        return self.apply(ConversationEvent.PLAYBACK_FINISHED, generation=generation)

    def reset(self, generation: int | None = None) -> ConversationState:
        return self.apply(ConversationEvent.RESET, generation=generation)
