"""Turn raw model replies into log records, visuals and action proposals."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable

from orb.core.actions import ActionDraft, ActionPlan, ActionPlanRegistry, detect_actions, strip_action_markers
from orb.core.errors import MalformedVisualPayload
from orb.core.markers import find_visual_marker, strip_visual_markers, tidy_text
from orb.core.message_log import MessageLog, ReplyRecord, Role, now_ms
from orb.core.visuals import VisualRecord, extract_marker

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class InterpretedReply:
    record: ReplyRecord
    actions: tuple[ActionPlan, ...]
    display_text: str
    position: int

    @property
    def has_visual(self) -> bool:
        return self.record.visual is not None

    def to_dict(self) -> dict[str, Any]:
        return {
            "position": self.position,
            "record": self.record.to_dict(),
            "display_text": self.display_text,
            "actions": [plan.to_payload() for plan in self.actions],
        }


def read_visual(text: str) -> VisualRecord | None:
    """Visual of the first marker in ``text``; malformed payloads yield ``None``."""
    marker = find_visual_marker(text)
    if marker is None:
        return None
    try:
        return extract_marker(marker)
    except MalformedVisualPayload as exc:
        logger.warning("visual marker %s dropped: %s", marker.tag, exc.reason)
        return None


def display_text(text: str) -> str:
    """Reply text without visual or action markers."""
    return tidy_text(strip_action_markers(strip_visual_markers(text)))


class ResponseInterpreter:
    """Records turns in the log and registers the actions they propose.

    ``lock`` serialises log and registry updates so one reply is never
    interleaved with another; pass a shared lock when other components
    mutate the same log or registry.
    """

    def __init__(
        self,
        log: MessageLog,
        registry: ActionPlanRegistry,
        *,
        lock: threading.Lock | None = None,
        clock: Callable[[], int] = now_ms,
        confirmed_retention_turns: int | None = None,
    ) -> None:
        self.log = log
        self.registry = registry
        self._lock = lock or threading.Lock()
        self._clock = clock
        self._confirmed_retention = confirmed_retention_turns
        self._turn = 0

    @property
    def turn(self) -> int:
        return self._turn

    def _timestamp(self) -> int:
        last = self.log.last_timestamp()
        stamp = self._clock()
        return stamp if last is None or stamp >= last else last

    def _append(self, role: Role, text: str, visual: VisualRecord | None) -> tuple[ReplyRecord, int]:
        record = ReplyRecord(role=role, text=text, timestamp=self._timestamp(), visual=visual)
        return record, self.log.append(record)

    def record_user(self, text: str) -> ReplyRecord:
        """Log a user turn; unconfirmed actions of earlier turns expire.

        Confirmed actions stay until discarded, or until they are older than
        ``confirmed_retention_turns`` turns when that is set.
        """
        with self._lock:
            self._turn += 1
            self.registry.discard_unconfirmed(before_turn=self._turn)
            if self._confirmed_retention is not None:
                self.registry.discard_confirmed(before_turn=self._turn - self._confirmed_retention)
            record, _ = self._append("user", text, None)
        return record

    def interpret(self, text: str) -> InterpretedReply:
        """Log an assistant reply with its visual and register its actions."""
        text = text or ""
        visual = read_visual(text)
        drafts: list[ActionDraft] = detect_actions(text)
        with self._lock:
            record, position = self._append("assistant", text, visual)
            plans = tuple(self.registry.propose_draft(draft, turn=self._turn) for draft in drafts)
        if visual is not None:
            logger.info("reply carries a %s visual", visual.kind.value)
        return InterpretedReply(record=record, actions=plans, display_text=display_text(text), position=position)
