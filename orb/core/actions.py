"""Action markers and the registry of proposed actions.

Grammar of an action marker::

    [ACTION:<verb>]
    [ACTION:<verb>:<value>]

``<verb>`` is a word (letters, digits, ``_`` or ``-``, not starting with a
digit) and ``<value>`` runs up to the closing bracket on the same line.
Verbs map to a kind through ``_VERBS``; unknown verbs, and ``open_url``
without an http(s) address, become ``unknown`` plans that are kept for
display but never confirmed automatically.
"""

from __future__ import annotations

import logging
import re
import threading
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Callable, Iterator
from uuid import uuid4

from orb.core.errors import AlreadyConfirmed, DuplicateId, NotFound

logger = logging.getLogger(__name__)


class ActionKind(str, Enum):
    OPEN_URL = "open_url"
    SEARCH = "search"
    INFO = "info"
    UNKNOWN = "unknown"


_VERBS: dict[str, ActionKind] = {
    "open_url": ActionKind.OPEN_URL,
    "open": ActionKind.OPEN_URL,
    "browse": ActionKind.OPEN_URL,
    "visit": ActionKind.OPEN_URL,
    "navigate": ActionKind.OPEN_URL,
    "search": ActionKind.SEARCH,
    "lookup": ActionKind.SEARCH,
    "find": ActionKind.SEARCH,
    "google": ActionKind.SEARCH,
    "info": ActionKind.INFO,
    "note": ActionKind.INFO,
    "tell": ActionKind.INFO,
    "remember": ActionKind.INFO,
}

_ACTION_RE = re.compile(r"\[ACTION:([A-Za-z_][A-Za-z0-9_-]*)(?::([^\]\n]*))?\]", re.IGNORECASE)
_URL_RE = re.compile(r"^https?://\S+$", re.IGNORECASE)


@dataclass(frozen=True, slots=True)
class ActionDraft:
    """Action found in a reply, not yet registered."""

    kind: ActionKind
    description: str
    value: str | None = None


@dataclass(frozen=True, slots=True)
class ActionPlan:
    """Proposed action awaiting an explicit confirmation."""

    id: str
    kind: ActionKind
    description: str
    value: str | None = None
    confirmed: bool = False
    turn: int = 0

    def to_payload(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "kind": self.kind.value,
            "description": self.description,
            "value": self.value,
            "confirmed": self.confirmed,
            "turn": self.turn,
        }


def _draft(verb: str, value: str | None) -> ActionDraft:
    kind = _VERBS.get(verb.lower(), ActionKind.UNKNOWN)
    if kind is ActionKind.OPEN_URL:
        if value and _URL_RE.match(value):
            return ActionDraft(kind, f"Open {value}", value)
        kind = ActionKind.UNKNOWN
    elif kind is ActionKind.SEARCH and value:
        return ActionDraft(kind, f'Search for "{value}"', value)
    elif kind is ActionKind.INFO and value:
        return ActionDraft(kind, value, value)
    return ActionDraft(ActionKind.UNKNOWN, f"Unrecognised action '{verb}'", value)


def detect_actions(text: str) -> list[ActionDraft]:
    """Return the action markers of a reply, left to right."""
    drafts: list[ActionDraft] = []
    for match in _ACTION_RE.finditer(text or ""):
        value = (match.group(2) or "").strip() or None
        drafts.append(_draft(match.group(1), value))
    return drafts


def strip_action_markers(text: str) -> str:
    return _ACTION_RE.sub("", text or "")


def _new_plan_id() -> str:
    return uuid4().hex[:12]


class ActionPlanRegistry:
    """Thread-safe store of action plans, iterated in proposal order."""

    def __init__(self, id_factory: Callable[[], str] | None = None) -> None:
        self._plans: dict[str, ActionPlan] = {}
        self._lock = threading.Lock()
        self._new_id = id_factory or _new_plan_id

    def propose(
        self,
        kind: ActionKind,
        description: str,
        value: str | None = None,
        *,
        turn: int = 0,
    ) -> ActionPlan:
        with self._lock:
            plan_id = self._new_id()
            if plan_id in self._plans:
                raise DuplicateId(plan_id)
            plan = ActionPlan(id=plan_id, kind=ActionKind(kind), description=description, value=value, turn=turn)
            self._plans[plan_id] = plan
        logger.info("action proposed id=%s kind=%s", plan.id, plan.kind.value)
        return plan

    def propose_draft(self, draft: ActionDraft, *, turn: int = 0) -> ActionPlan:
        return self.propose(draft.kind, draft.description, draft.value, turn=turn)

    def confirm(self, plan_id: str) -> ActionPlan:
        """Mark a plan as confirmed; a second confirmation raises ``AlreadyConfirmed``."""
        with self._lock:
            plan = self._plans.get(plan_id)
            if plan is None:
                raise NotFound(plan_id)
            if plan.confirmed:
                raise AlreadyConfirmed(plan_id)
            plan = replace(plan, confirmed=True)
            self._plans[plan_id] = plan
        logger.info("action confirmed id=%s", plan_id)
        return plan

    def discard(self, plan_id: str) -> ActionPlan:
        with self._lock:
            plan = self._plans.pop(plan_id, None)
        if plan is None:
            raise NotFound(plan_id)
        logger.info("action discarded id=%s", plan_id)
        return plan

    def discard_unconfirmed(self, before_turn: int) -> list[ActionPlan]:
        """Drop plans proposed before ``before_turn`` that were never confirmed."""
        with self._lock:
            expired = [p for p in self._plans.values() if not p.confirmed and p.turn < before_turn]
            for plan in expired:
                del self._plans[plan.id]
        if expired:
            logger.info("expired %d unconfirmed action(s)", len(expired))
        return expired

    def discard_confirmed(self, before_turn: int) -> list[ActionPlan]:
        """Drop confirmed plans proposed before ``before_turn``."""
        with self._lock:
            done = [p for p in self._plans.values() if p.confirmed and p.turn < before_turn]
            for plan in done:
                del self._plans[plan.id]
        if done:
            logger.info("retired %d confirmed action(s)", len(done))
        return done

    def get(self, plan_id: str) -> ActionPlan:
        with self._lock:
            plan = self._plans.get(plan_id)
        if plan is None:
            raise NotFound(plan_id)
        return plan

    def plans(self) -> list[ActionPlan]:
        with self._lock:
            return list(self._plans.values())

    def pending(self) -> list[ActionPlan]:
        return [plan for plan in self.plans() if not plan.confirmed]

    def counts(self) -> dict[str, int]:
        plans = self.plans()
        confirmed = sum(1 for plan in plans if plan.confirmed)
        return {"pending": len(plans) - confirmed, "confirmed": confirmed}

    def __len__(self) -> int:
        with self._lock:
            return len(self._plans)

    def __contains__(self, plan_id: object) -> bool:
        with self._lock:
            return plan_id in self._plans

    def __iter__(self) -> Iterator[ActionPlan]:
        return iter(self.plans())
