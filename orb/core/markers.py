"""Locate visual markers embedded in assistant replies.

A marker is ``[CHART:<subtype>:{...}]``, ``[GRAPH:{...}]``, ``[MINDMAP:{...}]``
or ``[TABLE:{...}]``. Payloads may nest braces arbitrarily, so marker bounds
are found with a depth-tracking scan instead of a regular expression. The scan
only finds boundaries; decoding the payload is left to :mod:`orb.core.visuals`.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterator

from orb.core.visuals import VisualKind

MARKER_KINDS: dict[str, VisualKind] = {
    "CHART": VisualKind.CHART,
    "GRAPH": VisualKind.GRAPH,
    "MINDMAP": VisualKind.MIND_MAP,
    "TABLE": VisualKind.TABLE,
}

_MAX_DEPTH = 64

_TAG_RE = re.compile(r"\[(CHART|GRAPH|MINDMAP|TABLE):")
_SUBTYPE_RE = re.compile(r"([^\s:\[\]{}]+):")
_SPACES_RE = re.compile(r"[ \t]{2,}")
_BLANK_LINES_RE = re.compile(r"\n{3,}")


@dataclass(frozen=True, slots=True)
class VisualMarker:
    """Boundaries of one marker inside a reply."""

    tag: str
    kind: VisualKind
    subtype: str | None
    payload: str
    start: int
    end: int


def _scan_balanced(text: str, start: int) -> int | None:
    """Return the index just past the brace closing the one at ``start``."""
    depth = 0
    in_string = False
    escaped = False
    for index in range(start, len(text)):
        char = text[index]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
        elif char == "{":
            depth += 1
            if depth > _MAX_DEPTH:
                return None
        elif char == "}":
            depth -= 1
            if depth == 0:
                return index + 1
    return None


def _skip_spaces(text: str, index: int) -> int:
    while index < len(text) and text[index] in " \t\r\n":
        index += 1
    return index


def _match_at(text: str, match: re.Match[str]) -> VisualMarker | None:
    tag = match.group(1)
    cursor = match.end()
    subtype = None
    if tag == "CHART":
        sub = _SUBTYPE_RE.match(text, cursor)
        if sub is None:
            return None
        subtype = sub.group(1)
        cursor = sub.end()
    cursor = _skip_spaces(text, cursor)
    if cursor >= len(text) or text[cursor] != "{":
        return None
    payload_end = _scan_balanced(text, cursor)
    if payload_end is None:
        return None
    close = _skip_spaces(text, payload_end)
    if close >= len(text) or text[close] != "]":
        return None
    return VisualMarker(
        tag=tag,
        kind=MARKER_KINDS[tag],
        subtype=subtype,
        payload=text[cursor:payload_end],
        start=match.start(),
        end=close + 1,
    )


def find_visual_markers(text: str) -> Iterator[VisualMarker]:
    """Yield every well-delimited marker, left to right, without overlaps."""
    if not text:
        return
    position = 0
    while True:
        match = _TAG_RE.search(text, position)
        if match is None:
            return
        marker = _match_at(text, match)
        if marker is None:
            position = match.start() + 1
            continue
        yield marker
        position = marker.end


def find_visual_marker(text: str) -> VisualMarker | None:
    """Return the first marker of the reply, or ``None`` when there is no visual."""
    return next(find_visual_markers(text), None)


def strip_visual_markers(text: str) -> str:
    """Remove every marker so the reply can be displayed or spoken as plain text."""
    pieces: list[str] = []
    position = 0
    for marker in find_visual_markers(text):
        pieces.append(text[position:marker.start])
        position = marker.end
    pieces.append(text[position:])
    return tidy_text("".join(pieces))


def tidy_text(text: str) -> str:
    cleaned = _SPACES_RE.sub(" ", text)
    cleaned = _BLANK_LINES_RE.sub("\n\n", cleaned)
    return cleaned.strip()
