from __future__ import annotations

import threading

import pytest

from orb.core.errors import TimestampRegression
from orb.core.message_log import MessageLog, ReplyRecord


def _record(text: str, timestamp: int, role: str = "user") -> ReplyRecord:
    return ReplyRecord(role=role, text=text, timestamp=timestamp)  # type: ignore[arg-type]


def test_append_preserves_call_order() -> None:
    log = MessageLog()
    assert log.append(_record("a", 1)) == 0
    assert log.append(_record("b", 1, "assistant")) == 1
    assert log.append(_record("c", 5)) == 2
    assert [r.text for r in log] == ["a", "b", "c"]
    assert log[1].role == "assistant"
    assert log.last().text == "c"


def test_decreasing_timestamp_is_rejected() -> None:
    log = MessageLog()
    log.append(_record("a", 10))
    with pytest.raises(TimestampRegression) as info:
        log.append(_record("b", 9))
    assert info.value.previous == 10
    assert len(log) == 1


def test_records_are_immutable() -> None:
    record = _record("a", 1)
    with pytest.raises(AttributeError):
        record.text = "changed"  # type: ignore[misc]


def test_entries_view_is_restartable() -> None:
    log = MessageLog()
    log.append(_record("a", 1))
    view = log.entries()
    assert [r.text for r in view] == ["a"]
    log.append(_record("b", 2))
    assert [r.text for r in view] == ["a", "b"]
    assert [r.text for r in view] == ["a", "b"]
    assert len(view) == 2


def test_iteration_snapshot_ignores_later_appends() -> None:
    log = MessageLog()
    log.append(_record("a", 1))
    iterator = iter(log.entries())
    first = next(iterator)
    log.append(_record("b", 2))
    assert first.text == "a"
    assert list(iterator) == []


def test_history_limit() -> None:
    log = MessageLog()
    for index in range(5):
        log.append(_record(str(index), index, "user" if index % 2 == 0 else "assistant"))
    assert log.history(2) == [("assistant", "3"), ("user", "4")]
    assert log.history(0) == []
    assert len(log.history()) == 5


def test_to_dicts_exports_in_order() -> None:
    log = MessageLog()
    log.append(_record("hi", 1))
    assert log.to_dicts() == [{"role": "user", "text": "hi", "timestamp": 1, "visual": None}]


def test_concurrent_appends_lose_nothing() -> None:
    log = MessageLog()

    def worker(prefix: str) -> None:
        for index in range(100):
            log.append(_record(f"{prefix}{index}", 0))

    threads = [threading.Thread(target=worker, args=(p,)) for p in "abcd"]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()
    assert len(log) == 400
    for prefix in "abcd":
        mine = [r.text for r in log if r.text.startswith(prefix)]
        assert mine == [f"{prefix}{i}" for i in range(100)]
