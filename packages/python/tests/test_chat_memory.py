"""Tests for session memory: windowed reads, trimming, capacity and expiry eviction."""
import threading

import pytest

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from datalens.common.config import ChatMemoryConfig
from datalens.memory import ChatMemory, RemovalCause


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, secs: float) -> None:
        self.now += secs


class RecordingListener:
    def __init__(self):
        self.events = []

    def on_evict(self, key, cause):
        self.events.append((key, cause))


@pytest.fixture
def clock():
    return FakeClock()


def make_memory(clock, max_messages=20, max_sessions=1000, timeout_minutes=30, listeners=()):
    config = ChatMemoryConfig(
        max_messages_per_session=max_messages,
        max_sessions=max_sessions,
        session_timeout_minutes=timeout_minutes,
    )
    return ChatMemory(config, listeners=listeners, clock=clock)


def test_get_absent_session_returns_empty_list(clock):
    memory = make_memory(clock)
    assert memory.get("nope", 10) == []
    assert memory.active_session_count == 0


def test_get_returns_last_n_in_insertion_order(clock):
    memory = make_memory(clock)
    memory.append("s1", ["m1", "m2", "m3"])
    memory.append("s1", ["m4"])
    assert memory.get("s1", 2) == ["m3", "m4"]
    assert memory.get("s1", 50) == ["m1", "m2", "m3", "m4"]
    assert memory.get("s1", 0) == []


def test_get_returns_a_copy(clock):
    memory = make_memory(clock)
    memory.append("s1", ["m1"])
    got = memory.get("s1", 10)
    got.append("mutated")
    assert memory.get("s1", 10) == ["m1"]


def test_append_trims_to_most_recent_messages(clock):
    memory = make_memory(clock, max_messages=3)
    memory.append("s1", ["m1", "m2"])
    memory.append("s1", ["m3", "m4", "m5"])
    assert memory.get("s1", 10) == ["m3", "m4", "m5"]


def test_capacity_evicts_least_recently_used(clock):
    listener = RecordingListener()
    memory = make_memory(clock, max_sessions=2, listeners=[listener])
    memory.append("a", ["x"])
    clock.advance(1)
    memory.append("b", ["x"])
    clock.advance(1)
    # Touch "a" so "b" becomes least recently used
    memory.get("a", 1)
    clock.advance(1)
    memory.append("c", ["x"])

    assert len(memory) == 2
    assert "b" not in memory
    assert "a" in memory and "c" in memory
    assert listener.events == [("b", RemovalCause.SIZE)]
    assert memory.active_session_count == 2


def test_capacity_never_exceeded_and_gauge_tracks_each_eviction(clock):
    listener = RecordingListener()
    memory = make_memory(clock, max_sessions=3, listeners=[listener])
    for i in range(10):
        memory.append(f"s{i}", ["x"])
        clock.advance(1)
        assert len(memory) <= 3
    assert memory.active_session_count == 3
    assert len(listener.events) == 7
    assert all(cause == RemovalCause.SIZE for _, cause in listener.events)


def test_expired_session_is_absent_and_decremented_once(clock):
    listener = RecordingListener()
    memory = make_memory(clock, timeout_minutes=1, listeners=[listener])
    memory.append("s1", ["m1"])
    assert memory.active_session_count == 1

    clock.advance(61)
    assert memory.get("s1", 10) == []
    assert memory.get("s1", 10) == []
    assert memory.cleanup() == 0

    assert memory.active_session_count == 0
    assert listener.events == [("s1", RemovalCause.EXPIRED)]


def test_access_refreshes_expiry(clock):
    memory = make_memory(clock, timeout_minutes=1)
    memory.append("s1", ["m1"])
    clock.advance(50)
    assert memory.get("s1", 1) == ["m1"]
    clock.advance(50)
    assert memory.get("s1", 1) == ["m1"]


def test_append_after_expiry_starts_fresh_session(clock):
    listener = RecordingListener()
    memory = make_memory(clock, timeout_minutes=1, listeners=[listener])
    memory.append("s1", ["old"])
    clock.advance(120)
    memory.append("s1", ["new"])
    assert memory.get("s1", 10) == ["new"]
    assert memory.active_session_count == 1
    assert listener.events == [("s1", RemovalCause.EXPIRED)]


def test_cleanup_removes_only_expired(clock):
    memory = make_memory(clock, timeout_minutes=1)
    memory.append("old", ["x"])
    clock.advance(45)
    memory.append("fresh", ["x"])
    clock.advance(30)
    assert memory.cleanup() == 1
    assert "old" not in memory
    assert "fresh" in memory
    assert memory.active_session_count == 1


def test_clear_and_clear_all(clock):
    listener = RecordingListener()
    memory = make_memory(clock, listeners=[listener])
    memory.append("a", ["x"])
    memory.append("b", ["x"])
    memory.append("c", ["x"])

    memory.clear("a")
    memory.clear("a")
    assert memory.active_session_count == 2
    assert listener.events == [("a", RemovalCause.EXPLICIT)]

    memory.clear_all()
    assert len(memory) == 0
    assert memory.active_session_count == 0
    assert memory.get("b", 10) == []


def test_failing_listener_does_not_break_cache(clock):
    class Boom:
        def on_evict(self, key, cause):
            raise RuntimeError("listener failed")

    memory = make_memory(clock, max_sessions=1, listeners=[Boom()])
    memory.append("a", ["x"])
    memory.append("b", ["x"])
    assert "b" in memory
    assert memory.active_session_count == 1


def test_concurrent_appends_to_same_session_are_not_lost(clock):
    memory = make_memory(clock, max_messages=10_000)
    per_thread = 200

    def worker(n):
        for i in range(per_thread):
            memory.append("shared", [f"{n}-{i}"])

    threads = [threading.Thread(target=worker, args=(n,)) for n in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    messages = memory.get("shared", 10_000)
    assert len(messages) == 8 * per_thread
    for n in range(8):
        own = [m for m in messages if m.startswith(f"{n}-")]
        assert own == [f"{n}-{i}" for i in range(per_thread)]
    assert memory.active_session_count == 1
