"""
In-memory chat history keyed by session id.

Bounded two ways: at most max_sessions entries (least recently accessed is
evicted first) and an inactivity timeout (expire-after-access). Each session
keeps only its most recent max_messages_per_session messages.

Every removal, whatever the cause, decrements the active-session gauge exactly
once and is reported to registered eviction listeners.
"""
from __future__ import annotations

import logging
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Iterable, Protocol

from ..common.config import ChatMemoryConfig

logger = logging.getLogger(__name__)


class RemovalCause(str, Enum):
    SIZE = "SIZE"
    EXPIRED = "EXPIRED"
    EXPLICIT = "EXPLICIT"


class EvictionListener(Protocol):
    def on_evict(self, key: str, cause: RemovalCause) -> None: ...


@dataclass
class _Entry:
    messages: list[Any]
    last_access: float


class ChatMemory:
    def __init__(
        self,
        config: ChatMemoryConfig | None = None,
        listeners: Iterable[EvictionListener] = (),
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config or ChatMemoryConfig()
        self._clock = clock
        self._lock = threading.RLock()
        # Insertion order doubles as access order: move_to_end on every touch.
        self._entries: OrderedDict[str, _Entry] = OrderedDict()
        self._active_sessions = 0
        self._listeners: list[EvictionListener] = list(listeners)

    def add_listener(self, listener: EvictionListener) -> None:
        with self._lock:
            self._listeners.append(listener)

    @property
    def max_sessions(self) -> int:
        return self.config.max_sessions

    @property
    def active_session_count(self) -> int:
        with self._lock:
            return self._active_sessions

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, session_id: str) -> bool:
        with self._lock:
            entry = self._entries.get(session_id)
            return entry is not None and not self._is_expired(entry, self._clock())

    def get(self, session_id: str, last_n: int) -> list[Any]:
        """
        Return up to last_n most recent messages for the session, oldest first.
        An absent or expired session yields an empty list. A hit refreshes the expiry clock.
        """
        removed: list[tuple[str, RemovalCause]] = []
        with self._lock:
            now = self._clock()
            entry = self._entries.get(session_id)
            if entry is None:
                return []
            if self._is_expired(entry, now):
                self._remove_locked(session_id, RemovalCause.EXPIRED, removed)
                result: list[Any] = []
            else:
                entry.last_access = now
                self._entries.move_to_end(session_id)
                result = entry.messages[-last_n:] if last_n > 0 else []
                result = list(result)
        self._notify(removed)
        return result

    def append(self, session_id: str, messages: Iterable[Any]) -> None:
        """
        Append messages to the session, creating it on first use, then trim to the
        configured maximum (oldest dropped first).
        """
        new_messages = list(messages)
        removed: list[tuple[str, RemovalCause]] = []
        with self._lock:
            now = self._clock()
            entry = self._entries.get(session_id)
            if entry is not None and self._is_expired(entry, now):
                self._remove_locked(session_id, RemovalCause.EXPIRED, removed)
                entry = None
            if entry is None:
                self._make_room_locked(now, removed)
                entry = _Entry(messages=[], last_access=now)
                self._entries[session_id] = entry
                self._active_sessions += 1
                logger.debug(f"Session created: {session_id} (active: {self._active_sessions})")
            entry.messages.extend(new_messages)
            cap = self.config.max_messages_per_session
            if len(entry.messages) > cap:
                del entry.messages[: len(entry.messages) - cap]
            entry.last_access = now
            self._entries.move_to_end(session_id)
        self._notify(removed)

    def clear(self, session_id: str) -> None:
        removed: list[tuple[str, RemovalCause]] = []
        with self._lock:
            if session_id in self._entries:
                self._remove_locked(session_id, RemovalCause.EXPLICIT, removed)
        self._notify(removed)

    def clear_all(self) -> None:
        removed: list[tuple[str, RemovalCause]] = []
        with self._lock:
            for session_id in list(self._entries):
                self._remove_locked(session_id, RemovalCause.EXPLICIT, removed)
            self._active_sessions = 0
        self._notify(removed)
        logger.info(f"All sessions cleared ({len(removed)} removed)")

    def cleanup(self) -> int:
        """Remove every expired session now. Returns the number removed."""
        removed: list[tuple[str, RemovalCause]] = []
        with self._lock:
            self._purge_expired_locked(self._clock(), removed)
        self._notify(removed)
        return len(removed)

    def _is_expired(self, entry: _Entry, now: float) -> bool:
        return now - entry.last_access > self.config.session_timeout_secs

    def _make_room_locked(self, now: float, removed: list[tuple[str, RemovalCause]]) -> None:
        if len(self._entries) < self.config.max_sessions:
            return
        self._purge_expired_locked(now, removed)
        if len(self._entries) >= self.config.max_sessions:
            logger.warning(
                f"Max sessions reached ({self.config.max_sessions}), evicting least recently used"
            )
        while self._entries and len(self._entries) >= self.config.max_sessions:
            oldest = next(iter(self._entries))
            self._remove_locked(oldest, RemovalCause.SIZE, removed)

    def _purge_expired_locked(self, now: float, removed: list[tuple[str, RemovalCause]]) -> None:
        # Access order means expired entries cluster at the front.
        for session_id in list(self._entries):
            if not self._is_expired(self._entries[session_id], now):
                break
            self._remove_locked(session_id, RemovalCause.EXPIRED, removed)

    def _remove_locked(
        self,
        session_id: str,
        cause: RemovalCause,
        removed: list[tuple[str, RemovalCause]],
    ) -> None:
        if self._entries.pop(session_id, None) is None:
            return
        self._active_sessions = max(0, self._active_sessions - 1)
        removed.append((session_id, cause))

    def _notify(self, removed: list[tuple[str, RemovalCause]]) -> None:
        if not removed:
            return
        listeners = list(self._listeners)
        for session_id, cause in removed:
            logger.info(f"Session evicted: {session_id} (cause: {cause.value})")
            for listener in listeners:
                try:
                    listener.on_evict(session_id, cause)
                except Exception:
                    logger.exception("Eviction listener failed for session %s", session_id)
