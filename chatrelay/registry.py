from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING

from .messages import users_line

if TYPE_CHECKING:
    from .session import Session


class RegistryError(Exception):
    """Base class for nickname registry failures."""

    def __init__(self, nickname: str) -> None:
        super().__init__(nickname)
        self.nickname = nickname


class NicknameTaken(RegistryError):
    """The requested nickname is held by a live session."""


class NicknameNotFound(RegistryError):
    """The nickname is not registered to the calling session."""


class Registry:
    """
    Authoritative nickname -> session mapping for a running relay.

    This class is responsible for:
    - Enforcing one live session per nickname
    - Atomic register/rename/unregister
    - Broadcast and unicast fan-out to session outbound queues
    - Point-in-time nickname snapshots for the USERS notice

    A single lock guards the mapping. It is never held while a socket is
    written: sessions only enqueue, their writer threads do the I/O.
    """

    def __init__(self) -> None:
        self.log = logging.getLogger("chatrelay.registry")
        self._lock = threading.Lock()
        self._sessions: dict[str, Session] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def contains(self, nickname: str) -> bool:
        with self._lock:
            return nickname in self._sessions

    def get(self, nickname: str) -> Session | None:
        with self._lock:
            return self._sessions.get(nickname)

    def register(self, nickname: str, session: Session) -> None:
        """Insert ``nickname`` for ``session`` or raise NicknameTaken."""
        with self._lock:
            if nickname in self._sessions:
                raise NicknameTaken(nickname)
            self._sessions[nickname] = session
            session.nickname = nickname
        self.log.debug("Registered nick=%r", nickname)

    def rename(self, old: str, new: str, session: Session) -> None:
        """Move ``session`` from ``old`` to ``new`` in one critical section."""
        with self._lock:
            if self._sessions.get(old) is not session:
                raise NicknameNotFound(old)
            if new in self._sessions:
                raise NicknameTaken(new)
            del self._sessions[old]
            self._sessions[new] = session
            session.nickname = new
        self.log.debug("Renamed nick=%r -> %r", old, new)

    def unregister(self, nickname: str, session: Session | None = None) -> bool:
        """Remove ``nickname``; a no-op if absent or held by another session."""
        with self._lock:
            current = self._sessions.get(nickname)
            if current is None:
                return False
            if session is not None and current is not session:
                return False
            del self._sessions[nickname]
        self.log.debug("Unregistered nick=%r", nickname)
        return True

    def snapshot_nicknames(self) -> list[str]:
        with self._lock:
            return list(self._sessions.keys())

    def broadcast(self, line: str) -> int:
        """Queue ``line`` for every registered session; returns recipients."""
        with self._lock:
            recipients = list(self._sessions.values())

        delivered = 0
        for session in recipients:
            if session.send(line):
                delivered += 1
        return delivered

    def unicast(self, nickname: str, line: str) -> bool:
        session = self.get(nickname)
        if session is None:
            return False
        return session.send(line)

    def broadcast_user_list(self) -> int:
        # Snapshot and enqueue under one lock so every peer sees USERS notices
        # in the same order as the membership changes that produced them.
        # Session.send only enqueues; no socket I/O happens here.
        with self._lock:
            line = users_line(self._sessions.keys())
            delivered = 0
            for session in self._sessions.values():
                if session.send(line):
                    delivered += 1
        return delivered
