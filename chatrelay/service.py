from __future__ import annotations

import logging
import signal
import socket
import threading
import time

from .config import ServerRuntimeConfig
from .registry import Registry
from .router import MessageRouter
from .session import Session
from .stats import StatsManager


class ChatRelayService:
    def __init__(self, config: ServerRuntimeConfig) -> None:
        self.config = config
        self.log = logging.getLogger("chatrelay.service")

        self._shutdown = threading.Event()
        self._listener: socket.socket | None = None
        self._address: tuple[str, int] | None = None

        # Every session ever accepted and not yet finished, including those
        # still handshaking; used only to close them on stop().
        self._sessions_lock = threading.Lock()
        self._sessions: set[Session] = set()

        self.registry = Registry()
        self.stats_manager = StatsManager(self)
        self.router = MessageRouter(self)

    @property
    def address(self) -> tuple[str, int] | None:
        """Bound (host, port), useful when the configured port is 0."""
        return self._address

    def connection_count(self) -> int:
        """Open connections, including those still handshaking."""
        with self._sessions_lock:
            return len(self._sessions)

    def start(self) -> None:
        """Bind the listening socket. Bind errors propagate to the caller."""
        if self._listener is not None:
            return
        self.stats_manager.set_start_time()
        self._listener = socket.create_server((self.config.host, int(self.config.port)))
        self._address = tuple(self._listener.getsockname()[:2])
        self.log.info("Listening on %s:%s", *self.address)
        if self.config.nick_max_chars:
            self.log.info("Policy nick_max_chars=%s", self.config.nick_max_chars)

    def serve_forever(self) -> None:
        if self._listener is None:
            self.start()
        listener = self._listener

        while not self._shutdown.is_set():
            try:
                conn, addr = listener.accept()
            except OSError as e:
                if self._shutdown.is_set():
                    break
                self.stats_manager.inc("accept_errors")
                self.log.warning("Accept failed: %s", e)
                # Usually fd exhaustion; give sessions a moment to close.
                time.sleep(0.1)
                continue

            self.stats_manager.inc("connections_accepted")
            self._spawn_session(conn, addr)

    def _spawn_session(self, conn: socket.socket, addr) -> None:
        session = Session(self, conn, addr)
        with self._sessions_lock:
            # stop() snapshots under this lock after setting _shutdown.
            if self._shutdown.is_set():
                session.close(flush=False)
                return
            self._sessions.add(session)

        thread = threading.Thread(
            target=self._run_session,
            args=(session,),
            name=f"chatrelay-session-{session.id}",
            daemon=True,
        )
        thread.start()

    def _run_session(self, session: Session) -> None:
        try:
            session.run()
        finally:
            with self._sessions_lock:
                self._sessions.discard(session)

    def run_forever(self) -> None:
        self.start()

        signal.signal(signal.SIGINT, lambda *_: self.stop())
        signal.signal(signal.SIGTERM, lambda *_: self.stop())

        self.serve_forever()

    def stop(self) -> None:
        if self._shutdown.is_set():
            return
        self._shutdown.set()

        if self._listener is not None:
            # close() alone does not wake a thread blocked in accept() on Linux.
            try:
                self._listener.shutdown(socket.SHUT_RDWR)
            except OSError:
                pass
            try:
                self._listener.close()
            except OSError:
                pass

        with self._sessions_lock:
            sessions = list(self._sessions)

        # A stalled peer must not hold up the others; drop queued lines.
        for session in sessions:
            session.close(flush=False)

        self.log.info("Stopped\n%s", self.stats_manager.format_stats())
