from __future__ import annotations

import enum
import itertools
import logging
import queue
import socket
import threading
from typing import TYPE_CHECKING

from .codec import decode_line, encode_line
from .constants import CMD_NICK, N_NICK_INVALID_RETRY, N_NICK_TAKEN, N_WELCOME
from .messages import joined_line, left_line, sys_line
from .registry import NicknameTaken
from .util import normalize_nick

if TYPE_CHECKING:
    from .service import ChatRelayService

_session_ids = itertools.count(1)


class SessionPhase(enum.Enum):
    HANDSHAKING = "handshaking"
    ACTIVE = "active"
    CLOSED = "closed"


def proposed_nickname(line: str) -> str:
    """Name offered during the handshake: ``/nick <name>`` or the bare line."""
    if line.startswith(CMD_NICK):
        return line[len(CMD_NICK) :].strip()
    return line.strip()


class Session:
    """
    One client connection.

    The session thread runs ``run()``: handshake, receive loop, cleanup.
    Outbound lines go through ``send()``, which only enqueues; a dedicated
    writer thread drains the queue to the socket so a slow peer never
    blocks the sender or the registry.
    """

    def __init__(
        self,
        server: ChatRelayService,
        sock: socket.socket,
        addr: tuple | None = None,
    ) -> None:
        self.server = server
        self.registry = server.registry
        self.stats = server.stats_manager
        self.log = logging.getLogger("chatrelay.session")

        self.id = next(_session_ids)
        self.sock = sock
        self.peer = _fmt_addr(addr)

        # Written only under the registry lock (register/rename).
        self.nickname: str | None = None
        self.phase = SessionPhase.HANDSHAKING

        self._reader = sock.makefile("rb")
        # maxsize 0 means unbounded.
        self._outbox: queue.Queue[bytes | None] = queue.Queue(
            maxsize=max(0, int(server.config.outbound_queue_max))
        )
        self._writer_dead = False
        self._close_lock = threading.Lock()
        self._closed = False
        self._writer = threading.Thread(
            target=self._write_loop,
            name=f"chatrelay-writer-{self.id}",
            daemon=True,
        )

    def __repr__(self) -> str:
        return f"<Session id={self.id} nick={self.nickname!r} phase={self.phase.value}>"

    # Outbound

    def send(self, line: str) -> bool:
        """Queue ``line`` for this peer. Never blocks, never raises."""
        if self._closed or self._writer_dead:
            return False
        try:
            self._outbox.put_nowait(encode_line(line))
        except queue.Full:
            # The peer stopped reading; drop it rather than buffer without end.
            self._writer_dead = True
            self.stats.inc("send_overflows")
            self.log.warning(
                "Outbound queue full, disconnecting session=%s nick=%r peer=%s",
                self.id,
                self.nickname,
                self.peer,
            )
            self._shutdown_socket()
            return False
        return True

    def _write_loop(self) -> None:
        while True:
            payload = self._outbox.get()
            if payload is None:
                return
            try:
                self.sock.sendall(payload)
            except OSError as e:
                self._writer_dead = True
                self.stats.inc("send_failures")
                self.log.debug("Send failed session=%s peer=%s err=%s", self.id, self.peer, e)
                # Wake the reader so the session goes through normal cleanup.
                self._shutdown_socket()
                return
            self.stats.inc("lines_out")
            self.stats.inc("bytes_out", len(payload))

    # Inbound

    def read_line(self) -> str | None:
        """Next line from the peer, or None on EOF or transport error."""
        try:
            raw = self._reader.readline()
        except (OSError, ValueError):
            return None
        if not raw:
            return None
        self.stats.inc("lines_in")
        self.stats.inc("bytes_in", len(raw))
        return decode_line(raw)

    # Lifecycle

    def run(self) -> None:
        self._writer.start()
        self.log.info("Session opened session=%s peer=%s", self.id, self.peer)
        try:
            if self._handshake():
                self._receive_loop()
        except Exception:
            self.log.exception("Session failed session=%s peer=%s", self.id, self.peer)
        finally:
            self.close()

    def _handshake(self) -> bool:
        self.send(sys_line(N_WELCOME))
        max_chars = self.server.config.nick_max_chars

        while True:
            line = self.read_line()
            if line is None:
                return False

            nick = normalize_nick(proposed_nickname(line), max_chars)
            if nick is None:
                self.stats.inc("handshake_retries")
                self.send(sys_line(N_NICK_INVALID_RETRY))
                continue

            try:
                self.registry.register(nick, self)
            except NicknameTaken:
                self.stats.inc("handshake_retries")
                self.send(sys_line(N_NICK_TAKEN))
                continue
            break

        with self._close_lock:
            if self._closed:
                # Shut down while registering; close() ran before we held a name.
                self.registry.unregister(nick, self)
                return False
            self.phase = SessionPhase.ACTIVE

        self.stats.inc("handshakes")
        self.log.info("Session active session=%s nick=%r peer=%s", self.id, nick, self.peer)
        self.registry.broadcast(joined_line(nick))
        self.registry.broadcast_user_list()

        greeting = self.server.config.greeting
        if greeting:
            for text in greeting.splitlines():
                if text.strip():
                    self.send(sys_line(text))
        return True

    def _receive_loop(self) -> None:
        router = self.server.router
        while True:
            line = self.read_line()
            if line is None:
                return
            router.route(self, line)

    def close(self, *, flush: bool = True) -> None:
        """Release the session; runs its cleanup exactly once.

        With ``flush`` the writer gets up to ``close_flush_timeout_s`` to
        deliver queued lines before the socket is shut down.
        """
        with self._close_lock:
            if self._closed:
                return
            was_active = self.phase is SessionPhase.ACTIVE
            self.phase = SessionPhase.CLOSED
            nick = self.nickname
            if was_active and nick is not None:
                removed = self.registry.unregister(nick, self)
            else:
                removed = False
            self._closed = True

        if removed:
            self.stats.inc("disconnects")
            self.registry.broadcast(left_line(nick))
            self.registry.broadcast_user_list()

        self.log.info("Session closed session=%s nick=%r peer=%s", self.id, nick, self.peer)

        try:
            self._outbox.put_nowait(None)
        except queue.Full:
            # Writer is stalled or gone; _release() below ends it.
            flush = False
        if (
            flush
            and self._writer.is_alive()
            and self._writer is not threading.current_thread()
        ):
            self._writer.join(timeout=float(self.server.config.close_flush_timeout_s))
        self._release()

    def _shutdown_socket(self) -> None:
        try:
            self.sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass

    def _release(self) -> None:
        self._shutdown_socket()
        try:
            self._reader.close()
        except OSError:
            pass
        try:
            self.sock.close()
        except OSError:
            pass


def _fmt_addr(addr: tuple | None) -> str:
    if not addr:
        return "-"
    try:
        return f"{addr[0]}:{addr[1]}"
    except (IndexError, TypeError):
        return str(addr)
