"""Minimal console client for a chatrelay server."""

from __future__ import annotations

import logging
import socket
import sys
import threading
from typing import TextIO

from .codec import decode_line, encode_line
from .constants import CMD_NICK, N_NICK_USAGE
from .messages import KIND_DM, KIND_SYS, KIND_USERS, classify_line
from .router import Malformed, NickChange, parse_line


def render_line(line: str) -> str:
    """Human-readable form of a server line."""
    msg = classify_line(line)
    if msg.kind == KIND_USERS:
        return "[Online] " + (", ".join(msg.users) or "(nobody)")
    if msg.kind == KIND_DM:
        return "[Private] " + msg.text
    if msg.kind == KIND_SYS:
        return "[Server] " + msg.text
    return msg.text


def check_outgoing(text: str) -> str | None:
    """Return a usage message if ``text`` is a malformed command, else None."""
    cmd = parse_line(text)
    if isinstance(cmd, Malformed):
        return cmd.reply
    if isinstance(cmd, NickChange) and not cmd.nickname:
        return N_NICK_USAGE
    return None


class ChatClient:
    def __init__(
        self,
        host: str,
        port: int,
        *,
        out: TextIO | None = None,
    ) -> None:
        self.host = host
        self.port = int(port)
        self.out = out if out is not None else sys.stdout
        self.log = logging.getLogger("chatrelay.client")

        self.online: list[str] = []
        self._sock: socket.socket | None = None
        self._reader_thread: threading.Thread | None = None
        self._out_lock = threading.Lock()
        self.disconnected = threading.Event()

    def connect(self) -> None:
        self._sock = socket.create_connection((self.host, self.port))
        self._reader_thread = threading.Thread(
            target=self._read_loop, name="chatrelay-client-reader", daemon=True
        )
        self._reader_thread.start()

    def _print(self, text: str) -> None:
        with self._out_lock:
            self.out.write(text + "\n")
            self.out.flush()

    def _read_loop(self) -> None:
        assert self._sock is not None
        try:
            with self._sock.makefile("rb") as reader:
                for raw in reader:
                    line = decode_line(raw)
                    msg = classify_line(line)
                    if msg.kind == KIND_USERS:
                        self.online = msg.users
                    self._print(render_line(line))
        except (OSError, ValueError) as e:
            self.log.debug("Reader stopped: %s", e)
        finally:
            self.disconnected.set()
            self._print("[Disconnected]")

    def send(self, text: str) -> bool:
        """Send one line; blank or malformed commands are rejected locally."""
        if not text or not text.strip():
            return False
        problem = check_outgoing(text)
        if problem is not None:
            self._print("[Error] " + problem)
            return False
        if self._sock is None or self.disconnected.is_set():
            return False
        try:
            self._sock.sendall(encode_line(text))
        except OSError as e:
            self._print(f"[Error] send failed: {e}")
            return False
        return True

    def close(self) -> None:
        if self._sock is None:
            return
        try:
            self._sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass
        self._sock.close()

    def run_interactive(self, nick: str | None = None, stdin: TextIO | None = None) -> None:
        src = stdin if stdin is not None else sys.stdin
        self.connect()
        try:
            if nick:
                self.send(CMD_NICK + nick)
            for raw in src:
                if self.disconnected.is_set():
                    break
                self.send(raw.rstrip("\r\n"))
        except KeyboardInterrupt:
            pass
        finally:
            self.close()
