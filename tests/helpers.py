from __future__ import annotations

import socket
from types import SimpleNamespace

from chatrelay.config import ServerRuntimeConfig
from chatrelay.registry import Registry
from chatrelay.stats import StatsManager


class FakeSession:
    """Stands in for Session where only the outbound side matters."""

    def __init__(self, nickname: str | None = None, *, alive: bool = True) -> None:
        self.nickname = nickname
        self.peer = "test"
        self.alive = alive
        self.sent: list[str] = []

    def send(self, line: str) -> bool:
        if not self.alive:
            return False
        self.sent.append(line)
        return True


def make_server(**overrides) -> SimpleNamespace:
    server = SimpleNamespace(config=ServerRuntimeConfig(**overrides), registry=Registry())
    server.stats_manager = StatsManager(server)
    return server


class LineClient:
    def __init__(self, address: tuple[str, int], timeout: float = 5.0) -> None:
        self.sock = socket.create_connection(address, timeout=timeout)
        self.reader = self.sock.makefile("rb")

    def send(self, line: str) -> None:
        self.sock.sendall(line.encode("utf-8") + b"\n")

    def recv(self) -> str:
        raw = self.reader.readline()
        if not raw:
            raise EOFError("server closed the connection")
        return raw.decode("utf-8").rstrip("\r\n")

    def recv_n(self, n: int) -> list[str]:
        return [self.recv() for _ in range(n)]

    def at_eof(self) -> bool:
        try:
            return self.reader.readline() == b""
        except OSError:
            return True

    def close(self) -> None:
        try:
            self.reader.close()
        finally:
            self.sock.close()
