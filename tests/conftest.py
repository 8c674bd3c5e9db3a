from __future__ import annotations

import threading

import pytest

from chatrelay.config import ServerRuntimeConfig
from chatrelay.service import ChatRelayService
from helpers import LineClient


@pytest.fixture
def relay():
    svc = ChatRelayService(
        ServerRuntimeConfig(host="127.0.0.1", port=0, close_flush_timeout_s=1.0)
    )
    svc.start()
    thread = threading.Thread(target=svc.serve_forever, daemon=True)
    thread.start()
    yield svc
    svc.stop()
    thread.join(timeout=5)


@pytest.fixture
def connect(relay):
    clients: list[LineClient] = []

    def _connect() -> LineClient:
        c = LineClient(relay.address)
        clients.append(c)
        return c

    yield _connect

    for c in clients:
        c.close()
