import socket
import threading
import time

import pytest

from chatrelay.config import ServerRuntimeConfig
from chatrelay.service import ChatRelayService
from helpers import LineClient

WELCOME = "SYS Welcome! Set nickname with /nick <name>"


def _join(connect, nick: str, *, command: bool = False):
    c = connect()
    assert c.recv() == WELCOME
    c.send(f"/nick {nick}" if command else nick)
    return c


def _wait_for(predicate, timeout: float = 5.0) -> None:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return
        time.sleep(0.01)
    raise AssertionError("condition not reached")


def test_end_to_end_scenario(relay, connect) -> None:
    x = _join(connect, "alice")
    assert x.recv_n(2) == ["SYS alice has joined the chat.", "USERS alice"]

    y = _join(connect, "bob", command=True)
    expected = ["SYS bob has joined the chat.", "USERS alice,bob"]
    assert x.recv_n(2) == expected
    assert y.recv_n(2) == expected

    x.send("hi")
    assert x.recv() == "alice: hi"
    assert y.recv() == "alice: hi"

    y.send("/w alice secret")
    assert x.recv() == "DM bob: secret"
    assert y.recv() == "[Private to alice] secret"


def test_duplicate_nickname_retries_handshake(relay, connect) -> None:
    x = _join(connect, "alice")
    x.recv_n(2)

    z = _join(connect, "alice")
    assert z.recv() == "SYS Nickname already taken. Enter another:"
    z.send("   ")
    assert z.recv() == "SYS Invalid nickname. Enter another:"
    z.send("/nick carol")
    assert z.recv_n(2) == ["SYS carol has joined the chat.", "USERS alice,carol"]
    assert x.recv_n(2) == ["SYS carol has joined the chat.", "USERS alice,carol"]


def test_disconnect_broadcasts_departure(relay, connect) -> None:
    x = _join(connect, "alice")
    x.recv_n(2)
    y = _join(connect, "bob")
    y.recv_n(2)
    x.recv_n(2)

    y.close()
    assert x.recv_n(2) == ["SYS bob has left the chat.", "USERS alice"]
    _wait_for(lambda: relay.registry.snapshot_nicknames() == ["alice"])


def test_close_before_handshake_is_silent(relay, connect) -> None:
    x = _join(connect, "alice")
    x.recv_n(2)

    z = connect()
    assert z.recv() == WELCOME
    z.close()
    _wait_for(lambda: relay.connection_count() == 1)

    x.send("ping")
    # Nothing about the dropped connection arrives before alice's own message.
    assert x.recv() == "alice: ping"
    assert relay.registry.snapshot_nicknames() == ["alice"]
    assert relay.stats_manager.get("disconnects") == 0


def test_rename_over_the_wire(relay, connect) -> None:
    x = _join(connect, "alice")
    x.recv_n(2)
    y = _join(connect, "bob")
    y.recv_n(2)
    x.recv_n(2)

    y.send("/nick alice")
    assert y.recv() == "SYS Invalid or duplicate nickname."

    x.send("/nick alicia")
    lines = x.recv_n(2)
    assert lines[0] == "SYS alice changed nickname to alicia"
    assert set(lines[1][len("USERS ") :].split(",")) == {"alicia", "bob"}
    assert y.recv_n(2) == lines


def test_utf8_round_trip(relay, connect) -> None:
    x = _join(connect, "zoë")
    assert x.recv_n(2) == ["SYS zoë has joined the chat.", "USERS zoë"]
    x.send("héllo wörld ✓")
    assert x.recv() == "zoë: héllo wörld ✓"


def test_greeting_sent_after_join() -> None:
    svc = ChatRelayService(
        ServerRuntimeConfig(host="127.0.0.1", port=0, greeting="Be nice.\n\nHave fun.")
    )
    svc.start()
    t = threading.Thread(target=svc.serve_forever, daemon=True)
    t.start()
    try:
        c = LineClient(svc.address)
        assert c.recv() == WELCOME
        c.send("alice")
        assert c.recv_n(4) == [
            "SYS alice has joined the chat.",
            "USERS alice",
            "SYS Be nice.",
            "SYS Have fun.",
        ]
        c.close()
    finally:
        svc.stop()
        t.join(timeout=5)


def test_stop_closes_sessions(relay, connect) -> None:
    x = _join(connect, "alice")
    x.recv_n(2)
    pending = connect()
    assert pending.recv() == WELCOME

    relay.stop()

    assert x.at_eof()
    assert pending.at_eof()
    assert relay.registry.snapshot_nicknames() == []
    with pytest.raises(OSError):
        socket.create_connection(relay.address, timeout=1)


def test_bind_error_propagates(relay) -> None:
    host, port = relay.address
    other = ChatRelayService(ServerRuntimeConfig(host=host, port=port))
    with pytest.raises(OSError):
        other.start()


def test_stats_report(relay, connect) -> None:
    x = _join(connect, "alice")
    x.recv_n(2)
    x.send("hi")
    x.recv()

    text = relay.stats_manager.format_stats()
    assert "clients_online=1" in text
    assert "handshakes=1" in text
    assert "public=1" in text


def _flood_until_seen(sender: LineClient, reader: LineClient, nick: str) -> None:
    """Send more than any socket buffer holds, then wait for a marker line."""
    payload = "x" * 60_000
    for _ in range(200):
        sender.send(payload)
    sender.send("done")
    while reader.recv() != f"{nick}: done":
        pass


def test_stalled_peer_does_not_block_others(relay, connect) -> None:
    stalled = _join(connect, "stalled")
    alice = _join(connect, "alice")
    bob = _join(connect, "bob")
    bob.recv_n(2)

    started = time.monotonic()
    _flood_until_seen(alice, bob, "alice")
    assert time.monotonic() - started < 10.0

    # The relay still serves everyone else.
    bob.send("still here")
    assert bob.recv() == "bob: still here"
    assert relay.registry.contains("stalled")


def test_stop_does_not_wait_on_stalled_peers() -> None:
    svc = ChatRelayService(
        ServerRuntimeConfig(host="127.0.0.1", port=0, close_flush_timeout_s=5.0)
    )
    svc.start()
    t = threading.Thread(target=svc.serve_forever, daemon=True)
    t.start()
    clients: list[LineClient] = []
    try:
        for nick in ("stalled", "alice", "bob"):
            c = LineClient(svc.address)
            clients.append(c)
            assert c.recv() == WELCOME
            c.send(nick)
        stalled, alice, bob = clients
        bob.recv_n(2)
        _flood_until_seen(alice, bob, "alice")

        started = time.monotonic()
        svc.stop()
        assert time.monotonic() - started < 3.0

        assert bob.at_eof()
        assert svc.registry.snapshot_nicknames() == []
    finally:
        svc.stop()
        t.join(timeout=5)
        for c in clients:
            c.close()


def test_connection_accepted_during_stop_is_closed(relay) -> None:
    relay.stop()

    ours, theirs = socket.socketpair()
    theirs.settimeout(5)
    try:
        relay._spawn_session(ours, ("127.0.0.1", 40001))
        assert theirs.recv(1) == b""
        assert relay.connection_count() == 0
    finally:
        theirs.close()
