"""Statistics tracking and reporting for the chat relay."""

from __future__ import annotations

import threading
import time
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .service import ChatRelayService


class StatsManager:
    """
    Lifetime counters for a running relay.

    Tracks:
    - Connections accepted and accept errors
    - Handshakes, handshake retries and disconnects
    - Public and private messages, renames
    - Protocol errors reported to senders
    - Lines/bytes in and out, send failures and outbound queue overflows
    """

    def __init__(self, server: ChatRelayService) -> None:
        self.server = server
        self._lock = threading.Lock()

        self.started_wall_time: float | None = None
        self.started_monotonic: float | None = None

        self._counters: dict[str, int] = {
            "connections_accepted": 0,
            "accept_errors": 0,
            "handshakes": 0,
            "handshake_retries": 0,
            "disconnects": 0,
            "msgs_public": 0,
            "msgs_private": 0,
            "msgs_private_undelivered": 0,
            "renames": 0,
            "renames_rejected": 0,
            "protocol_errors": 0,
            "lines_in": 0,
            "lines_out": 0,
            "bytes_in": 0,
            "bytes_out": 0,
            "send_failures": 0,
            "send_overflows": 0,
        }

    def set_start_time(self) -> None:
        """Set the start time for uptime calculations."""
        self.started_wall_time = time.time()
        self.started_monotonic = time.monotonic()

    def inc(self, key: str, delta: int = 1) -> None:
        with self._lock:
            self._counters[key] = int(self._counters.get(key, 0)) + int(delta)

    def get(self, key: str) -> int:
        with self._lock:
            return int(self._counters.get(key, 0))

    def snapshot(self) -> dict[str, int]:
        with self._lock:
            return dict(self._counters)

    def format_stats(self) -> str:
        """Format current statistics as a human-readable string."""
        from . import __version__

        started_mono = self.started_monotonic
        uptime_s = (time.monotonic() - started_mono) if started_mono is not None else 0.0

        online = len(self.server.registry)
        open_conns = self.server.connection_count()
        c = self.snapshot()

        lines: list[str] = []
        lines.append(f"chatrelay {__version__} stats")
        lines.append(f"uptime_s={uptime_s:.1f}")
        lines.append(
            f"clients_online={online} "
            f"connections_open={open_conns} "
            f"connections_accepted={c['connections_accepted']} "
            f"accept_errors={c['accept_errors']}"
        )
        lines.append(
            "sessions: handshakes={} handshake_retries={} disconnects={}".format(
                c["handshakes"], c["handshake_retries"], c["disconnects"]
            )
        )
        lines.append(
            "events: public={} private={} private_undelivered={} renames={} "
            "renames_rejected={} protocol_errors={}".format(
                c["msgs_public"],
                c["msgs_private"],
                c["msgs_private_undelivered"],
                c["renames"],
                c["renames_rejected"],
                c["protocol_errors"],
            )
        )
        lines.append(
            "io: lines_in={} lines_out={} bytes_in={} bytes_out={} send_failures={} "
            "send_overflows={}".format(
                c["lines_in"],
                c["lines_out"],
                c["bytes_in"],
                c["bytes_out"],
                c["send_failures"],
                c["send_overflows"],
            )
        )

        return "\n".join(lines)
