from __future__ import annotations

from .constants import LINE_ENCODING, LINE_TERMINATOR


def encode_line(line: str) -> bytes:
    return line.encode(LINE_ENCODING) + LINE_TERMINATOR


def decode_line(raw: bytes) -> str:
    # Peers may send CRLF; invalid UTF-8 must not drop the connection.
    return raw.rstrip(b"\r\n").decode(LINE_ENCODING, "replace")
