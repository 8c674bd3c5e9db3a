from __future__ import annotations

import os


def expand_path(p: str) -> str:
    return os.path.expanduser(os.path.expandvars(p))


def normalize_nick(value, max_chars: int = 0) -> str | None:
    if not isinstance(value, str):
        return None

    s = value.strip()
    if not s:
        return None

    if max_chars and len(s) > int(max_chars):
        return None

    # A nickname is a wire token: no line breaks, no NUL, no commas (they
    # separate names in the USERS list) and no inner whitespace (/w splits on it).
    if "\n" in s or "\r" in s or "\x00" in s:
        return None
    if "," in s or any(ch.isspace() for ch in s):
        return None

    return s
