"""Server-to-client line construction and client-side line classification."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from .constants import (
    N_JOINED,
    N_LEFT,
    N_RENAMED,
    P_DM,
    P_SYS,
    P_USERS,
    PRIVATE_ECHO,
    USERS_SEPARATOR,
)

KIND_USERS = "users"
KIND_DM = "dm"
KIND_SYS = "sys"
KIND_PUBLIC = "public"


def sys_line(text: str) -> str:
    return P_SYS + text


def users_line(nicknames: Iterable[str]) -> str:
    return P_USERS + USERS_SEPARATOR.join(nicknames)


def dm_line(sender: str, body: str) -> str:
    return f"{P_DM}{sender}: {body}"


def public_line(sender: str, text: str) -> str:
    return f"{sender}: {text}"


def private_echo_line(target: str, body: str) -> str:
    return PRIVATE_ECHO.format(target=target, body=body)


def joined_line(nick: str) -> str:
    return sys_line(N_JOINED.format(nick=nick))


def left_line(nick: str) -> str:
    return sys_line(N_LEFT.format(nick=nick))


def renamed_line(old: str, new: str) -> str:
    return sys_line(N_RENAMED.format(old=old, new=new))


@dataclass(frozen=True)
class ServerLine:
    kind: str
    text: str

    @property
    def users(self) -> list[str]:
        """Nicknames carried by a USERS line (empty for other kinds)."""
        if self.kind != KIND_USERS or not self.text:
            return []
        return self.text.split(USERS_SEPARATOR)


def classify_line(line: str) -> ServerLine:
    """Split a server line into its kind and the remainder after the prefix."""
    if line.startswith(P_USERS):
        return ServerLine(KIND_USERS, line[len(P_USERS) :])
    if line.startswith(P_DM):
        return ServerLine(KIND_DM, line[len(P_DM) :])
    if line.startswith(P_SYS):
        return ServerLine(KIND_SYS, line[len(P_SYS) :])
    return ServerLine(KIND_PUBLIC, line)
