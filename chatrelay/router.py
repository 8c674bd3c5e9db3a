from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from .constants import (
    CMD_NICK,
    CMD_WHISPER,
    N_NICK_REJECTED,
    N_NO_SUCH_USER,
    N_WHISPER_USAGE,
)
from .messages import dm_line, private_echo_line, public_line, renamed_line, sys_line
from .registry import RegistryError
from .util import normalize_nick

if TYPE_CHECKING:
    from .service import ChatRelayService
    from .session import Session


@dataclass(frozen=True)
class NickChange:
    nickname: str


@dataclass(frozen=True)
class PrivateMessage:
    target: str
    body: str


@dataclass(frozen=True)
class PublicMessage:
    text: str


@dataclass(frozen=True)
class Malformed:
    reply: str


Command = NickChange | PrivateMessage | PublicMessage | Malformed


def parse_line(line: str) -> Command:
    """Interpret one line received from an active session.

    ``/nick <name>`` requests a rename (the name may be empty; the caller
    rejects it). ``/w <target> <body>`` is a private message, where the body
    keeps its inner spacing. Everything else, including a bare ``/nick`` or
    ``/w`` with no argument separator, is public chat.
    """
    if line.startswith(CMD_NICK):
        return NickChange(line[len(CMD_NICK) :].strip())

    if line.startswith(CMD_WHISPER):
        parts = line.split(None, 2)
        if len(parts) < 3:
            return Malformed(N_WHISPER_USAGE)
        return PrivateMessage(parts[1], parts[2])

    return PublicMessage(line)


class MessageRouter:
    """
    Applies commands from active sessions to the registry.

    This class is responsible for:
    - Nickname changes (validation, atomic rename, notices)
    - Private message delivery and sender echo
    - Public message broadcast
    - Reporting protocol errors to the sender only
    """

    def __init__(self, server: ChatRelayService) -> None:
        self.server = server
        self.registry = server.registry
        self.stats = server.stats_manager
        self.log = logging.getLogger("chatrelay.router")

    def route(self, session: Session, line: str) -> None:
        nick = session.nickname
        if nick is None:
            return

        cmd = parse_line(line)

        if self.log.isEnabledFor(logging.DEBUG):
            self.log.debug(
                "RX nick=%r peer=%s cmd=%s chars=%s",
                nick,
                session.peer,
                type(cmd).__name__,
                len(line),
            )

        if isinstance(cmd, NickChange):
            self._handle_nick(session, nick, cmd.nickname)
        elif isinstance(cmd, PrivateMessage):
            self._handle_private(session, nick, cmd.target, cmd.body)
        elif isinstance(cmd, Malformed):
            self.stats.inc("protocol_errors")
            session.send(sys_line(cmd.reply))
        else:
            self.stats.inc("msgs_public")
            self.registry.broadcast(public_line(nick, cmd.text))

    def _handle_nick(self, session: Session, old: str, requested: str) -> None:
        new = normalize_nick(requested, self.server.config.nick_max_chars)
        if new is None or self.registry.contains(new):
            self.stats.inc("renames_rejected")
            session.send(sys_line(N_NICK_REJECTED))
            return

        try:
            self.registry.rename(old, new, session)
        except RegistryError as e:
            # Lost a race against a concurrent rename or registration.
            self.stats.inc("renames_rejected")
            self.log.debug("Rename rejected nick=%r -> %r: %r", old, new, e)
            session.send(sys_line(N_NICK_REJECTED))
            return

        self.stats.inc("renames")
        self.log.info("Nick changed %r -> %r peer=%s", old, new, session.peer)
        self.registry.broadcast(renamed_line(old, new))
        self.registry.broadcast_user_list()

    def _handle_private(self, session: Session, sender: str, target: str, body: str) -> None:
        self.stats.inc("msgs_private")
        delivered = self.registry.unicast(target, dm_line(sender, body))

        if not delivered:
            self.stats.inc("msgs_private_undelivered")
            if self.server.config.notify_unknown_private_target:
                session.send(sys_line(N_NO_SUCH_USER.format(nick=target)))
                return
        if target != sender:
            session.send(private_echo_line(target, body))
