from __future__ import annotations

import argparse
import logging
import os
import sys
from dataclasses import replace
from pathlib import Path

from .client import ChatClient
from .config import ServerRuntimeConfig, apply_config_data, load_toml
from .constants import DEFAULT_HOST, DEFAULT_PORT
from .logging_config import configure_logging
from .paths import default_config_path, ensure_private_dir
from .service import ChatRelayService
from .util import expand_path


def _write_default_config(config_path: str) -> None:
    cfg_dir = os.path.dirname(config_path)
    if cfg_dir:
        ensure_private_dir(Path(cfg_dir))

    content = f"""# chatrelay configuration (TOML)
#
# This file was created on first run.
# Command-line flags override values set here.

[server]

# Address to listen on. Use "0.0.0.0" to accept connections from other hosts.
host = {DEFAULT_HOST!r}
port = {DEFAULT_PORT}

# Optional greeting (message of the day) sent to a client after it has
# picked a nickname. Each line becomes one SYS notice. Empty disables it.
greeting = ""

# Maximum accepted nickname length (Unicode characters). 0 disables length limiting.
nick_max_chars = 0

# A private message to an unknown nickname is dropped silently by default.
# Set to true to answer the sender with "SYS No such user: <name>" instead.
notify_unknown_private_target = false

# How long a closing session may spend flushing queued lines to its peer.
close_flush_timeout_s = 2.0

# Lines queued for one client before it is treated as stalled and
# disconnected. 0 leaves the queue unbounded.
outbound_queue_max = 0

[logging]

# Log level (DEBUG, INFO, WARNING, ERROR).
level = "INFO"

# Log to stderr (systemd/journald friendly).
console = true

# Optional file path for logs (leave empty to disable).
file = ""

# Log format and optional date format.
format = "%(asctime)s %(levelname)s %(name)s[%(threadName)s]: %(message)s"
datefmt = ""
"""

    with open(config_path, "w", encoding="utf-8") as f:
        f.write(content)


def _build_arg_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="chatrelayd", description="Run a line-based chat relay")

    p.add_argument(
        "--config",
        default=str(default_config_path()),
        help="Path to a TOML config file (created on first run)",
    )
    p.add_argument("--host", default=None, help=f"Listen address (default: {DEFAULT_HOST})")
    p.add_argument("--port", type=int, default=None, help=f"Listen port (default: {DEFAULT_PORT})")
    p.add_argument(
        "--greeting",
        default=None,
        help="Greeting sent as SYS notices after a client picks a nickname",
    )
    p.add_argument(
        "--nick-max-chars",
        type=int,
        default=None,
        help="Maximum nickname length (0 disables)",
    )
    p.add_argument(
        "--notify-unknown-target",
        action="store_true",
        help="Tell senders when a /w target is not online (silent by default)",
    )
    p.add_argument(
        "--outbound-queue-max",
        type=int,
        default=None,
        help="Disconnect a client once this many lines are queued for it (0 disables)",
    )

    p.add_argument(
        "--log-level",
        default=None,
        help="Logging level override (DEBUG, INFO, WARNING, ERROR). Default comes from config.",
    )
    p.add_argument(
        "--log-file",
        default=None,
        help="Log file path override (empty disables file logging). Default comes from config.",
    )

    return p


def build_config(args: argparse.Namespace) -> tuple[ServerRuntimeConfig, bool]:
    """Resolve defaults, config file and flags; returns (config, created_file)."""
    config_path = expand_path(str(args.config)) if args.config else ""
    created = False

    cfg = ServerRuntimeConfig(config_path=config_path or None)

    if config_path:
        if not os.path.exists(config_path):
            _write_default_config(config_path)
            created = True
        cfg = apply_config_data(cfg, load_toml(config_path))

    if args.host is not None:
        cfg = replace(cfg, host=str(args.host))
    if args.port is not None:
        cfg = replace(cfg, port=int(args.port))
    if args.greeting is not None:
        cfg = replace(cfg, greeting=str(args.greeting) or None)
    if args.nick_max_chars is not None:
        cfg = replace(cfg, nick_max_chars=int(args.nick_max_chars))
    if args.notify_unknown_target:
        cfg = replace(cfg, notify_unknown_private_target=True)
    if args.outbound_queue_max is not None:
        cfg = replace(cfg, outbound_queue_max=int(args.outbound_queue_max))

    if args.log_level is not None:
        cfg = replace(cfg, log_level=str(args.log_level))
    if args.log_file is not None:
        cfg = replace(cfg, log_file=str(args.log_file) if str(args.log_file) else None)

    return cfg, created


def main(argv: list[str] | None = None) -> None:
    args = _build_arg_parser().parse_args(sys.argv[1:] if argv is None else argv)

    cfg, created = build_config(args)

    configure_logging(cfg, override_level=args.log_level, override_file=args.log_file)
    log = logging.getLogger("chatrelay")

    if created:
        log.info("Created default config at %s", cfg.config_path)

    svc = ChatRelayService(cfg)
    try:
        svc.start()
    except OSError as e:
        log.critical("Cannot listen on %s:%s: %s", cfg.host, cfg.port, e)
        raise SystemExit(1) from e

    svc.run_forever()


def _build_client_arg_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="chatrelay-client", description="Console client for a chatrelay server"
    )
    p.add_argument("--host", default=DEFAULT_HOST, help=f"Server host (default: {DEFAULT_HOST})")
    p.add_argument("--port", type=int, default=DEFAULT_PORT, help=f"Server port (default: {DEFAULT_PORT})")
    p.add_argument("--nick", default=None, help="Nickname to request on connect")
    return p


def client_main(argv: list[str] | None = None) -> None:
    args = _build_client_arg_parser().parse_args(sys.argv[1:] if argv is None else argv)

    client = ChatClient(args.host, args.port)
    try:
        client.run_interactive(nick=args.nick)
    except OSError as e:
        print(f"Connection failed: {e}", file=sys.stderr)
        raise SystemExit(1) from e


if __name__ == "__main__":
    main()
