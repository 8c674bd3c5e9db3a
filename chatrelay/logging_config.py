from __future__ import annotations

import logging
import os
from pathlib import Path

from .config import ServerRuntimeConfig

DEFAULT_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

_LEVEL_NAMES: dict[str, int] = {
    "CRITICAL": logging.CRITICAL,
    "ERROR": logging.ERROR,
    "WARN": logging.WARNING,
    "WARNING": logging.WARNING,
    "INFO": logging.INFO,
    "DEBUG": logging.DEBUG,
    "NOTSET": logging.NOTSET,
}


def level_from(value: object, default: int = logging.INFO) -> int:
    """Resolve a level name or number; anything unrecognized gives ``default``."""
    if isinstance(value, int):
        return value
    name = str(value or "").strip().upper()
    if name in _LEVEL_NAMES:
        return _LEVEL_NAMES[name]
    return int(name) if name.isdigit() else default


def _blank_to_none(value: object) -> str | None:
    text = "" if value is None else str(value)
    return text if text.strip() else None


def _open_log_file(path: str) -> logging.Handler:
    target = Path(path).expanduser()
    target.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(target, encoding="utf-8")
    # Chat logs carry nicknames and private text.
    try:
        os.chmod(target, 0o600)
    except OSError:
        pass
    return handler


def relay_handlers(cfg: ServerRuntimeConfig, log_file: str | None) -> list[logging.Handler]:
    handlers: list[logging.Handler] = []
    if cfg.log_console:
        handlers.append(logging.StreamHandler())
    if log_file:
        handlers.append(_open_log_file(log_file))
    return handlers


def configure_logging(
    cfg: ServerRuntimeConfig,
    *,
    override_level: str | None = None,
    override_file: str | None = None,
) -> None:
    """Point the root logger at the relay's console and file handlers.

    Flags win over the config file. An empty ``override_file`` disables file
    logging. Calling this again replaces the handlers it installed before.
    """
    log_file = _blank_to_none(cfg.log_file if override_file is None else override_file)

    formatter = logging.Formatter(
        fmt=_blank_to_none(cfg.log_format) or DEFAULT_FORMAT,
        datefmt=_blank_to_none(cfg.log_datefmt),
    )

    root = logging.getLogger()
    for old in root.handlers[:]:
        root.removeHandler(old)

    for handler in relay_handlers(cfg, log_file):
        handler.setFormatter(formatter)
        root.addHandler(handler)

    root.setLevel(level_from(override_level or cfg.log_level))
    logging.captureWarnings(True)
