from __future__ import annotations

from dataclasses import asdict, dataclass, replace

from .constants import DEFAULT_HOST, DEFAULT_PORT


@dataclass(frozen=True)
class ServerRuntimeConfig:
    config_path: str | None = None
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    greeting: str | None = None
    nick_max_chars: int = 0
    notify_unknown_private_target: bool = False
    close_flush_timeout_s: float = 2.0
    outbound_queue_max: int = 0
    log_level: str = "INFO"
    log_console: bool = True
    log_file: str | None = None
    log_format: str = "%(asctime)s %(levelname)s %(name)s[%(threadName)s]: %(message)s"
    log_datefmt: str | None = None


def load_toml(path: str) -> dict:
    import tomllib

    with open(path, "rb") as f:
        data = tomllib.load(f)
    return data if isinstance(data, dict) else {}


def apply_config_data(base: ServerRuntimeConfig, data: dict) -> ServerRuntimeConfig:
    """Overlay a parsed TOML document onto ``base``.

    Keys may appear at top level or under ``[server]``; logging keys live
    under ``[logging]`` without the ``log_`` prefix. Unknown keys are ignored.
    """

    server = data.get("server") if isinstance(data, dict) else None
    if isinstance(server, dict):
        data = {**data, **server}

    log_table = data.get("logging") if isinstance(data, dict) else None
    if isinstance(log_table, dict):
        mapped: dict[str, object] = {}
        for key in ("level", "console", "file", "format", "datefmt"):
            if key in log_table:
                mapped[f"log_{key}"] = log_table.get(key)
        data = {**data, **mapped}

    allowed = set(asdict(base).keys())
    # This identifies where the config was loaded from; do not let the file override it.
    allowed.discard("config_path")

    updates = {k: v for k, v in data.items() if k in allowed}

    if "port" in updates:
        updates["port"] = int(updates["port"])
    if "nick_max_chars" in updates:
        updates["nick_max_chars"] = int(updates["nick_max_chars"])
    if "close_flush_timeout_s" in updates:
        updates["close_flush_timeout_s"] = float(updates["close_flush_timeout_s"])
    if "outbound_queue_max" in updates:
        updates["outbound_queue_max"] = int(updates["outbound_queue_max"])

    for key in ("greeting", "log_file", "log_datefmt"):
        if key in updates and updates[key] == "":
            updates[key] = None

    return replace(base, **updates) if updates else base
