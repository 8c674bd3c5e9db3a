from __future__ import annotations

import os
from pathlib import Path


def default_chatrelay_dir() -> Path:
    override = os.environ.get("CHATRELAY_HOME")
    if override:
        return Path(override)
    return Path.home() / ".chatrelay"


def default_config_path() -> Path:
    return default_chatrelay_dir() / "chatrelay.toml"


def ensure_private_dir(path: Path) -> None:
    path.mkdir(parents=True, exist_ok=True)
    try:
        # Best-effort tightening; may fail on some filesystems.
        os.chmod(path, 0o700)
    except Exception:
        pass
