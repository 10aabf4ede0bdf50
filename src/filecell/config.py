from __future__ import annotations

import os
from typing import Optional


ENV_FERNET_KEY = "FILECELL_FERNET_KEY"


def getenv(name: str, default: Optional[str] = None) -> Optional[str]:
    """Look up `name` in the environment; a blank value falls back to `default`."""
    raw = os.environ.get(name, "")
    return raw or default


def require(setting: Optional[str], name: str) -> str:
    """Return `setting`, or fail loudly naming the missing `name`."""
    if setting:
        return setting
    raise RuntimeError(f"{name} is not set; filecell cannot continue without it")


def fernet_key_from_env() -> str:
    return require(getenv(ENV_FERNET_KEY), ENV_FERNET_KEY)
