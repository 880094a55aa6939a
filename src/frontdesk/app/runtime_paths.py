from __future__ import annotations

import sys
from pathlib import Path


def is_frozen_runtime() -> bool:
    return bool(getattr(sys, "frozen", False))


def source_root() -> Path:
    return Path(__file__).resolve().parents[3]


def app_root() -> Path:
    if is_frozen_runtime():
        return Path(sys.executable).resolve().parent
    return source_root()
