from __future__ import annotations

import json
import logging
import os
import sys
from datetime import datetime, timezone
from itertools import count
from pathlib import Path
from threading import Lock


_DB_DEBUG_ENV = "FRONTDESK_DB_DEBUG"
_DB_DEBUG_LOG_ENV = "FRONTDESK_DB_DEBUG_LOG"
_REDACTED_VALUE = "<redacted>"
_SECRET_NAMES = frozenset({"apikey", "authorization", "password", "secret", "token"})
_SECRET_SUFFIXES = ("_key", "_token", "_secret", "_password")
_TRUTHY = frozenset({"1", "true", "yes", "on", "y"})

_LOGGER = logging.getLogger("frontdesk.db_debug")


class _TraceWriter:
    """Numbers trace records and appends them to the log file or stderr."""

    def __init__(self) -> None:
        self._sequence = count(1)
        self._lock = Lock()
        self._failed_targets: set[str] = set()

    def write(self, event: str, payload: dict[str, object]) -> None:
        with self._lock:
            record = {
                "seq": next(self._sequence),
                "ts": datetime.now(timezone.utc).isoformat(timespec="milliseconds"),
                "pid": os.getpid(),
                "event": str(event or "").strip() or "unknown",
                "data": redact_value(payload),
            }
            line = json.dumps(record, ensure_ascii=True, default=str)
            target = str(os.getenv(_DB_DEBUG_LOG_ENV, "") or "").strip()
            if target and self._append(Path(target).expanduser(), line):
                return
            try:
                sys.stderr.write(f"[db-debug] {line}\n")
                sys.stderr.flush()
            except (OSError, ValueError):
                return

    def _append(self, destination: Path, line: str) -> bool:
        try:
            destination.parent.mkdir(parents=True, exist_ok=True)
            with destination.open("a", encoding="utf-8") as handle:
                handle.write(f"{line}\n")
        except OSError as exc:
            # Warn once per path, then keep tracing to stderr.
            if str(destination) not in self._failed_targets:
                self._failed_targets.add(str(destination))
                _LOGGER.warning("Cannot write debug trace to %s: %s", destination, exc)
            return False
        return True


_WRITER = _TraceWriter()


def db_debug_enabled() -> bool:
    return str(os.getenv(_DB_DEBUG_ENV, "") or "").strip().casefold() in _TRUTHY


def db_debug(event: str, **payload: object) -> None:
    if db_debug_enabled():
        _WRITER.write(event, payload)


def is_secret_key(key: object) -> bool:
    name = str(key or "").strip().casefold().replace("-", "_")
    return name in _SECRET_NAMES or name.endswith(_SECRET_SUFFIXES)


def redact_value(value: object) -> object:
    if isinstance(value, dict):
        return {
            str(key): _REDACTED_VALUE if is_secret_key(key) else redact_value(raw)
            for key, raw in value.items()
        }
    if isinstance(value, set):
        return [redact_value(entry) for entry in sorted(value, key=str)]
    if isinstance(value, (list, tuple)):
        return [redact_value(entry) for entry in value]
    return value
