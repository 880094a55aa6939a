from __future__ import annotations

import logging
from collections import deque
from copy import deepcopy
from dataclasses import dataclass
from datetime import datetime, timezone
from itertools import count
from typing import Any, Callable, Mapping


_LOGGER = logging.getLogger("frontdesk.events")
_HISTORY_LIMIT = 500

EventListener = Callable[["StreamEvent"], None]


@dataclass(frozen=True, slots=True)
class StreamEvent:
    sequence: int
    timestamp: str
    event_type: str
    source: str
    payload: dict[str, Any]


class StateStreamer:
    """Bounded log of app lifecycle events fanned out to listeners.

    Every listener sees every event; a listener that raises is logged and
    skipped so the component that recorded the event carries on.
    """

    def __init__(self, *, history_limit: int = _HISTORY_LIMIT) -> None:
        self._sequence = count(1)
        self._history: deque[StreamEvent] = deque(maxlen=max(1, int(history_limit)))
        self._listeners: list[EventListener] = []

    def record(
        self,
        event_type: str,
        *,
        source: str,
        payload: Mapping[str, Any] | None = None,
    ) -> StreamEvent:
        event = StreamEvent(
            sequence=next(self._sequence),
            timestamp=datetime.now(timezone.utc).isoformat(timespec="milliseconds"),
            event_type=event_type,
            source=source,
            payload=deepcopy(dict(payload or {})),
        )
        self._history.append(event)
        for listener in tuple(self._listeners):
            try:
                listener(event)
            except Exception:
                _LOGGER.exception("Event listener failed for %s", event_type)
        return event

    def tail(self, *, limit: int = 100) -> tuple[StreamEvent, ...]:
        history = tuple(self._history)
        return history[-max(1, int(limit)):]

    def subscribe(self, listener: EventListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe
