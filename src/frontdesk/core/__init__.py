from __future__ import annotations

from frontdesk.core.event_stream import StateStreamer, StreamEvent

__all__ = [
    "StateStreamer",
    "StreamEvent",
]
