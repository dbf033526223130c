from __future__ import annotations

import time
from collections import deque
from typing import Deque, Callable, Awaitable


class EventBus:
    """Audit event log with a bounded history."""

    def __init__(self, max_history: int = 200):
        self._history: Deque[dict] = deque(maxlen=max_history)

    async def publish(self, event_type: str, data: dict) -> None:
        """Record an event in history."""
        event = {
            "type": event_type,
            "data": data,
            "timestamp": time.time(),
        }
        self._history.append(event)

    def get_recent(self, count: int = 20) -> list:
        """Get recent events from history."""
        if count <= 0:
            return []
        return list(self._history)[-count:]


def build_emitter(event_bus: EventBus) -> Callable[..., Awaitable[None]]:
    async def emit_event(event_type: str, message: str, **kwargs) -> None:
        data = {"message": message, **kwargs}
        await event_bus.publish(event_type, data)

    return emit_event


__all__ = ["EventBus", "build_emitter"]
