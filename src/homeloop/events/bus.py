# src/homeloop/events/bus.py

from __future__ import annotations

"""
In-process realtime fan-out.

Subscribers register per user id (or "*" for everything). A failing subscriber
is logged and skipped; it never affects delivery to the others or the caller.
"""

import inspect
import logging
from collections import defaultdict
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Any

logger = logging.getLogger(__name__)

WILDCARD = "*"


@dataclass(slots=True, frozen=True)
class RealtimeEvent:
    name: str
    user_id: str
    payload: dict[str, Any] = field(default_factory=dict)


Subscriber = Callable[[RealtimeEvent], Any]


class RealtimeEventBus:
    def __init__(self) -> None:
        self._subscribers: dict[str, list[Subscriber]] = defaultdict(list)

    def subscribe(self, user_id: str, callback: Subscriber) -> Callable[[], None]:
        """Register `callback` for events addressed to `user_id`. Returns an unsubscribe function."""
        self._subscribers[user_id].append(callback)

        def _unsubscribe() -> None:
            callbacks = self._subscribers.get(user_id) or []
            if callback in callbacks:
                callbacks.remove(callback)

        return _unsubscribe

    async def publish(self, event: str, recipients: Sequence[str], payload: dict[str, Any]) -> None:
        delivered = 0
        for user_id in dict.fromkeys(recipients):
            callbacks = [*self._subscribers.get(user_id, ()), *self._subscribers.get(WILDCARD, ())]
            for callback in callbacks:
                try:
                    result = callback(RealtimeEvent(name=event, user_id=user_id, payload=payload))
                    if inspect.isawaitable(result):
                        await result
                    delivered += 1
                except Exception:
                    logger.exception("Realtime subscriber failed event=%s user=%s", event, user_id)

        logger.debug("Published %s to %d recipients (%d deliveries)", event, len(recipients), delivered)
