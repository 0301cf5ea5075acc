"""
In-process domain events.

Handlers run synchronously after the publishing write has committed. A failing
handler is logged and skipped; nothing is retried or rolled back.
"""
import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import Callable, Dict, List, Type

logger = logging.getLogger("learnify.events")


@dataclass(frozen=True)
class TeacherPromotionRequested:
    """An approval that should elevate ``email`` to the teacher role."""

    email: str
    source: str
    source_id: str


class EventBus:
    def __init__(self):
        self._handlers: Dict[Type, List[Callable]] = defaultdict(list)

    def subscribe(self, event_type: Type, handler: Callable) -> None:
        self._handlers[event_type].append(handler)

    def publish(self, event) -> bool:
        """Deliver ``event``; True when every handler succeeded."""
        delivered = True
        for handler in self._handlers.get(type(event), []):
            try:
                handler(event)
            except Exception:
                delivered = False
                logger.exception("handler %s failed for %r", getattr(handler, "__name__", handler), event)
        return delivered
