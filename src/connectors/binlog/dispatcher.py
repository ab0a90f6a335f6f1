"""
Routes binlog events to registered callbacks.
"""

import logging
from typing import TYPE_CHECKING, Callable, Dict, Optional

from .events import BinlogEvent, EventKind
from .metrics import events_total
from .position_store import LogPosition

if TYPE_CHECKING:
    from .tracker import CheckpointTracker

logger = logging.getLogger(__name__)

EventCallback = Callable[[BinlogEvent], None]

REGISTRABLE_KINDS = tuple(kind for kind in EventKind if kind.registrable)


class EventDispatcher:
    """
    Fixed table of one optional callback per event kind.

    Callbacks run synchronously. Checkpoint updates that record delivery
    happen after the callback returns, so a crash inside a callback replays
    that event on restart.

    Example:
        >>> dispatcher = EventDispatcher()
        >>> dispatcher.register(EventKind.ROW, handle_rows)
    """

    def __init__(self):
        self._callbacks: Dict[EventKind, Optional[EventCallback]] = dict.fromkeys(REGISTRABLE_KINDS)

    def register(self, kind: EventKind, callback: Optional[EventCallback]) -> None:
        """Set (or replace, or clear with None) the callback for ``kind``."""
        if kind not in self._callbacks:
            raise ValueError(f"Cannot register a callback for {kind.value} events")
        self._callbacks[kind] = callback

    def callback_for(self, kind: EventKind) -> Optional[EventCallback]:
        return self._callbacks.get(kind)

    def dispatch(self, event: BinlogEvent, tracker: "CheckpointTracker", cur: LogPosition) -> None:
        """
        Deliver a processable event and apply its checkpoint effect.

        Args:
            event: Event to deliver
            tracker: Checkpoint tracker to update
            cur: Resume position before this event
        """
        kind = event.kind

        if kind is EventKind.QUERY:
            self.invoke(event)
            tracker.mark_delivered(cur)
            tracker.save_resume_next(cur, event)
        elif kind is EventKind.ROTATE:
            self.invoke(event)
            tracker.rotate(cur, event)
        elif kind is EventKind.TABLE_MAP:
            self.invoke(event)
            tracker.save_resume_at_table_map(cur)
        elif kind is EventKind.ROW:
            self.invoke(event)
            tracker.mark_delivered(cur)
        elif kind is EventKind.UNKNOWN:
            logger.error(
                "Not Implemented: unknown binlog event",
                extra={"segment": cur.segment, "offset": cur.offset, "payload_type": type(event.payload).__name__}
            )
            self.record(event, "unhandled")
        else:
            self.invoke(event)

    def invoke(self, event: BinlogEvent) -> bool:
        callback = self._callbacks.get(event.kind)
        if callback is None:
            logger.debug(f"Unhandled: {event.kind.value}", extra={"event_kind": event.kind.value})
            self.record(event, "unhandled")
            return False
        callback(event)
        self.record(event, "delivered")
        return True

    def record(self, event: BinlogEvent, outcome: str) -> None:
        events_total.labels(kind=event.kind.value, outcome=outcome).inc()
