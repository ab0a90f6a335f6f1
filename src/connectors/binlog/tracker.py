"""
Resume/delivered checkpoint bookkeeping for binlog replication.

Two cursors move through the stream:

- resume: where to seek on reconnect. Persisted at query, table-map and
  rotate boundaries, which are the only safe places to restart from.
- delivered: position of the last event whose callback fired. After a restart
  from an older resume point, events up to this position are replayed without
  callbacks.
"""

import logging
from typing import TYPE_CHECKING, Optional

from .events import BinlogEvent, EventKind
from .overflow import OverflowCorrector
from .position_store import Checkpoint, LogPosition

if TYPE_CHECKING:
    from .dispatcher import EventDispatcher

logger = logging.getLogger(__name__)


def should_deliver(resume: LogPosition, delivered: LogPosition) -> bool:
    """
    Whether the event at ``resume`` is past the delivered position.

    Examples:
        resume                    delivered                 result
        -----------------------------------------------------------
        mysql-bin.000004 00001    mysql-bin.000003 00001    True
        mysql-bin.000004 00030    mysql-bin.000004 00001    True
        mysql-bin.000004 00030    mysql-bin.000004 00030    False
        mysql-bin.000004 00030    mysql-bin.000004 00050    False
        mysql-bin.000004 00030    mysql-bin.000005 00001    False
    """
    if not (resume.valid and delivered.valid):
        return True
    return resume.is_after(delivered)


class CheckpointTracker:
    """
    Owns the resume and delivered checkpoints plus overflow state.

    Thread Safety: NOT thread-safe. Only the replication loop may call it.
    """

    def __init__(
        self,
        resume: Checkpoint,
        delivered: Checkpoint,
        overflow: Optional[OverflowCorrector] = None
    ):
        self.resume = resume
        self.delivered = delivered
        self.overflow = overflow or OverflowCorrector()
        self.last_kind: Optional[EventKind] = None

    def processable(self) -> bool:
        return should_deliver(self.resume.position, self.delivered.position)

    def process_event(self, event: BinlogEvent, dispatcher: "EventDispatcher") -> None:
        """
        Run one event through dispatch and checkpoint updates.

        The resume position is snapshotted before dispatch because rotate
        handling moves it, and every checkpoint effect of this event refers to
        where the event started.
        """
        processable = self.processable()
        cur = self.resume.position

        if processable:
            dispatcher.dispatch(event, self, cur)
        else:
            self._skip(event, cur, dispatcher)

        if event.kind not in (EventKind.ROTATE, EventKind.UNKNOWN):
            self.advance(cur, event)
        self.last_kind = event.kind

    def _skip(self, event: BinlogEvent, cur: LogPosition, dispatcher: "EventDispatcher") -> None:
        """Replay an already-delivered event: keep the resume point moving."""
        logger.debug(
            f"Skipping already delivered {event.kind.value} event at {cur}",
            extra={"event_kind": event.kind.value, "segment": cur.segment, "offset": cur.offset}
        )
        if event.kind is EventKind.ROTATE:
            dispatcher.dispatch(event, self, cur)
            return
        dispatcher.record(event, "skipped")
        if event.kind is EventKind.QUERY:
            self.save_resume_next(cur, event)

    def next_position(self, cur: LogPosition, event: BinlogEvent) -> int:
        return self.overflow.calc_next_position(cur.offset or 0, event)

    def advance(self, cur: LogPosition, event: BinlogEvent) -> None:
        """
        Move the in-memory resume offset to the next event.

        Only moves forward: format-description events report a next position
        of 0.
        """
        candidate = self.next_position(cur, event)
        if candidate > (self.resume.offset or 0):
            self.resume.advance(candidate)

    def mark_delivered(self, cur: LogPosition) -> None:
        self.delivered.save(cur.segment, cur.offset)

    def save_resume_next(self, cur: LogPosition, event: BinlogEvent) -> None:
        self.resume.save(cur.segment, self.next_position(cur, event))

    def save_resume_at_table_map(self, cur: LogPosition) -> None:
        """
        Checkpoint the start of a row statement.

        Multi-table statements emit several table-map events in a row; only
        the first one marks the statement start. Positions past a 32-bit wrap
        cannot be seeked to, so nothing is saved while overflowed.
        """
        if self.last_kind is EventKind.TABLE_MAP:
            return
        if self.overflow.overflowed:
            logger.debug(
                f"Not checkpointing table map at {cur}: position overflowed",
                extra={"segment": cur.segment, "offset": cur.offset}
            )
            return
        self.resume.save(cur.segment, cur.offset)

    def rotate(self, cur: LogPosition, event: BinlogEvent) -> None:
        """Follow a rotation to a new binlog file; repeats for the same file are ignored."""
        if event.new_segment_name == cur.segment:
            return
        logger.info(
            f"Binlog rotated to {event.new_segment_name}:{event.new_offset}",
            extra={
                "from_segment": cur.segment,
                "segment": event.new_segment_name,
                "offset": event.new_offset
            }
        )
        self.overflow.reset()
        self.resume.save(event.new_segment_name, event.new_offset)

    def close(self) -> None:
        self.resume.close()
        self.delivered.close()
