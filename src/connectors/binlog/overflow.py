"""
32-bit binlog position overflow correction.

The replication protocol reports the next event position in a 4-byte field,
so it wraps once a binlog file grows past 4GiB. Event sizes stay correct, so
after a wrap the next position is rebuilt as ``current + event size``.
"""

import logging
from dataclasses import dataclass

from .events import BinlogEvent
from .metrics import position_overflowed

logger = logging.getLogger(__name__)


@dataclass
class OverflowState:
    overflowed: bool = False


class OverflowCorrector:
    """
    Detects next-position wraparound and computes corrected positions.

    The overflow flag is sticky for the current segment and is cleared by
    ``reset()`` when the stream rotates to a new segment.
    """

    def __init__(self, state: OverflowState = None):
        self.state = state or OverflowState()

    @property
    def overflowed(self) -> bool:
        return self.state.overflowed

    def next_position_overflowed(self, cur_offset: int, event: BinlogEvent) -> bool:
        if self.state.overflowed:
            return True
        if event.next_position != 0 and event.next_position < cur_offset:
            self.state.overflowed = True
            position_overflowed.set(1)
            logger.warning(
                f"Binlog position overflow detected at offset {cur_offset}",
                extra={
                    "offset": cur_offset,
                    "next_position": event.next_position,
                    "event_kind": event.kind.value
                }
            )
            return True
        return False

    def calc_next_position(self, cur_offset: int, event: BinlogEvent) -> int:
        if not self.next_position_overflowed(cur_offset, event):
            return event.next_position
        # format description events always report 0
        if event.next_position == 0:
            return 0
        return cur_offset + event.byte_length

    def reset(self) -> None:
        if self.state.overflowed:
            logger.info("Binlog position overflow cleared on rotation")
        self.state.overflowed = False
        position_overflowed.set(0)
