"""
Decoded binlog event records.

The protocol layer decodes each replication event once into a ``BinlogEvent``
tagged with an ``EventKind``. Everything downstream matches on the kind.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional


class EventKind(str, Enum):
    """Closed set of replication event kinds."""
    QUERY = "query"
    ROTATE = "rotate"
    INT_VAR = "int_var"
    USER_VAR = "user_var"
    FORMAT = "format"
    XID = "xid"
    TABLE_MAP = "table_map"
    ROW = "row"
    INCIDENT = "incident"
    UNIMPLEMENTED = "unimplemented"
    UNKNOWN = "unknown"

    @property
    def registrable(self) -> bool:
        return self is not EventKind.UNKNOWN


@dataclass(frozen=True)
class BinlogEvent:
    """
    One replication event.

    Attributes:
        kind: Event kind
        next_position: Offset of the following event as reported by the server.
            Wraps at 2^32 and is always 0 for format-description events.
        byte_length: Size of this event in bytes
        new_segment_name: Target binlog file (rotate events only)
        new_offset: Target offset in the new binlog file (rotate events only)
        payload: Raw event object from the protocol library, for callbacks
    """
    kind: EventKind
    next_position: int = 0
    byte_length: int = 0
    new_segment_name: Optional[str] = None
    new_offset: Optional[int] = None
    payload: Any = None

    def __post_init__(self):
        if self.kind is EventKind.ROTATE and (self.new_segment_name is None or self.new_offset is None):
            raise ValueError("rotate event requires new_segment_name and new_offset")
        if self.next_position < 0:
            raise ValueError("next_position must be non-negative")
        if self.byte_length < 0:
            raise ValueError("byte_length must be non-negative")
