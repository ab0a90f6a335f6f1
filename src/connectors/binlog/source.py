"""
Interface the replicator consumes from a binlog protocol client.
"""

from typing import Optional, Protocol

from .events import BinlogEvent


class BinlogSource(Protocol):
    """
    A connection to a replication log that yields decoded events.

    Transport failures surface as ``BinlogTransportError``.
    """

    def connect(self) -> bool:
        """Open the connection. Returns False if the handshake was refused."""
        ...

    def set_position(self, segment: str, offset: int) -> None:
        """Start streaming from ``segment`` at ``offset``."""
        ...

    def wait_for_next_event(self) -> Optional[BinlogEvent]:
        """Block for the next event. None means the stream ended."""
        ...

    def closed(self) -> bool:
        ...

    def close(self) -> None:
        ...
