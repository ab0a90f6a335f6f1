"""
File-backed binlog checkpoints.

A checkpoint file holds a single line ``<segment>\\t<offset>`` with no trailing
newline. It is rewritten in place on every update: seek to the start, write,
truncate at the write position.
"""

import logging
import os
from dataclasses import dataclass
from typing import Optional

from .errors import CheckpointError
from .metrics import checkpoint_writes_total

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LogPosition:
    """Position inside a binlog stream: (segment, offset)."""
    segment: Optional[str] = None
    offset: Optional[int] = None

    @property
    def valid(self) -> bool:
        return self.segment is not None and self.offset is not None

    def is_after(self, other: "LogPosition") -> bool:
        """
        Strict ordering test on (segment, offset).

        Both positions must be valid.
        """
        if self.segment != other.segment:
            return self.segment > other.segment
        return self.offset > other.offset

    def __str__(self) -> str:
        return f"{self.segment}:{self.offset}"


class PositionStore:
    """
    Durable (segment, offset) pair backed by a file.

    The file is opened (and created if missing) on construction and kept open
    until ``close()``. Every ``update()`` is flushed and fsynced before returning.

    Example:
        >>> store = PositionStore("position.log")
        >>> store.update("mysql-bin.000003", 1024)
        >>> store.read()
        LogPosition(segment='mysql-bin.000003', offset=1024)
    """

    def __init__(self, path: str):
        self.path = path
        try:
            fd = os.open(path, os.O_RDWR | os.O_CREAT, 0o644)
            self._file = os.fdopen(fd, "r+", encoding="utf-8", newline="")
        except OSError as e:
            logger.error(f"Failed to open checkpoint file {path}: {e}")
            raise CheckpointError(f"Cannot open checkpoint file {path}: {e}") from e

    def read(self) -> Optional[LogPosition]:
        """
        Read the stored position.

        Returns:
            Stored position, or None if the file is empty

        Raises:
            CheckpointError: If the file cannot be read or parsed
        """
        try:
            self._file.seek(0)
            line = self._file.readline()
        except (OSError, UnicodeDecodeError) as e:
            raise CheckpointError(f"Cannot read checkpoint file {self.path}: {e}") from e

        if not line:
            return None

        segment, sep, offset = line.partition("\t")
        offset = offset.strip()
        if not sep or not segment or not (offset.isascii() and offset.isdigit()):
            raise CheckpointError(
                f"Malformed checkpoint file {self.path}: {line!r}"
            )
        return LogPosition(segment, int(offset))

    def update(self, segment: str, offset: int) -> None:
        """
        Overwrite the stored position.

        Raises:
            CheckpointError: If the write fails
        """
        try:
            self._file.seek(0)
            self._file.write(f"{segment}\t{offset}")
            self._file.truncate(self._file.tell())
            self._file.flush()
            os.fsync(self._file.fileno())
        except OSError as e:
            logger.error(f"Failed to write checkpoint file {self.path}: {e}")
            raise CheckpointError(f"Cannot write checkpoint file {self.path}: {e}") from e

    def close(self) -> None:
        if not self._file.closed:
            self._file.close()

    def __enter__(self) -> "PositionStore":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


class Checkpoint:
    """
    Named log position with an optional backing store.

    In-memory moves (``advance``) are cheap; ``save`` persists synchronously.
    """

    def __init__(self, name: str, store: Optional[PositionStore] = None):
        self.name = name
        self.store = store
        self.position = LogPosition()
        if store is not None:
            self.load()

    @property
    def segment(self) -> Optional[str]:
        return self.position.segment

    @property
    def offset(self) -> Optional[int]:
        return self.position.offset

    @property
    def valid(self) -> bool:
        return self.position.valid

    def load(self) -> None:
        stored = self.store.read() if self.store is not None else None
        self.position = stored or LogPosition()
        if stored:
            logger.info(
                f"Loaded {self.name} checkpoint {stored}",
                extra={"checkpoint": self.name, "segment": stored.segment, "offset": stored.offset}
            )

    def advance(self, offset: int) -> None:
        """Move the offset in memory only."""
        self.position = LogPosition(self.position.segment, offset)

    def save(self, segment: Optional[str] = None, offset: Optional[int] = None) -> None:
        """
        Update the position and persist it to the store, if any.

        Fields passed as None keep their current value. A position without
        a segment or offset is kept in memory only: it cannot be seeked to.
        """
        self.position = LogPosition(
            segment if segment is not None else self.position.segment,
            offset if offset is not None else self.position.offset,
        )
        if self.store is None:
            return
        if not self.position.valid:
            logger.debug(
                f"Not saving incomplete {self.name} checkpoint {self.position}",
                extra={"checkpoint": self.name, "segment": self.position.segment, "offset": self.position.offset}
            )
            return
        self.store.update(self.position.segment, self.position.offset)
        checkpoint_writes_total.labels(checkpoint=self.name).inc()
        logger.debug(
            f"Saved {self.name} checkpoint {self.position}",
            extra={"checkpoint": self.name, "segment": self.position.segment, "offset": self.position.offset}
        )

    def close(self) -> None:
        if self.store is not None:
            self.store.close()
