"""Shared fixtures for binlog replication tests."""

import os
import sys
from typing import List, Optional

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from src.connectors.binlog import BinlogEvent, EventKind  # noqa: E402


class FakeBinlogSource:
    """In-memory stand-in for a replication connection."""

    def __init__(
        self,
        events: Optional[List[BinlogEvent]] = None,
        connect: bool = True,
        closed: bool = True,
        error: Optional[BaseException] = None
    ):
        self.events = list(events or [])
        self.connect_result = connect
        self.closed_result = closed
        self.error = error
        self.positions = []
        self.fetches = 0
        self.close_calls = 0

    def connect(self) -> bool:
        return self.connect_result

    def set_position(self, segment: str, offset: int) -> None:
        self.positions.append((segment, offset))

    def wait_for_next_event(self) -> Optional[BinlogEvent]:
        self.fetches += 1
        if self.error is not None:
            raise self.error
        if not self.events:
            return None
        return self.events.pop(0)

    def closed(self) -> bool:
        return self.closed_result

    def close(self) -> None:
        self.close_calls += 1


class Events:
    """Factory for test events."""

    @staticmethod
    def rotate(segment: str, offset: int) -> BinlogEvent:
        return BinlogEvent(EventKind.ROTATE, next_position=0, new_segment_name=segment, new_offset=offset)

    @staticmethod
    def query(next_position: int, byte_length: int = 0) -> BinlogEvent:
        return BinlogEvent(EventKind.QUERY, next_position=next_position, byte_length=byte_length)

    @staticmethod
    def table_map(next_position: int, byte_length: int = 0) -> BinlogEvent:
        return BinlogEvent(EventKind.TABLE_MAP, next_position=next_position, byte_length=byte_length)

    @staticmethod
    def row(next_position: int, byte_length: int = 0) -> BinlogEvent:
        return BinlogEvent(EventKind.ROW, next_position=next_position, byte_length=byte_length)

    @staticmethod
    def xid(next_position: int, byte_length: int = 0) -> BinlogEvent:
        return BinlogEvent(EventKind.XID, next_position=next_position, byte_length=byte_length)

    @staticmethod
    def format() -> BinlogEvent:
        return BinlogEvent(EventKind.FORMAT, next_position=0)

    @staticmethod
    def unknown(next_position: int) -> BinlogEvent:
        return BinlogEvent(EventKind.UNKNOWN, next_position=next_position)


@pytest.fixture
def events():
    """Event factory."""
    return Events


@pytest.fixture
def fake_source_class():
    """Fake replication source class."""
    return FakeBinlogSource
