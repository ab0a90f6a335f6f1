"""
CDC (Change Data Capture) module for MySQL binlog replication.
"""

from .errors import CDCError, BinlogTransportError, BinlogConnectionError, CheckpointError
from .events import BinlogEvent, EventKind
from .position_store import LogPosition, PositionStore, Checkpoint
from .overflow import OverflowCorrector, OverflowState
from .retry import RetryController, RetryState
from .tracker import CheckpointTracker, should_deliver
from .dispatcher import EventDispatcher
from .source import BinlogSource
from .mysql_source import MySQLBinlogSource, mysql_url
from .replicator import BinlogReplicator, LoopState

__all__ = [
    "CDCError",
    "BinlogTransportError",
    "BinlogConnectionError",
    "CheckpointError",
    "BinlogEvent",
    "EventKind",
    "LogPosition",
    "PositionStore",
    "Checkpoint",
    "OverflowCorrector",
    "OverflowState",
    "RetryController",
    "RetryState",
    "CheckpointTracker",
    "should_deliver",
    "EventDispatcher",
    "BinlogSource",
    "MySQLBinlogSource",
    "mysql_url",
    "BinlogReplicator",
    "LoopState",
]
