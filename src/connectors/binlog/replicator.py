"""
MySQL binlog replication with crash-safe checkpoints.

Must implement:
1. Connect to the replication source and seek to the saved resume position
2. Pull one event at a time and route it to the registered callback
3. Persist resume/delivered checkpoints synchronously after each event
4. Skip events already delivered before a restart
5. Reconnect on transport failures with a bounded number of retries
6. Stop only between events (never in the middle of a checkpoint write)
"""

import logging
import signal
import threading
import time
from contextlib import contextmanager
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Dict, Iterator, Optional

from ...utils.logging import CorrelationContext, resolve_level
from .dispatcher import EventCallback, EventDispatcher
from .errors import BinlogConnectionError, BinlogTransportError
from .events import EventKind
from .mysql_source import MySQLBinlogSource, mysql_url
from .position_store import Checkpoint, PositionStore
from .retry import DEFAULT_RETRY_LIMIT, DEFAULT_RETRY_WAIT, RetryController, RetryState
from .source import BinlogSource
from .tracker import CheckpointTracker

if TYPE_CHECKING:
    from config.settings import Settings

logger = logging.getLogger(__name__)

SourceFactory = Callable[[], BinlogSource]


class LoopState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    REPLICATING = "replicating"
    STOP_REQUESTED = "stop_requested"
    STOPPED = "stopped"


class BinlogReplicator:
    """
    Stream binlog events to callbacks, resuming from file checkpoints.

    Features:
    - Resume after crashes and restarts (via position files)
    - At most one delivery per event across restarts when a processed
      position file is configured
    - Fixed-wait reconnect on transport failures
    - Graceful stop on signals, honored between events

    Thread Safety: NOT thread-safe. Callbacks run on the calling thread.

    Example:
        >>> replicator = BinlogReplicator(source_factory, position_file="position.log")
        >>> @replicator.on_row_event
        ... def handle(event):
        ...     print(event.payload.rows)
        >>> replicator.start()
    """

    def __init__(
        self,
        source_factory: SourceFactory,
        position_file: Optional[str] = None,
        processed_position_file: Optional[str] = None,
        retry_limit: int = DEFAULT_RETRY_LIMIT,
        retry_wait: float = DEFAULT_RETRY_WAIT,
        sleep: Callable[[float], None] = time.sleep,
        url: Optional[str] = None
    ):
        """
        Initialize replicator.

        Args:
            source_factory: Creates a fresh, unconnected source per connection attempt
            position_file: Resume checkpoint file (optional)
            processed_position_file: Delivered checkpoint file (optional). Without it
                every event after the resume point is delivered.
            retry_limit: Max reconnects per ``start()`` call
            retry_wait: Seconds to wait before each reconnect
            sleep: Sleep function used between retries
            url: Connection URL, for logging only

        Raises:
            CheckpointError: If a position file cannot be opened or parsed
            ValueError: If retry settings are negative
        """
        self.url = url
        self._source_factory = source_factory
        self._source: Optional[BinlogSource] = None
        self.dispatcher = EventDispatcher()
        self.tracker = CheckpointTracker(Checkpoint("resume"), Checkpoint("delivered"))
        self.retry = RetryController(RetryState(limit=retry_limit, wait=retry_wait), sleep=sleep)

        self._state = LoopState.DISCONNECTED
        self._stop = threading.Event()
        self._safe_to_stop = True
        self._original_handlers: Dict[int, Any] = {}

        if position_file:
            self.position_file = position_file
        if processed_position_file:
            self.processed_position_file = processed_position_file

    @classmethod
    def from_settings(
        cls,
        settings: "Settings",
        source_factory: Optional[SourceFactory] = None
    ) -> "BinlogReplicator":
        """Build a replicator from application settings."""
        mysql = settings.mysql

        def mysql_source() -> BinlogSource:
            return MySQLBinlogSource(
                host=mysql.host,
                port=mysql.port,
                user=mysql.user,
                password=mysql.password,
                server_id=mysql.server_id,
                ssl_ca=mysql.ssl_ca,
                ssl_cipher=mysql.ssl_cipher,
                connect_timeout=mysql.connect_timeout
            )

        replicator = cls(
            source_factory or mysql_source,
            position_file=settings.checkpoint.position_file,
            processed_position_file=settings.checkpoint.processed_position_file,
            retry_limit=settings.retry.limit,
            retry_wait=settings.retry.wait,
            url=mysql_url(mysql.user, mysql.host, port=mysql.port)
        )
        replicator.log_level = settings.log_level
        return replicator

    @classmethod
    def run(
        cls,
        options: Dict[str, Any],
        configure: Callable[["BinlogReplicator"], None]
    ) -> "BinlogReplicator":
        """
        Connect with ``options``, let ``configure`` register callbacks, then start.

        The replicator is closed when ``start()`` returns or raises.

        Recognised options: username, password, host, port, server_id,
        ssl_ca, ssl_cipher.
        """
        def mysql_source() -> BinlogSource:
            return MySQLBinlogSource(
                host=options.get("host", "127.0.0.1"),
                port=options.get("port", 3306),
                user=options.get("username", "root"),
                password=options.get("password"),
                server_id=options.get("server_id", 1001),
                ssl_ca=options.get("ssl_ca"),
                ssl_cipher=options.get("ssl_cipher")
            )

        replicator = cls(
            mysql_source,
            url=mysql_url(options.get("username", "root"), options.get("host", "127.0.0.1"), port=options.get("port"))
        )
        with replicator:
            configure(replicator)
            replicator.start()
        return replicator

    # Configuration

    @property
    def position_file(self) -> Optional[str]:
        store = self.tracker.resume.store
        return store.path if store else None

    @position_file.setter
    def position_file(self, path: str) -> None:
        self.tracker.resume.close()
        self.tracker.resume = Checkpoint("resume", PositionStore(path))

    @property
    def processed_position_file(self) -> Optional[str]:
        store = self.tracker.delivered.store
        return store.path if store else None

    @processed_position_file.setter
    def processed_position_file(self, path: str) -> None:
        self.tracker.delivered.close()
        self.tracker.delivered = Checkpoint("delivered", PositionStore(path))

    @property
    def connection_retry_limit(self) -> int:
        return self.retry.state.limit

    @connection_retry_limit.setter
    def connection_retry_limit(self, limit: int) -> None:
        if limit < 0:
            raise ValueError("retry limit must be non-negative")
        self.retry.state.limit = limit

    @property
    def connection_retry_wait(self) -> float:
        return self.retry.state.wait

    @connection_retry_wait.setter
    def connection_retry_wait(self, wait: float) -> None:
        if wait < 0:
            raise ValueError("retry wait must be non-negative")
        self.retry.state.wait = wait

    @property
    def connection_retry_count(self) -> int:
        return self.retry.count

    @property
    def log_level(self) -> int:
        return logging.getLogger(__package__).level

    @log_level.setter
    def log_level(self, level: str) -> None:
        logging.getLogger(__package__).setLevel(resolve_level(level))

    # Callbacks

    def on(self, kind: EventKind, callback: Optional[EventCallback]) -> Optional[EventCallback]:
        self.dispatcher.register(kind, callback)
        return callback

    def on_query_event(self, callback: EventCallback) -> EventCallback:
        return self.on(EventKind.QUERY, callback)

    def on_rotate_event(self, callback: EventCallback) -> EventCallback:
        return self.on(EventKind.ROTATE, callback)

    def on_int_var_event(self, callback: EventCallback) -> EventCallback:
        return self.on(EventKind.INT_VAR, callback)

    def on_user_var_event(self, callback: EventCallback) -> EventCallback:
        return self.on(EventKind.USER_VAR, callback)

    def on_format_event(self, callback: EventCallback) -> EventCallback:
        return self.on(EventKind.FORMAT, callback)

    def on_xid(self, callback: EventCallback) -> EventCallback:
        return self.on(EventKind.XID, callback)

    def on_table_map_event(self, callback: EventCallback) -> EventCallback:
        return self.on(EventKind.TABLE_MAP, callback)

    def on_row_event(self, callback: EventCallback) -> EventCallback:
        return self.on(EventKind.ROW, callback)

    def on_incident_event(self, callback: EventCallback) -> EventCallback:
        return self.on(EventKind.INCIDENT, callback)

    def on_unimplemented_event(self, callback: EventCallback) -> EventCallback:
        return self.on(EventKind.UNIMPLEMENTED, callback)

    # Stop handling

    @property
    def state(self) -> LoopState:
        return self._state

    @property
    def safe_to_stop(self) -> bool:
        return self._safe_to_stop

    @property
    def stop_requested(self) -> bool:
        return self._stop.is_set()

    def stop_request(self) -> None:
        """Ask the loop to stop after the current event. Safe to call from callbacks."""
        self._stop.set()

    def gracefully_stop_on(self, *signals: int) -> None:
        """
        Install stop handlers for ``signals``.

        Between events the process exits at once; in the middle of an event
        only the stop flag is set and the loop exits at the next boundary.
        """
        for signum in signals:
            previous = signal.signal(signum, self._handle_stop_signal)
            self._original_handlers.setdefault(signum, previous)

    def restore_signal_handlers(self) -> None:
        for signum, handler in self._original_handlers.items():
            signal.signal(signum, handler)
        self._original_handlers.clear()

    def _handle_stop_signal(self, signum, frame) -> None:
        if self._safe_to_stop:
            raise SystemExit(0)
        self._stop.set()

    # Replication

    def start(self) -> None:
        """
        Replicate until the stream ends, a stop is requested, or an error is fatal.

        Raises:
            BinlogTransportError: If the connection fails and retries are exhausted.
                This is the last error raised by the source, not re-wrapped here;
                the MySQL source wraps driver errors, which are kept as
                ``__cause__``.
            CheckpointError: If a checkpoint file cannot be written
        """
        self.retry.reset()
        self._stop.clear()

        with CorrelationContext() as session_id:
            logger.info(
                f"Starting binlog replication from {self.tracker.resume.position}",
                extra={
                    "session_id": session_id,
                    "url": self.url,
                    "resume": str(self.tracker.resume.position),
                    "delivered": str(self.tracker.delivered.position),
                    "retry_limit": self.retry.state.limit
                }
            )
            try:
                self.retry.call(self._replicate, should_retry=self._should_retry)
            finally:
                self._close_source()
                self._state = LoopState.STOPPED
                logger.info(
                    f"Binlog replication stopped at {self.tracker.resume.position}",
                    extra={
                        "session_id": session_id,
                        "resume": str(self.tracker.resume.position),
                        "retries": self.retry.count
                    }
                )

    def _replicate(self) -> None:
        self._close_source()
        self._state = LoopState.CONNECTING
        source = self._source_factory()
        self._source = source

        if not source.connect():
            raise BinlogConnectionError("MySQL server has gone away")

        resume = self.tracker.resume
        if resume.valid:
            source.set_position(resume.segment, resume.offset)
            logger.info(
                f"Resuming from {resume.position}",
                extra={"segment": resume.segment, "offset": resume.offset}
            )

        self._state = LoopState.REPLICATING
        while True:
            event = source.wait_for_next_event()
            if event is None:
                logger.info("Binlog stream ended")
                return
            with self._unsafe():
                self.tracker.process_event(event, self.dispatcher)
            if self._stop.is_set():
                self._state = LoopState.STOP_REQUESTED
                logger.info(
                    "Stop requested, leaving replication loop",
                    extra={"resume": str(self.tracker.resume.position)}
                )
                return

    def _should_retry(self, error: BaseException) -> bool:
        if not isinstance(error, BinlogTransportError):
            return False
        logger.debug(f"Transport error: {error}", extra={"error_type": type(error).__name__})
        self._state = LoopState.DISCONNECTED
        return self._source is not None and self._source.closed()

    @contextmanager
    def _unsafe(self) -> Iterator[None]:
        self._safe_to_stop = False
        try:
            yield
        finally:
            self._safe_to_stop = True

    def _close_source(self) -> None:
        if self._source is not None:
            self._source.close()
            self._source = None

    def close(self) -> None:
        """Close checkpoint files and restore signal handlers."""
        self.restore_signal_handlers()
        self.tracker.close()

    def __enter__(self) -> "BinlogReplicator":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
