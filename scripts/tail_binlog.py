#!/usr/bin/env python3
"""
Binlog tail - prints replication events from a MySQL server.

Resumes from position files, so repeated runs continue where the last one
stopped. Ctrl-C stops between events.
"""

import argparse
import logging
import signal
import sys
import time
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from src.connectors.binlog import BinlogReplicator, BinlogEvent  # noqa: E402
from src.utils.logging import configure_logging  # noqa: E402

logger = logging.getLogger(__name__)


def describe(event: BinlogEvent) -> str:
    raw = event.payload
    kind = event.kind.value
    if kind == "query":
        return f"query: {getattr(raw, 'query', '')}"
    if kind == "rotate":
        return f"rotate: {event.new_segment_name} {event.new_offset}"
    if kind == "table_map":
        return f"table_map: {getattr(raw, 'schema', '')}.{getattr(raw, 'table', '')}"
    if kind == "row":
        return f"row: {type(raw).__name__} {getattr(raw, 'rows', [])}"
    return kind


def main():
    parser = argparse.ArgumentParser(description="Print MySQL binlog events")
    parser.add_argument("-u", "--username", default="root", help="MySQL user")
    parser.add_argument("-p", "--password", default=None, help="MySQL password")
    parser.add_argument("-H", "--host", default="127.0.0.1", help="MySQL host")
    parser.add_argument("--port", type=int, default=3306, help="MySQL port")
    parser.add_argument("--server-id", type=int, default=1001, help="Replica server id")
    parser.add_argument("--ssl-ca", default=None, help="CA certificate path")
    parser.add_argument("--ssl-cipher", default=None, help="TLS cipher list")
    parser.add_argument(
        "--position-file",
        default="position.log",
        help="Resume position file"
    )
    parser.add_argument(
        "--processed-position-file",
        default="sent_position.log",
        help="Delivered position file"
    )
    parser.add_argument("--retry-limit", type=int, default=100)
    parser.add_argument("--retry-wait", type=float, default=3.0)
    parser.add_argument(
        "--sleep",
        type=float,
        default=0.0,
        help="Seconds to pause after printing each event"
    )
    parser.add_argument(
        "--log-level",
        default="info",
        choices=["fatal", "error", "warn", "info", "debug"]
    )
    args = parser.parse_args()

    configure_logging(args.log_level)

    options = {
        "username": args.username,
        "password": args.password,
        "host": args.host,
        "port": args.port,
        "server_id": args.server_id,
        "ssl_ca": args.ssl_ca,
        "ssl_cipher": args.ssl_cipher,
    }

    def print_event(event: BinlogEvent) -> None:
        print(describe(event), flush=True)
        if args.sleep:
            time.sleep(args.sleep)

    def configure(replicator: BinlogReplicator) -> None:
        replicator.position_file = args.position_file
        replicator.processed_position_file = args.processed_position_file
        replicator.connection_retry_limit = args.retry_limit
        replicator.connection_retry_wait = args.retry_wait
        replicator.log_level = args.log_level
        replicator.gracefully_stop_on(signal.SIGINT, signal.SIGTERM)

        replicator.on_row_event(print_event)
        replicator.on_query_event(print_event)
        replicator.on_rotate_event(print_event)
        replicator.on_table_map_event(print_event)

    logger.info(
        f"Connecting to {args.host}:{args.port} as {args.username} "
        f"(password {'set' if args.password else 'not set'})"
    )
    try:
        BinlogReplicator.run(options, configure)
    except Exception as e:
        logger.error(f"Replication failed: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
