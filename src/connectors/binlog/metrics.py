"""
Prometheus metrics for binlog replication.
"""

from prometheus_client import Counter, Gauge

events_total = Counter(
    'relaylog_binlog_events_total',
    'Total binlog events seen by the replicator',
    ['kind', 'outcome']
)

checkpoint_writes_total = Counter(
    'relaylog_checkpoint_writes_total',
    'Total checkpoint file writes',
    ['checkpoint']
)

connection_retries_total = Counter(
    'relaylog_connection_retries_total',
    'Total reconnect attempts after transport failures'
)

position_overflowed = Gauge(
    'relaylog_position_overflowed',
    '1 while the current binlog segment has wrapped its 32-bit position counter'
)
