"""
Exceptions raised by the binlog replication client.
"""


class CDCError(Exception):
    """Base exception for CDC errors."""
    pass


class BinlogTransportError(CDCError):
    """Connection to the replication source dropped or failed."""
    pass


class BinlogConnectionError(BinlogTransportError):
    """Replication handshake was refused."""
    pass


class CheckpointError(CDCError):
    """Error saving/loading checkpoint."""
    pass
