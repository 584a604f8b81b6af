"""Error types raised by the inspector core."""

from typing import Optional


class InspectorError(Exception):
    """Base class for inspector failures."""


class RemoteCallError(InspectorError):
    """A query against the node failed (transport, timeout, decode or remote error)."""

    def __init__(self, method: str, detail: str):
        super().__init__(f"{method} failed: {detail}")
        self.method = method
        self.detail = detail


class AggregationError(InspectorError):
    """A transaction view could not be assembled."""

    def __init__(self, transaction_id: str, detail: str, shard: Optional[str] = None):
        where = f" (shard {shard})" if shard else ""
        super().__init__(f"transaction {transaction_id}{where}: {detail}")
        self.transaction_id = transaction_id
        self.shard = shard
        self.detail = detail
