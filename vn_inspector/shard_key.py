import threading
from typing import Optional, Tuple

from .errors import RemoteCallError
from .node_state import NodeStateSnapshot, NodeStateStore
from .proxies import RemoteNodeClient


class ShardKeyResolver:
    """Derives the node's shard key once both the epoch and the identity are known."""

    def __init__(
        self,
        client: RemoteNodeClient,
        state: NodeStateStore,
        epoch_height_multiplier: int = 10,
    ):
        self._client = client
        self._state = state
        self._multiplier = epoch_height_multiplier
        self._lock = threading.Lock()
        self._resolved_inputs: Optional[Tuple[int, bytes]] = None
        self._lookups = 0

    @property
    def lookups(self) -> int:
        """Number of shard key queries issued so far."""
        return self._lookups

    def epoch_height(self, epoch: int) -> int:
        return epoch * self._multiplier

    def on_state_changed(self, snapshot: Optional[NodeStateSnapshot] = None, **kwargs) -> Optional[str]:
        """Hook entry point for EPOCH_CHANGED / IDENTITY_LOADED."""
        return self.resolve()

    def resolve(self, force: bool = False) -> Optional[str]:
        with self._lock:
            # Hooks may deliver an outdated snapshot; always read the current one.
            snapshot = self._state.snapshot()
            inputs = snapshot.shard_key_inputs
            if inputs is None:
                return snapshot.shard_key
            if inputs == self._resolved_inputs and not force:
                return snapshot.shard_key

            epoch, public_key = inputs
            height = self.epoch_height(epoch)
            self._lookups += 1
            try:
                shard_key = self._client.get_shard_key(height, public_key)
            except RemoteCallError as exc:
                # Keep the stale key; forget the inputs so resolve() can retry.
                self._resolved_inputs = None
                print(f"[ShardKey] lookup failed for epoch {epoch} (height {height}): {exc}", flush=True)
                self._state.record_shard_key_error(str(exc))
                return snapshot.shard_key

            self._resolved_inputs = inputs
            self._state.publish_shard_key(shard_key, inputs)
            print(f"[ShardKey] epoch {epoch} (height {height}) -> {shard_key}", flush=True)
            return shard_key
