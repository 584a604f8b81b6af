import threading
from collections import deque
from typing import Dict, List, Optional

from .aggregator import TransactionPipelineAggregator
from .config import InspectorConfig
from .epoch_sync import EpochSyncLoop
from .hooks import HookEvents, HookManager
from .metrics import MetricsTracker
from .models import TransactionView
from .node_state import NodeStateSnapshot, NodeStateStore
from .proxies import RemoteNodeClient, open_client
from .shard_key import ShardKeyResolver


class InspectorSession:
    """
    Owns everything an inspector view needs for one node: the client, the
    epoch sync loop, the shard key resolver and the transaction aggregator.
    Closing the session stops the loop and releases the channel.
    """

    def __init__(self, config: InspectorConfig, client: Optional[RemoteNodeClient] = None):
        self._config = config
        self._client = client or open_client(config.node, config.client)
        self._log_buffer = deque(maxlen=50)
        self._log_lock = threading.Lock()

        self._hooks = HookManager(name=f"HookManager-{config.node.address}")
        self._state = NodeStateStore(self._hooks)
        self._metrics = MetricsTracker()
        self._sync = EpochSyncLoop(
            self._client,
            self._state,
            refresh_interval=config.sync.refresh_interval,
        )
        self._resolver = ShardKeyResolver(
            self._client,
            self._state,
            epoch_height_multiplier=config.sync.epoch_height_multiplier,
        )
        self._aggregator = TransactionPipelineAggregator(
            self._client,
            max_workers=config.aggregator.max_workers,
            partial_results=config.aggregator.partial_results,
            metrics=self._metrics,
            hooks=self._hooks,
        )

        self._hooks.register_hook(HookEvents.EPOCH_CHANGED, self._resolver.on_state_changed, priority=10)
        self._hooks.register_hook(HookEvents.IDENTITY_LOADED, self._resolver.on_state_changed, priority=10)
        self._hooks.register_hook(HookEvents.EPOCH_CHANGED, self._on_epoch_changed)
        self._hooks.register_hook(HookEvents.SHARD_KEY_CHANGED, self._on_shard_key_changed)
        self._hooks.register_hook(HookEvents.SHARD_KEY_FAILED, self._on_shard_key_failed)
        self._hooks.register_hook(HookEvents.SYNC_FAILED, self._on_sync_failed)
        self._hooks.register_hook(HookEvents.TRANSACTION_FAILED, self._on_transaction_failed)
        self._closed = False

    @property
    def hooks(self) -> HookManager:
        return self._hooks

    @property
    def sync_loop(self) -> EpochSyncLoop:
        return self._sync

    @property
    def resolver(self) -> ShardKeyResolver:
        return self._resolver

    def start(self) -> "InspectorSession":
        self._sync.start()
        self._add_log(f"[Session] started for {self._config.node.address}")
        return self

    def sync_once(self) -> NodeStateSnapshot:
        """Run one epoch/identity sync and shard key derivation in the calling thread."""
        if self._state.snapshot().identity is None:
            self._sync.load_identity()
        self._sync.refresh_now()
        self._resolver.resolve()
        return self._state.snapshot()

    def snapshot(self) -> NodeStateSnapshot:
        return self._state.snapshot()

    def load_transaction_view(
        self, transaction_id: str, allow_partial: Optional[bool] = None
    ) -> TransactionView:
        return self._aggregator.load_transaction_view(transaction_id, allow_partial=allow_partial)

    def recent_transactions(self) -> List[Dict[str, object]]:
        return self._client.get_recent_transactions()

    def status(self) -> Dict[str, object]:
        return {
            "node": self._config.node.address,
            "state": self._state.snapshot().to_dict(),
            "sync_running": self._sync.running,
            "metrics": self._metrics.snapshot(),
            "hooks": self._hooks.get_stats(),
            "recent_logs": self._get_recent_logs(),
        }

    def _add_log(self, message: str) -> None:
        print(message, flush=True)
        with self._log_lock:
            self._log_buffer.append(message)

    def _get_recent_logs(self, max_lines: int = 10) -> List[str]:
        with self._log_lock:
            return list(self._log_buffer)[-max_lines:]

    def _on_epoch_changed(self, snapshot: NodeStateSnapshot, **kwargs):
        self._add_log(f"[Session] epoch is now {snapshot.epoch.current_epoch}")

    def _on_shard_key_changed(self, snapshot: NodeStateSnapshot, **kwargs):
        self._add_log(f"[Session] shard key is now {snapshot.shard_key}")

    def _on_shard_key_failed(self, message: str, **kwargs):
        self._add_log(f"[Session] shard key lookup failed: {message}")

    def _on_sync_failed(self, message: str, source: str, **kwargs):
        self._add_log(f"[Session] {source} sync failed: {message}")

    def _on_transaction_failed(self, transaction_id: str, error: str, **kwargs):
        self._add_log(f"[Session] transaction {transaction_id} could not be loaded: {error}")

    def close(self):
        """Session teardown: stop scheduling polls, drain pools, close the channel."""
        if self._closed:
            return
        self._closed = True
        self._sync.stop()
        self._aggregator.shutdown()
        self._hooks.shutdown()
        self._client.close()
        print(f"[Session] closed for {self._config.node.address}", flush=True)

    def __enter__(self) -> "InspectorSession":
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
