"""Background polling of the node's epoch and identity."""

import threading
from typing import Optional

from .errors import RemoteCallError
from .node_state import NodeStateStore
from .proxies import RemoteNodeClient


class EpochSyncLoop:
    """Polls epoch stats on a fixed interval and publishes changes to the state store."""

    def __init__(
        self,
        client: RemoteNodeClient,
        state: NodeStateStore,
        refresh_interval: float = 120.0,
        name: str = "EpochSync",
    ):
        self._client = client
        self._state = state
        self._interval = refresh_interval
        self._name = name

        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._ticks = 0
        self._lock = threading.Lock()

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def ticks(self) -> int:
        with self._lock:
            return self._ticks

    def start(self):
        """Start the polling thread. The first iteration runs immediately."""
        if self.running:
            return
        # Each run owns its event, so a thread still finishing an old poll stays stopped.
        self._stop_event = threading.Event()
        self._thread = threading.Thread(
            target=self._sync_loop, args=(self._stop_event,), name=self._name, daemon=True
        )
        self._thread.start()
        print(f"[EpochSync] polling {self._client.address} every {self._interval:.0f}s", flush=True)

    def stop(self, timeout: float = 2.0):
        """Stop scheduling further polls. A poll already in flight is left to finish."""
        self._stop_event.set()
        if self._thread:
            self._thread.join(timeout=timeout)
        self._thread = None

    def _sync_loop(self, stop_event: threading.Event):
        try:
            self.load_identity()
        except Exception as e:
            print(f"[EpochSync] Error loading identity: {e}", flush=True)
            self._state.record_error(f"Identity fetch error ({e})", NodeStateStore.SOURCE_IDENTITY)

        while not stop_event.is_set():
            try:
                self.refresh_now()
            except Exception as e:
                print(f"[EpochSync] Error in sync loop: {e}", flush=True)
                self._state.record_error(f"Epoch poll error ({e})", NodeStateStore.SOURCE_EPOCH)
            if stop_event.wait(self._interval):
                break

    def refresh_now(self) -> bool:
        """Poll epoch stats once. Returns True if a new epoch was published."""
        seq = self._state.next_epoch_request()
        with self._lock:
            self._ticks += 1
        try:
            epoch = self._client.get_epoch_stats()
        except RemoteCallError as exc:
            print(f"[EpochSync] epoch poll failed: {exc}", flush=True)
            self._state.record_error(
                f"Remote call error, please check logs ({exc})", NodeStateStore.SOURCE_EPOCH
            )
            return False

        published = self._state.publish_epoch(epoch, seq)
        if published:
            print(f"[EpochSync] epoch changed: current_epoch={epoch.current_epoch}", flush=True)
        return published

    def load_identity(self) -> bool:
        """One-shot identity fetch; there is no periodic refresh."""
        try:
            identity = self._client.get_identity()
        except RemoteCallError as exc:
            print(f"[EpochSync] identity fetch failed: {exc}", flush=True)
            self._state.record_error(
                f"Remote call error, please check logs ({exc})", NodeStateStore.SOURCE_IDENTITY
            )
            return False

        self._state.publish_identity(identity)
        print(f"[EpochSync] identity loaded: public_key={identity.public_key_hex}", flush=True)
        return True
