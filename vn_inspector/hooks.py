"""Hook system used to broadcast state changes to subscribers."""

import threading
from collections import defaultdict
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable, Dict, List, Optional, Tuple


class HookManager:
    """
    Manages hooks for temporal decoupling.
    Callbacks execute asynchronously on a small worker pool.
    """

    def __init__(self, max_workers: int = 4, name: str = "HookManager"):
        self._name = name
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix=name
        )
        self._hooks: Dict[str, List[Tuple[int, Callable]]] = defaultdict(list)
        self._lock = threading.Lock()
        self._hook_stats: Dict[str, Dict[str, int]] = defaultdict(
            lambda: {"triggered": 0, "errors": 0}
        )

    def register_hook(self, event: str, callback: Callable, priority: int = 0):
        """
        Register a callback for an event.

        Args:
            event: Event name (see HookEvents)
            callback: Function called with the event's keyword arguments
            priority: Higher priority callbacks are submitted first (0 = default)
        """
        with self._lock:
            self._hooks[event].append((priority, callback))
            self._hooks[event].sort(key=lambda x: x[0], reverse=True)

    def trigger_hook(self, event: str, *args, **kwargs) -> List[Future]:
        """
        Trigger all callbacks for an event asynchronously.

        Returns:
            List of Future objects for the triggered callbacks
        """
        with self._lock:
            callbacks = [cb for _, cb in self._hooks.get(event, [])]
            self._hook_stats[event]["triggered"] += len(callbacks)

        futures = []
        for callback in callbacks:
            try:
                futures.append(
                    self._executor.submit(self._safe_call, callback, event, *args, **kwargs)
                )
            except RuntimeError as e:
                # Executor already shut down during session teardown.
                print(f"[HookManager] Error submitting hook '{event}': {e}", flush=True)
                with self._lock:
                    self._hook_stats[event]["errors"] += 1
        return futures

    def _safe_call(self, callback: Callable, event: str, *args, **kwargs):
        try:
            return callback(*args, **kwargs)
        except Exception as e:
            print(f"[HookManager] Hook '{event}' callback error: {e}", flush=True)
            with self._lock:
                self._hook_stats[event]["errors"] += 1
            raise

    def wait_for_hooks(
        self, futures: List[Future], timeout: Optional[float] = None
    ) -> List[Any]:
        """Wait for hook futures; failed callbacks yield None."""
        results = []
        for future in futures:
            try:
                results.append(future.result(timeout=timeout))
            except Exception:
                results.append(None)
        return results

    def trigger_hook_sync(self, event: str, *args, **kwargs) -> List[Any]:
        """Trigger hooks and wait for them to complete."""
        return self.wait_for_hooks(self.trigger_hook(event, *args, **kwargs))

    def get_stats(self) -> Dict[str, Dict[str, int]]:
        with self._lock:
            return {event: dict(stats) for event, stats in self._hook_stats.items()}

    def shutdown(self, wait: bool = True):
        self._executor.shutdown(wait=wait)


class HookEvents:
    """Standard hook event names."""
    EPOCH_CHANGED = "epoch_changed"
    IDENTITY_LOADED = "identity_loaded"
    SHARD_KEY_CHANGED = "shard_key_changed"
    SHARD_KEY_FAILED = "shard_key_failed"
    SYNC_FAILED = "sync_failed"
    TRANSACTION_LOADED = "transaction_loaded"
    TRANSACTION_FAILED = "transaction_failed"
