"""Owned, snapshot-published view of the inspected node's epoch and identity."""

import threading
from dataclasses import dataclass, replace
from typing import Optional, Tuple

from .hooks import HookEvents, HookManager
from .models import EpochSnapshot, IdentitySnapshot


@dataclass(frozen=True)
class NodeStateSnapshot:
    """Immutable view handed to readers. Replaced wholesale on every change."""

    epoch: Optional[EpochSnapshot] = None
    identity: Optional[IdentitySnapshot] = None
    shard_key: Optional[str] = None
    error: str = ""
    error_source: str = ""
    shard_key_error: str = ""
    version: int = 0

    @property
    def shard_key_inputs(self) -> Optional[Tuple[int, bytes]]:
        """The (current_epoch, public_key) pair, or None while either is unknown."""
        if self.epoch is None or self.identity is None:
            return None
        return (self.epoch.current_epoch, self.identity.public_key)

    def to_dict(self):
        return {
            "current_epoch": self.epoch.current_epoch if self.epoch else None,
            "public_key": self.identity.public_key_hex if self.identity else None,
            "shard_key": self.shard_key,
            "error": self.error,
            "shard_key_error": self.shard_key_error,
            "version": self.version,
        }


class NodeStateStore:
    """Single writer-side owner of NodeStateSnapshot; broadcasts changes through hooks."""

    SOURCE_EPOCH = "epoch"
    SOURCE_IDENTITY = "identity"

    def __init__(self, hooks: Optional[HookManager] = None):
        self._hooks = hooks
        self._lock = threading.Lock()
        self._snapshot = NodeStateSnapshot()
        self._epoch_seq = 0
        self._applied_epoch_seq = -1

    def snapshot(self) -> NodeStateSnapshot:
        with self._lock:
            return self._snapshot

    def next_epoch_request(self) -> int:
        """Allocate a sequence number for an epoch poll about to be issued."""
        with self._lock:
            seq = self._epoch_seq
            self._epoch_seq += 1
            return seq

    def _swap(self, **changes) -> NodeStateSnapshot:
        self._snapshot = replace(self._snapshot, version=self._snapshot.version + 1, **changes)
        return self._snapshot

    def _clear_error_for(self, source: str) -> dict:
        if self._snapshot.error and self._snapshot.error_source == source:
            return {"error": "", "error_source": ""}
        return {}

    def publish_epoch(self, epoch: EpochSnapshot, request_seq: int) -> bool:
        """Apply a polled epoch. Returns True only if a new EpochSnapshot was published."""
        with self._lock:
            if request_seq < self._applied_epoch_seq:
                # An older poll completed after a newer one.
                return False
            self._applied_epoch_seq = request_seq
            changes = self._clear_error_for(self.SOURCE_EPOCH)
            current = self._snapshot.epoch
            changed = current is None or current.current_epoch != epoch.current_epoch
            if changed:
                changes["epoch"] = epoch
            if not changes:
                return False
            snapshot = self._swap(**changes)

        if changed and self._hooks is not None:
            self._hooks.trigger_hook(HookEvents.EPOCH_CHANGED, snapshot=snapshot)
        return changed

    def publish_identity(self, identity: IdentitySnapshot) -> NodeStateSnapshot:
        with self._lock:
            changes = self._clear_error_for(self.SOURCE_IDENTITY)
            snapshot = self._swap(identity=identity, **changes)
        if self._hooks is not None:
            self._hooks.trigger_hook(HookEvents.IDENTITY_LOADED, snapshot=snapshot)
        return snapshot

    def publish_shard_key(self, shard_key: Optional[str], inputs: Tuple[int, bytes]) -> bool:
        """Store a resolved shard key unless its inputs have since been superseded."""
        with self._lock:
            if self._snapshot.shard_key_inputs != inputs:
                return False
            changed = shard_key != self._snapshot.shard_key
            if not changed and not self._snapshot.shard_key_error:
                return False
            snapshot = self._swap(shard_key=shard_key, shard_key_error="")
        if changed and self._hooks is not None:
            self._hooks.trigger_hook(HookEvents.SHARD_KEY_CHANGED, snapshot=snapshot)
        return changed

    def record_error(self, message: str, source: str) -> NodeStateSnapshot:
        """Set the sticky error flag. The last error wins."""
        with self._lock:
            snapshot = self._swap(error=message, error_source=source)
        if self._hooks is not None:
            self._hooks.trigger_hook(HookEvents.SYNC_FAILED, message=message, source=source)
        return snapshot

    def record_shard_key_error(self, message: str) -> NodeStateSnapshot:
        with self._lock:
            snapshot = self._swap(shard_key_error=message)
        if self._hooks is not None:
            self._hooks.trigger_hook(HookEvents.SHARD_KEY_FAILED, message=message)
        return snapshot
