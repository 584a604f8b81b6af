import unittest
from unittest.mock import MagicMock

from vn_inspector.hooks import HookEvents, HookManager
from vn_inspector.models import EpochSnapshot, IdentitySnapshot
from vn_inspector.node_state import NodeStateSnapshot, NodeStateStore


class TestNodeStateStore(unittest.TestCase):
    def setUp(self):
        self.hooks = MagicMock()
        self.store = NodeStateStore(self.hooks)

    def test_initial_snapshot_is_empty(self):
        snapshot = self.store.snapshot()
        self.assertIsNone(snapshot.epoch)
        self.assertIsNone(snapshot.shard_key)
        self.assertIsNone(snapshot.shard_key_inputs)
        self.assertEqual(snapshot.error, "")

    def test_snapshots_are_replaced_not_mutated(self):
        before = self.store.snapshot()
        self.store.publish_epoch(EpochSnapshot(3), self.store.next_epoch_request())
        after = self.store.snapshot()
        self.assertIsNone(before.epoch)
        self.assertIsNot(before, after)
        self.assertGreater(after.version, before.version)

    def test_stale_poll_cannot_overwrite_newer_epoch(self):
        print("\nTesting NodeState: out-of-order epoch completions")
        older = self.store.next_epoch_request()
        newer = self.store.next_epoch_request()

        self.assertTrue(self.store.publish_epoch(EpochSnapshot(8), newer))
        self.assertFalse(self.store.publish_epoch(EpochSnapshot(7), older))
        self.assertEqual(self.store.snapshot().epoch.current_epoch, 8)

    def test_shard_key_for_superseded_inputs_is_dropped(self):
        identity = IdentitySnapshot(public_key=b"\x01")
        self.store.publish_identity(identity)
        self.store.publish_epoch(EpochSnapshot(2), self.store.next_epoch_request())
        self.store.publish_epoch(EpochSnapshot(3), self.store.next_epoch_request())

        self.assertFalse(self.store.publish_shard_key("old", (2, b"\x01")))
        self.assertTrue(self.store.publish_shard_key("new", (3, b"\x01")))
        self.assertEqual(self.store.snapshot().shard_key, "new")

    def test_last_error_wins(self):
        self.store.record_error("first", NodeStateStore.SOURCE_EPOCH)
        self.store.record_error("second", NodeStateStore.SOURCE_IDENTITY)
        snapshot = self.store.snapshot()
        self.assertEqual(snapshot.error, "second")
        self.assertEqual(snapshot.error_source, NodeStateStore.SOURCE_IDENTITY)
        events = [c.args[0] for c in self.hooks.trigger_hook.call_args_list]
        self.assertEqual(events, [HookEvents.SYNC_FAILED, HookEvents.SYNC_FAILED])

    def test_shard_key_error_cleared_on_success(self):
        self.store.publish_identity(IdentitySnapshot(public_key=b"\x01"))
        self.store.publish_epoch(EpochSnapshot(1), self.store.next_epoch_request())
        self.store.record_shard_key_error("lookup failed")
        self.store.publish_shard_key("k", (1, b"\x01"))
        snapshot = self.store.snapshot()
        self.assertEqual(snapshot.shard_key_error, "")
        self.assertEqual(snapshot.shard_key, "k")

    def test_to_dict(self):
        self.store.publish_identity(IdentitySnapshot(public_key=b"\xab"))
        payload = self.store.snapshot().to_dict()
        self.assertEqual(payload["public_key"], "ab")
        self.assertIsNone(payload["current_epoch"])


class TestHookBroadcast(unittest.TestCase):
    def test_subscribers_receive_new_snapshot(self):
        hooks = HookManager(max_workers=1, name="test-hooks")
        received = []
        hooks.register_hook(HookEvents.EPOCH_CHANGED, lambda snapshot: received.append(snapshot))
        store = NodeStateStore(hooks)

        store.publish_epoch(EpochSnapshot(4), store.next_epoch_request())
        hooks.shutdown(wait=True)

        self.assertEqual(len(received), 1)
        self.assertIsInstance(received[0], NodeStateSnapshot)
        self.assertEqual(received[0].epoch.current_epoch, 4)

    def test_failing_callback_is_counted(self):
        hooks = HookManager(max_workers=1, name="test-hooks")

        def broken(**kwargs):
            raise RuntimeError("nope")

        hooks.register_hook(HookEvents.SYNC_FAILED, broken)
        results = hooks.trigger_hook_sync(HookEvents.SYNC_FAILED, message="m", source="epoch")
        hooks.shutdown()
        self.assertEqual(results, [None])
        self.assertEqual(hooks.get_stats()[HookEvents.SYNC_FAILED]["errors"], 1)


if __name__ == "__main__":
    unittest.main()
