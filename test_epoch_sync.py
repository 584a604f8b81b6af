import threading
import time
import unittest
from unittest.mock import MagicMock

from vn_inspector.epoch_sync import EpochSyncLoop
from vn_inspector.errors import RemoteCallError
from vn_inspector.hooks import HookEvents
from vn_inspector.models import EpochSnapshot, IdentitySnapshot
from vn_inspector.node_state import NodeStateStore
from vn_inspector.proxies import RemoteNodeClient


class TestEpochSyncLoop(unittest.TestCase):
    def setUp(self):
        self.client = MagicMock(spec=RemoteNodeClient)
        self.client.address = "localhost:18200"
        self.client.get_identity.return_value = IdentitySnapshot(public_key=b"\x01")
        self.hooks = MagicMock()
        self.state = NodeStateStore(self.hooks)
        self.loop = EpochSyncLoop(self.client, self.state, refresh_interval=0.05)

    def tearDown(self):
        self.loop.stop()

    def _epoch_events(self):
        return [
            c for c in self.hooks.trigger_hook.call_args_list
            if c.args[0] == HookEvents.EPOCH_CHANGED
        ]

    def test_repeated_epoch_publishes_once(self):
        print("\nTesting EpochSync: identical polls publish once")
        self.client.get_epoch_stats.return_value = EpochSnapshot(current_epoch=5)

        self.assertTrue(self.loop.refresh_now())
        self.assertFalse(self.loop.refresh_now())

        self.assertEqual(self.state.snapshot().epoch, EpochSnapshot(current_epoch=5))
        self.assertEqual(len(self._epoch_events()), 1)

    def test_changed_epoch_publishes_again(self):
        self.client.get_epoch_stats.side_effect = [
            EpochSnapshot(current_epoch=5),
            EpochSnapshot(current_epoch=6),
            EpochSnapshot(current_epoch=6),
        ]
        results = [self.loop.refresh_now() for _ in range(3)]
        self.assertEqual(results, [True, True, False])
        self.assertEqual(self.state.snapshot().epoch.current_epoch, 6)

    def test_failure_sets_sticky_error_and_keeps_snapshot(self):
        self.client.get_epoch_stats.side_effect = [
            EpochSnapshot(current_epoch=5),
            RemoteCallError("GetEpochManagerStats", "unavailable"),
        ]
        self.loop.refresh_now()
        self.assertFalse(self.loop.refresh_now())

        snapshot = self.state.snapshot()
        self.assertEqual(snapshot.epoch.current_epoch, 5)
        self.assertIn("unavailable", snapshot.error)
        self.assertEqual(snapshot.error_source, NodeStateStore.SOURCE_EPOCH)

    def test_success_clears_error_from_same_source(self):
        self.client.get_epoch_stats.side_effect = [
            RemoteCallError("GetEpochManagerStats", "unavailable"),
            EpochSnapshot(current_epoch=5),
        ]
        self.loop.refresh_now()
        self.assertTrue(self.state.snapshot().error)
        self.loop.refresh_now()
        self.assertEqual(self.state.snapshot().error, "")

    def test_identity_failure_is_recorded(self):
        self.client.get_identity.side_effect = RemoteCallError("GetIdentity", "refused")
        self.assertFalse(self.loop.load_identity())
        snapshot = self.state.snapshot()
        self.assertIsNone(snapshot.identity)
        self.assertEqual(snapshot.error_source, NodeStateStore.SOURCE_IDENTITY)

    def test_identity_failure_not_cleared_by_epoch_success(self):
        self.client.get_identity.side_effect = RemoteCallError("GetIdentity", "refused")
        self.client.get_epoch_stats.return_value = EpochSnapshot(current_epoch=1)
        self.loop.load_identity()
        self.loop.refresh_now()
        self.assertIn("refused", self.state.snapshot().error)

    def test_loop_polls_at_startup_and_on_interval(self):
        print("\nTesting EpochSync: background loop keeps ticking through failures")
        self.client.get_epoch_stats.side_effect = RemoteCallError("GetEpochManagerStats", "down")

        self.loop.start()
        time.sleep(0.3)
        self.loop.stop()

        self.assertGreaterEqual(self.client.get_epoch_stats.call_count, 2)
        self.client.get_identity.assert_called_once()
        self.assertFalse(self.loop.running)

    def test_unexpected_error_does_not_kill_loop(self):
        print("\nTesting EpochSync: a non-remote error is recorded and polling continues")
        self.client.get_epoch_stats.side_effect = (
            [ValueError("boom")] + [EpochSnapshot(current_epoch=5)] * 100
        )
        errors = []
        record_error = self.state.record_error

        def capture(message, source):
            errors.append((message, source))
            return record_error(message, source)

        self.state.record_error = capture

        self.loop.start()
        time.sleep(0.3)
        self.loop.stop()

        self.assertGreaterEqual(self.client.get_epoch_stats.call_count, 2)
        self.assertEqual(self.state.snapshot().epoch.current_epoch, 5)
        self.assertEqual(len(errors), 1)
        self.assertIn("boom", errors[0][0])
        self.assertEqual(errors[0][1], NodeStateStore.SOURCE_EPOCH)

    def test_stop_ends_scheduling(self):
        self.client.get_epoch_stats.return_value = EpochSnapshot(current_epoch=1)
        self.loop.start()
        time.sleep(0.1)
        self.loop.stop()
        calls = self.client.get_epoch_stats.call_count
        time.sleep(0.15)
        self.assertEqual(self.client.get_epoch_stats.call_count, calls)

    def test_restart_during_slow_poll_leaves_one_poller(self):
        entered = threading.Event()
        release = threading.Event()
        callers = []

        def slow_poll():
            callers.append(threading.get_ident())
            entered.set()
            release.wait(2.0)
            return EpochSnapshot(current_epoch=1)

        self.client.get_epoch_stats.side_effect = slow_poll

        self.loop.start()
        self.assertTrue(entered.wait(1.0))
        first_thread = callers[0]
        self.loop.stop(timeout=0.05)
        self.loop.start()
        release.set()
        time.sleep(0.3)
        self.loop.stop()

        self.assertEqual(callers.count(first_thread), 1)
        self.assertGreaterEqual(len(callers), 3)


if __name__ == "__main__":
    unittest.main()
