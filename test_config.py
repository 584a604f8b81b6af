import json
import os
import tempfile
import unittest

from vn_inspector.config import DEFAULT_SERVICE, InspectorConfig


class TestInspectorConfig(unittest.TestCase):
    def test_defaults(self):
        config = InspectorConfig.from_dict({"node": {"host": "127.0.0.1", "port": "18200"}})
        self.assertEqual(config.node.address, "127.0.0.1:18200")
        self.assertEqual(config.node.service, DEFAULT_SERVICE)
        self.assertEqual(config.sync.refresh_interval, 120.0)
        self.assertEqual(config.sync.epoch_height_multiplier, 10)
        self.assertEqual(config.client.timeout, 10.0)
        self.assertEqual(config.client.max_retries, 0)
        self.assertEqual(config.aggregator.max_workers, 8)
        self.assertFalse(config.aggregator.partial_results)

    def test_load_from_file(self):
        payload = {
            "node": {"host": "vn", "port": 1, "service": "svc"},
            "sync": {"refresh_interval": 5, "epoch_height_multiplier": 20},
            "aggregator": {"max_workers": 2, "partial_results": True},
        }
        with tempfile.NamedTemporaryFile("w", suffix=".json", delete=False) as handle:
            json.dump(payload, handle)
        try:
            config = InspectorConfig(handle.name)
        finally:
            os.unlink(handle.name)
        self.assertEqual(config.node.service, "svc")
        self.assertEqual(config.sync.epoch_height_multiplier, 20)
        self.assertTrue(config.aggregator.partial_results)

    def test_missing_file(self):
        with self.assertRaises(FileNotFoundError):
            InspectorConfig("/nonexistent/inspector.json")

    def test_missing_node_fields(self):
        with self.assertRaises(ValueError):
            InspectorConfig.from_dict({})
        with self.assertRaises(ValueError) as cm:
            InspectorConfig.from_dict({"node": {"host": "x"}})
        self.assertIn("port", str(cm.exception))

    def test_invalid_values(self):
        with self.assertRaises(ValueError):
            InspectorConfig.from_dict({"node": {"host": "x", "port": 1}, "aggregator": {"max_workers": 0}})
        with self.assertRaises(ValueError):
            InspectorConfig.from_dict({"node": {"host": "x", "port": 1}, "sync": {"refresh_interval": 0}})


if __name__ == "__main__":
    unittest.main()
