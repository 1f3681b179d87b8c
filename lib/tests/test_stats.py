import unittest

from kstorclient.stats import ConnStats


class ConnStatsTests(unittest.TestCase):
    def test_empty_summary(self):
        self.assertEqual(
            ConnStats().summary(),
            {"count": 0, "mean_us": 0.0, "p50_us": 0.0, "p99_us": 0.0},
        )

    def test_summary(self):
        stats = ConnStats()
        for us in range(1, 101):
            stats.on_exchange(float(us))
        summary = stats.summary()
        self.assertEqual(summary["count"], 100)
        self.assertAlmostEqual(summary["mean_us"], 50.5)
        self.assertAlmostEqual(summary["p50_us"], 50.5)
        self.assertAlmostEqual(summary["p99_us"], 99.01)

    def test_counters(self):
        stats = ConnStats()
        stats.on_sent(32)
        stats.on_recv(16)
        stats.on_recv(16)
        self.assertEqual((stats.sent, stats.sent_bytes), (1, 32))
        self.assertEqual((stats.recv, stats.recv_bytes), (2, 32))


if __name__ == "__main__":
    unittest.main()
