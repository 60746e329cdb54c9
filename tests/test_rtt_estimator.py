import math
import unittest

from lockcomp.core.rtt_estimator import RTTEstimator


class TestRTTEstimator(unittest.TestCase):
    def setUp(self):
        self.estimator = RTTEstimator(alpha=0.125, beta=0.25, k=2.0)

    def test_uninitialized_buffers_are_zero(self):
        self.assertFalse(self.estimator.is_initialized)
        self.assertEqual(self.estimator.smoothed_rtt, -1.0)
        self.assertEqual(self.estimator.predicted_buffer, 0.0)
        self.assertEqual(self.estimator.variance_buffer, 0.0)

    def test_first_sample_bootstraps_exactly(self):
        self.estimator.add_sample(0.1)
        self.assertEqual(self.estimator.smoothed_rtt, 0.1)
        self.assertEqual(self.estimator.rtt_variance, 0.05)
        self.assertEqual(self.estimator.sample_count, 1)
        self.assertAlmostEqual(self.estimator.variance_buffer, 0.1)
        self.assertAlmostEqual(self.estimator.predicted_buffer, 0.2)

    def test_second_sample_jacobson_karels_update(self):
        self.estimator.add_sample(0.1)
        self.estimator.add_sample(0.2)
        self.assertAlmostEqual(self.estimator.smoothed_rtt, 0.1125)
        self.assertAlmostEqual(self.estimator.rtt_variance, 0.0625)
        self.assertEqual(self.estimator.sample_count, 2)

    def test_invalid_samples_are_ignored(self):
        for bad in (0.0, -0.05, math.nan, math.inf, -math.inf):
            self.estimator.add_sample(bad)
        self.assertFalse(self.estimator.is_initialized)
        self.assertEqual(self.estimator.sample_count, 0)

    def test_low_weight_moves_mean_and_variance_less(self):
        full = RTTEstimator()
        damped = RTTEstimator()
        for est in (full, damped):
            est.add_sample(0.1)

        full.add_sample(0.3, weight=1.0)
        damped.add_sample(0.3, weight=0.25)

        self.assertLess(abs(damped.smoothed_rtt - 0.1), abs(full.smoothed_rtt - 0.1))
        self.assertLess(abs(damped.rtt_variance - 0.05), abs(full.rtt_variance - 0.05))

    def test_smoothed_rtt_is_clamped(self):
        self.estimator.alpha = 1.0
        self.estimator.add_sample(0.01)
        self.estimator.add_sample(1e-6)
        self.assertEqual(self.estimator.smoothed_rtt, 0.001)
        self.assertGreaterEqual(self.estimator.rtt_variance, 0.0)

    def test_invariants_hold_over_many_samples(self):
        samples = [0.02, 0.5, 0.001, 0.3, 0.0004, 0.12, 2.0, 0.05]
        weights = [1.0, 0.5, 0.25, 0.1]
        for i, sample in enumerate(samples * 5):
            self.estimator.add_sample(sample, weights[i % len(weights)])
            self.assertGreaterEqual(self.estimator.smoothed_rtt, 0.001)
            self.assertGreaterEqual(self.estimator.rtt_variance, 0.0)

    def test_reset(self):
        self.estimator.add_sample(0.1)
        self.estimator.reset()
        self.assertEqual(self.estimator.smoothed_rtt, -1.0)
        self.assertEqual(self.estimator.rtt_variance, 0.0)
        self.assertEqual(self.estimator.sample_count, 0)

if __name__ == '__main__':
    unittest.main()
