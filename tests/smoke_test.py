import unittest
import numpy as np
import pandas as pd
from pyfrontier import moments, optimization, portfolioapi
from pyfrontier.utils import functions, validation


class TestSmoke(unittest.TestCase):

    def setUp(self):
        self.T = 120
        self.N = 5
        rng = np.random.default_rng(11)
        self.returns_array = (rng.random((self.T, self.N)) - 0.5) / 10
        self.returns_df = pd.DataFrame(self.returns_array, columns=[f'Asset_{i}' for i in range(self.N)])

    def test_estimate_sample_moments(self):
        mu, cov = moments.estimate_sample_moments(self.returns_df)
        self.assertEqual(mu.shape, (self.N,))
        self.assertEqual(cov.shape, (self.N, self.N))
        self.assertIsInstance(mu, pd.Series)
        self.assertIsInstance(cov, pd.DataFrame)

        mu_np, cov_np = moments.estimate_sample_moments(self.returns_array)
        self.assertIsInstance(mu_np, np.ndarray)
        self.assertTrue(validation.is_positive_definite(cov_np))

    def test_global_minimum_variance(self):
        mu, cov = moments.estimate_sample_moments(self.returns_array)
        w = optimization.MeanVariance(mu, cov).efficient_portfolio()
        w = functions.clean_weights(w, non_negative=True)
        self.assertTrue(validation.check_weights_sum_to_one(w))
        self.assertTrue(validation.check_non_negativity(w))

    def test_efficient_frontier(self):
        config = portfolioapi.FrontierConfig(increment=20)
        frontier = portfolioapi.efficient_frontier(self.returns_df, config)
        self.assertEqual(len(frontier), 20)
        self.assertEqual(frontier.to_frame().shape, (20, self.N + 3))
        for point in frontier:
            self.assertAlmostEqual(point.weights.sum(), 1.0, places=6)
            self.assertTrue(np.all(point.weights >= 0))
        self.assertTrue(np.all(np.diff(frontier.risks) >= -1e-6))


if __name__ == '__main__':
    unittest.main()
