"""Properties of the backoff / give-up policy."""
from __future__ import annotations

import unittest

from netauth.retry import RetryPolicy


class RetryPolicyTest(unittest.TestCase):
    def test_backoff_is_non_decreasing_and_capped(self) -> None:
        policy = RetryPolicy(base_interval=5.0, max_interval=300.0, max_attempts=20)
        delays = [policy.backoff(n) for n in range(200)]
        self.assertEqual(delays[0], 5.0)
        self.assertEqual(delays[1], 10.0)
        self.assertEqual(delays[3], 40.0)
        for earlier, later in zip(delays, delays[1:]):
            self.assertLessEqual(earlier, later)
        self.assertTrue(all(delay <= 300.0 for delay in delays))
        self.assertEqual(delays[-1], 300.0)

    def test_huge_failure_counts_do_not_overflow(self) -> None:
        policy = RetryPolicy(base_interval=1.0, max_interval=60.0)
        self.assertEqual(policy.backoff(10_000), 60.0)

    def test_give_up_boundary_is_exact(self) -> None:
        for max_attempts in (1, 3, 20):
            policy = RetryPolicy(max_attempts=max_attempts)
            for n in range(max_attempts):
                self.assertFalse(policy.give_up(n), (max_attempts, n))
            for n in range(max_attempts, max_attempts + 5):
                self.assertTrue(policy.give_up(n), (max_attempts, n))

    def test_invalid_counts_fail_loudly(self) -> None:
        policy = RetryPolicy()
        with self.assertRaises(ValueError):
            policy.backoff(-1)
        with self.assertRaises(ValueError):
            policy.give_up(-3)
        with self.assertRaises(TypeError):
            policy.backoff(1.5)  # type: ignore[arg-type]
        with self.assertRaises(TypeError):
            policy.give_up(True)  # type: ignore[arg-type]

    def test_invalid_construction_is_rejected(self) -> None:
        with self.assertRaises(ValueError):
            RetryPolicy(base_interval=0)
        with self.assertRaises(ValueError):
            RetryPolicy(base_interval=10, max_interval=5)
        with self.assertRaises(ValueError):
            RetryPolicy(max_attempts=0)


if __name__ == "__main__":
    unittest.main()
