"""Tests for scene duration reconciliation."""

from __future__ import annotations

import unittest

from storygen.durations import (
    EXACT_TOLERANCE,
    find_closest_duration,
    reconcile_durations,
    reconcile_scenes,
    supported_durations,
)
from storygen.errors import ReconciliationError
from storygen.types import Scene

SEEDANCE = [2, 4, 5, 6, 8, 10, 12]


class FindClosestDurationTest(unittest.TestCase):
    def test_ties_prefer_lower_value(self) -> None:
        self.assertEqual(find_closest_duration(3, SEEDANCE), 2)
        self.assertEqual(find_closest_duration(7, SEEDANCE), 6)
        self.assertEqual(find_closest_duration(9, SEEDANCE), 8)

    def test_exact_and_out_of_range_values(self) -> None:
        self.assertEqual(find_closest_duration(5, SEEDANCE), 5)
        self.assertEqual(find_closest_duration(30, SEEDANCE), 12)
        self.assertEqual(find_closest_duration(0.5, SEEDANCE), 2)

    def test_unknown_model_is_unconstrained(self) -> None:
        self.assertIsNone(supported_durations("no-such-model"))
        self.assertIsNone(supported_durations(None))
        self.assertEqual(supported_durations("klingai-2.5-turbo-pro"), [5, 10])


class DiscreteReconcileTest(unittest.TestCase):
    def test_reference_fixture(self) -> None:
        """[3,7,9,4,6] toward 30 snaps to [2,6,8,4,6] and then steps up."""
        outcome = reconcile_durations([3, 7, 9, 4, 6], 30, SEEDANCE)

        self.assertTrue(outcome.ok)
        self.assertEqual(outcome.durations, [4, 8, 8, 4, 6])
        self.assertEqual(outcome.total, 30)

    def test_results_stay_in_allowed_set(self) -> None:
        cases = [
            ([5, 5, 5, 5], 24),
            ([12, 12, 12], 30),
            ([6, 6, 6, 6, 6], 30),
            ([4, 4, 4, 4, 4, 4], 30),
        ]
        for durations, target in cases:
            with self.subTest(durations=durations, target=target):
                outcome = reconcile_durations(durations, target, SEEDANCE)
                for value in outcome.durations:
                    self.assertIn(value, SEEDANCE)
                if outcome.ok:
                    self.assertLess(abs(sum(outcome.durations) - target), EXACT_TOLERANCE)

    def test_shrinking_prefers_longest_scene(self) -> None:
        outcome = reconcile_durations([6, 12, 6, 8], 30, SEEDANCE)

        self.assertTrue(outcome.ok)
        self.assertEqual(outcome.durations, [6, 10, 6, 8])

    def test_residual_within_two_seconds_is_accepted(self) -> None:
        outcome = reconcile_durations([5, 5, 5], 17, [5, 10])

        self.assertFalse(outcome.ok)
        self.assertTrue(outcome.accepted)
        self.assertEqual(outcome.durations, [5, 5, 5])
        self.assertEqual(outcome.residual, 2)

    def test_residual_above_two_seconds_is_rejected(self) -> None:
        outcome = reconcile_durations([5, 5, 5], 18, [5, 10])

        self.assertFalse(outcome.ok)
        self.assertFalse(outcome.accepted)


class FreeReconcileTest(unittest.TestCase):
    def test_growing_moves_longest_first_by_two_seconds(self) -> None:
        outcome = reconcile_durations([5, 5, 5], 20)

        self.assertTrue(outcome.ok)
        self.assertEqual(outcome.durations, [7, 7, 6])

    def test_shrinking_respects_floor(self) -> None:
        outcome = reconcile_durations([6, 3, 8], 14)

        self.assertTrue(outcome.ok)
        self.assertEqual(outcome.durations, [5, 3, 6])

    def test_small_difference_is_left_alone(self) -> None:
        outcome = reconcile_durations([10, 10, 9.8], 30)

        self.assertTrue(outcome.ok)
        self.assertEqual(outcome.durations, [10, 10, 9.8])

    def test_input_is_not_modified(self) -> None:
        durations = [5.0, 5.0, 5.0]
        reconcile_durations(durations, 20)
        self.assertEqual(durations, [5.0, 5.0, 5.0])


class ReconcileErrorsTest(unittest.TestCase):
    def test_drift_over_ten_seconds_raises(self) -> None:
        with self.assertRaises(ReconciliationError):
            reconcile_durations([5, 5], 30)

    def test_empty_scene_list_raises(self) -> None:
        with self.assertRaises(ReconciliationError):
            reconcile_durations([], 30)

    def test_reconcile_scenes_mutates_targets(self) -> None:
        scenes = [Scene(index=i + 1, target_duration=d) for i, d in enumerate([3, 7, 9, 4, 6])]

        outcome = reconcile_scenes(scenes, 30, SEEDANCE)

        self.assertTrue(outcome.ok)
        self.assertEqual([scene.target_duration for scene in scenes], [4, 8, 8, 4, 6])


if __name__ == "__main__":
    unittest.main()
