"""Tests for the permutation test and its seeding."""

import numpy as np
import pytest
from scipy import stats

from ntpredict.domain.exceptions import WorkerFailure
from ntpredict.domain.services.classifier import NearestTemplateClassifier
from ntpredict.domain.services.distance_engine import DistanceEngine
from ntpredict.domain.services.permutation_tester import (
    PermutationTester,
    null_min_distances,
    permutation_p_value,
    sample_generator,
)
from ntpredict.infrastructure.worker_pool import WorkerPool


def observed_inputs(matrix, templates, metric="cosine"):
    engine = DistanceEngine(metric)
    alignment = engine.align(matrix, templates)
    distances = engine.compute(matrix, alignment)
    classification = NearestTemplateClassifier().classify(distances)
    block = np.array(matrix.values)[alignment.feature_indices, :]
    return block, alignment.indicator, classification.winning_distances


class FailingFirstChunkPool(WorkerPool):
    """Pool whose first chunk always fails"""

    def map(self, chunks, task):
        results = super().map(chunks, task)
        results[0] = WorkerFailure(0, "simulated crash")
        return results


class TestPermutationPValue:
    def test_smallest_observed_gives_one_over_n_perm(self):
        null = np.linspace(0.5, 0.9, 100)

        assert permutation_p_value(0.1, null) == pytest.approx(1 / 100)

    def test_ties_count_inclusively(self):
        null = np.array([0.3] * 50 + [0.8] * 50)

        assert permutation_p_value(0.3, null) == pytest.approx(51 / 100)

    def test_largest_observed_is_capped_at_one(self):
        null = np.linspace(0.1, 0.5, 100)

        assert permutation_p_value(0.9, null) == 1.0

    def test_nan_observed_gives_nan(self):
        assert np.isnan(permutation_p_value(np.nan, np.ones(100)))

    def test_undefined_draws_leave_the_denominator(self):
        null = np.array([0.2] * 10 + [0.8] * 40 + [np.nan] * 50)

        assert permutation_p_value(0.5, null) == pytest.approx(11 / 50)

    def test_smallest_p_value_with_undefined_draws(self):
        null = np.concatenate([np.linspace(0.5, 0.9, 80), np.full(20, np.nan)])

        assert permutation_p_value(0.1, null) == pytest.approx(1 / 80)

    def test_all_draws_undefined_gives_nan(self):
        assert np.isnan(permutation_p_value(0.1, np.full(100, np.nan)))


class TestNullDistribution:
    def test_same_seed_same_draws(self):
        rng = np.random.default_rng(1)
        values = rng.standard_normal(40)
        indicator = (rng.random((40, 3)) < 0.3).astype(float)

        first = null_min_distances(values, indicator, "cosine", 200, sample_generator(5, 3))
        second = null_min_distances(values, indicator, "cosine", 200, sample_generator(5, 3))
        other = null_min_distances(values, indicator, "cosine", 200, sample_generator(5, 4))

        np.testing.assert_array_equal(first, second)
        assert not np.array_equal(first, other)
        assert first.shape == (200,)

    def test_missing_values_stay_out_of_permutation(self):
        values = np.array([1.0, np.nan, 2.0, -1.0, np.nan, 0.5])
        indicator = np.array([[1, 1, 0, 0, 1, 0], [0, 0, 1, 1, 0, 1]], dtype=float).T

        null = null_min_distances(values, indicator, "cosine", 100, sample_generator(0, 0))

        assert not np.isnan(null).any()


class TestPermutationTester:
    def test_p_values_never_below_resolution(self, null_cohort):
        matrix, templates = null_cohort
        block, indicator, observed = observed_inputs(matrix, templates)

        result = PermutationTester(n_perm=100, random_seed=11).test(block, indicator, observed)

        assert np.all(result.p_values >= 1 / 100)
        assert np.all(result.p_values <= 1.0)
        assert not result.failed.any()

    def test_null_p_values_are_uniform(self, null_cohort):
        matrix, templates = null_cohort
        block, indicator, observed = observed_inputs(matrix, templates)

        result = PermutationTester(n_perm=100, random_seed=3).test(block, indicator, observed)

        assert stats.kstest(result.p_values, "uniform").pvalue > 0.001
        assert 0.4 < np.mean(result.p_values) < 0.6

    def test_strong_signal_reaches_minimum_p_value(self, signal_cohort):
        matrix, templates, _ = signal_cohort
        block, indicator, observed = observed_inputs(matrix, templates)

        result = PermutationTester(n_perm=200, random_seed=1).test(block, indicator, observed)

        assert np.median(result.p_values) == pytest.approx(1 / 200)

    def test_unassigned_samples_are_not_tested(self, signal_cohort):
        matrix, templates, _ = signal_cohort
        block, indicator, observed = observed_inputs(matrix, templates)
        observed = observed.copy()
        observed[[2, 7]] = np.nan

        result = PermutationTester(n_perm=100, random_seed=1).test(block, indicator, observed)

        assert np.isnan(result.p_values[[2, 7]]).all()
        assert not np.isnan(np.delete(result.p_values, [2, 7])).any()

    @pytest.mark.parametrize(
        "pool",
        [
            WorkerPool(worker_count=3, backend="thread"),
            WorkerPool(worker_count=4, backend="process", timeout=120),
            WorkerPool(worker_count=2, backend="process"),
        ],
        ids=["threads", "processes-timeout", "processes"],
    )
    def test_results_independent_of_worker_layout(self, signal_cohort, pool):
        matrix, templates, _ = signal_cohort
        block, indicator, observed = observed_inputs(matrix, templates, "pearson")

        serial = PermutationTester("pearson", 150, random_seed=42).test(
            block, indicator, observed
        )
        parallel = PermutationTester("pearson", 150, random_seed=42, pool=pool).test(
            block, indicator, observed
        )

        np.testing.assert_array_equal(serial.p_values, parallel.p_values)

    def test_missing_seed_is_drawn_and_reported(self, signal_cohort):
        matrix, templates, _ = signal_cohort
        block, indicator, observed = observed_inputs(matrix, templates)

        first = PermutationTester(n_perm=100).test(block, indicator, observed)
        replay = PermutationTester(n_perm=100, random_seed=first.seed).test(
            block, indicator, observed
        )

        np.testing.assert_array_equal(first.p_values, replay.p_values)

    def test_worker_failure_only_affects_its_samples(self, signal_cohort):
        matrix, templates, _ = signal_cohort
        block, indicator, observed = observed_inputs(matrix, templates)
        pool = FailingFirstChunkPool(worker_count=3, backend="thread")

        result = PermutationTester(n_perm=100, random_seed=2, pool=pool).test(
            block, indicator, observed
        )

        # 60 samples over 3 workers: the first 20 belong to the failed chunk
        assert result.failed[:20].all()
        assert not result.failed[20:].any()
        assert np.isnan(result.p_values[:20]).all()
        assert not np.isnan(result.p_values[20:]).any()
