"""
Permutation-based significance of nearest-template predictions.

For each sample the values of its non-missing template features are shuffled
across feature positions n_perm times; every shuffle is compared against all
class templates and the smallest distance is kept. The raw p-value is the
inclusive rank of the observed winning distance among the defined null
draws, divided by their number, so it never falls below 1 / n_perm.

Every sample draws from its own generator seeded with (seed, sample index),
so results do not depend on how samples are split across workers.
"""

from dataclasses import dataclass
from typing import Optional

import numpy as np

from ntpredict.domain.exceptions import WorkerFailure
from ntpredict.domain.services.distance_engine import template_distances
from ntpredict.infrastructure.logger import Logger
from ntpredict.infrastructure.worker_pool import WorkerPool, split_indices


@dataclass(frozen=True)
class PermutationChunk:
    """Self-contained unit of permutation work for one worker"""

    sample_indices: np.ndarray
    block: np.ndarray
    indicator: np.ndarray
    observed: np.ndarray
    metric: str
    n_perm: int
    seed: int


@dataclass(frozen=True)
class PermutationResult:
    """Raw p-values per sample; failed marks samples lost to a worker failure"""

    p_values: np.ndarray
    failed: np.ndarray
    seed: int


def sample_generator(seed: int, sample_index: int) -> np.random.Generator:
    """Independent generator for one sample, derived from the global seed"""
    return np.random.default_rng([seed, int(sample_index)])


def null_min_distances(
    values: np.ndarray,
    indicator: np.ndarray,
    metric: str,
    n_perm: int,
    rng: np.random.Generator,
) -> np.ndarray:
    """Minimum distance across templates for n_perm shuffles of one sample"""
    valid = ~np.isnan(values)
    x = values[valid]
    shuffled = rng.permuted(np.tile(x[:, None], (1, n_perm)), axis=0)
    null = template_distances(shuffled, indicator[valid], metric)
    null = np.where(np.isnan(null), np.inf, null).min(axis=1)
    null[np.isinf(null)] = np.nan
    return null


def permutation_p_value(observed: float, null: np.ndarray) -> float:
    """
    Inclusive ascending rank of observed among {observed} + null, over the
    number of defined null draws.

    Undefined (NaN) draws leave both the count and the denominator, so they
    never make a sample look more significant than it is.
    """
    defined = null[~np.isnan(null)]
    if np.isnan(observed) or defined.size == 0:
        return np.nan
    rank = 1 + int(np.count_nonzero(defined <= observed))
    return min(1.0, rank / defined.size)


def run_permutation_chunk(chunk: PermutationChunk) -> np.ndarray:
    """Raw p-values for every sample in a chunk"""
    p_values = np.full(len(chunk.sample_indices), np.nan)
    for position, sample_index in enumerate(chunk.sample_indices):
        observed = chunk.observed[position]
        if np.isnan(observed):
            continue
        rng = sample_generator(chunk.seed, sample_index)
        null = null_min_distances(
            chunk.block[:, position], chunk.indicator, chunk.metric, chunk.n_perm, rng
        )
        p_values[position] = permutation_p_value(observed, null)
    return p_values


class PermutationTester:
    """Estimates how likely each sample's closeness to its template arose by chance"""

    def __init__(
        self,
        metric: str = "cosine",
        n_perm: int = 1000,
        random_seed: Optional[int] = None,
        pool: Optional[WorkerPool] = None,
    ):
        self.metric = metric
        self.n_perm = n_perm
        self.random_seed = random_seed
        self.pool = pool or WorkerPool()
        self.logger = Logger()

    def resolve_seed(self) -> int:
        """The configured seed, or one drawn once from OS entropy"""
        if self.random_seed is not None:
            seed = int(self.random_seed)
            self.logger.log_seed(seed, drawn=False)
            return seed
        seed = int(np.random.SeedSequence().entropy)
        self.logger.log_seed(seed, drawn=True)
        return seed

    def test(
        self, block: np.ndarray, indicator: np.ndarray, observed: np.ndarray
    ) -> PermutationResult:
        """
        Compute raw permutation p-values for all samples.

        Args:
            block: Aligned template features x samples
            indicator: Template indicator matrix (features x classes)
            observed: Winning distance per sample (NaN when unassigned)

        Returns:
            PermutationResult: p-values in sample order plus worker-failure mask
        """
        seed = self.resolve_seed()
        n_samples = block.shape[1]
        self.logger.log_step(
            "Permutation test",
            f"{n_samples} samples x {self.n_perm} permutations ({self.metric})",
        )

        chunks = [
            PermutationChunk(
                sample_indices=indices,
                block=np.ascontiguousarray(block[:, indices]),
                indicator=np.asarray(indicator),
                observed=np.asarray(observed)[indices],
                metric=self.metric,
                n_perm=self.n_perm,
                seed=seed,
            )
            for indices in split_indices(n_samples, self.pool.worker_count)
        ]
        outcomes = self.pool.map(chunks, run_permutation_chunk)

        p_values = np.full(n_samples, np.nan)
        failed = np.zeros(n_samples, dtype=bool)
        for chunk, outcome in zip(chunks, outcomes):
            if isinstance(outcome, WorkerFailure):
                failed[chunk.sample_indices] = True
            else:
                p_values[chunk.sample_indices] = outcome

        if failed.any():
            self.logger.log_warning(
                f"{int(failed.sum())} samples lost to worker failures are unassigned"
            )
        self.logger.log_p_value(
            "Minimum raw p-value",
            float(np.nanmin(p_values)) if np.any(~np.isnan(p_values)) else np.nan,
        )

        p_values.setflags(write=False)
        failed.setflags(write=False)
        return PermutationResult(p_values=p_values, failed=failed, seed=seed)
