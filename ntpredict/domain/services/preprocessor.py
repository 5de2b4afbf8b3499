"""
Preprocessing adapter for the NTP prediction pipeline.

The engine expects a matrix whose rows are centered and scaled. This module
either passes an already prepared matrix through, or applies one named
strategy before the engine runs.
"""

from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np
from scipy.stats import rankdata
from sklearn.preprocessing import StandardScaler

from ntpredict.domain.exceptions import ConfigurationError
from ntpredict.domain.models import NORMALIZATION_STRATEGIES, ExpressionMatrix
from ntpredict.infrastructure.logger import Logger

# Offset added to quantile-normalized counts before log2
LOG2_OFFSET = 0.25


@dataclass(frozen=True)
class ReferenceStatistics:
    """
    Per-feature centering/scaling statistics fitted on a reference cohort.

    For count data the reference also carries its quantile target, the mean
    sorted distribution every input column is mapped onto before log2.
    """

    feature_ids: Tuple[str, ...]
    mean: np.ndarray
    scale: np.ndarray
    n_samples: int
    quantile_target: Optional[np.ndarray] = None

    def aligned(self, feature_ids: Tuple[str, ...]) -> Tuple[np.ndarray, np.ndarray]:
        """Mean and scale for the given features; NaN where the reference lacks one"""
        position = {feature: i for i, feature in enumerate(self.feature_ids)}
        index = np.array([position.get(f, -1) for f in feature_ids], dtype=np.intp)
        present = index >= 0

        mean = np.full(len(feature_ids), np.nan)
        scale = np.full(len(feature_ids), np.nan)
        mean[present] = self.mean[index[present]]
        scale[present] = self.scale[index[present]]
        return mean, scale


def quantile_target(values: np.ndarray) -> np.ndarray:
    """Mean of the sorted columns, each resampled to the row count"""
    n_rows, n_cols = values.shape
    grid = np.linspace(0.0, 1.0, n_rows)

    target = np.zeros(n_rows)
    n_used = 0
    for j in range(n_cols):
        column = np.sort(values[~np.isnan(values[:, j]), j])
        if column.size == 0:
            continue
        positions = np.linspace(0.0, 1.0, column.size) if column.size > 1 else np.zeros(1)
        target += np.interp(grid, positions, column)
        n_used += 1
    if n_used == 0:
        return np.full(n_rows, np.nan)
    return target / n_used


def map_to_target(values: np.ndarray, target: np.ndarray) -> np.ndarray:
    """
    Replace every value by the target quantile at its rank position.

    Missing values are left missing. Ties share their average rank, and
    columns of any length are mapped by fractional rank position, so the
    result only depends on the ordering within a column, never on its scale.
    """
    grid = np.linspace(0.0, 1.0, target.size)
    normalized = np.full(values.shape, np.nan)
    for j in range(values.shape[1]):
        valid = ~np.isnan(values[:, j])
        m = int(valid.sum())
        if m == 0:
            continue
        ranks = rankdata(values[valid, j])
        positions = (ranks - 1) / (m - 1) if m > 1 else np.zeros(1)
        normalized[valid, j] = np.interp(positions, grid, target)
    return normalized


def quantile_normalize(values: np.ndarray) -> np.ndarray:
    """Quantile-normalize columns to their own mean distribution"""
    return map_to_target(values, quantile_target(values))


class Preprocessor:
    """Brings an expression matrix into the centered/scaled form the engine expects"""

    def __init__(self):
        self.logger = Logger()

    def prepare(
        self,
        matrix: ExpressionMatrix,
        strategy: str = "none",
        reference: Optional[ReferenceStatistics] = None,
    ) -> ExpressionMatrix:
        """
        Apply a named normalization strategy.

        Args:
            matrix: Input matrix (features x samples)
            strategy: One of "none", "center_scale", "quantile_log2"
            reference: Statistics from a reference cohort, used instead of
                statistics computed from the input itself

        Returns:
            ExpressionMatrix: A new matrix; the input is never modified
        """
        if strategy not in NORMALIZATION_STRATEGIES:
            raise ConfigurationError(
                f"Unknown normalization '{strategy}', "
                f"expected one of {NORMALIZATION_STRATEGIES}"
            )
        self.logger.log_step("Preprocessing", f"Strategy: {strategy}")

        if strategy == "none":
            if reference is not None:
                self.logger.log_warning(
                    "Reference statistics are ignored when normalization is 'none'"
                )
            self.check_scaling(matrix)
            return matrix

        if strategy == "quantile_log2":
            target = reference.quantile_target if reference is not None else None
            if reference is not None and target is None:
                self.logger.log_warning(
                    "Reference statistics carry no quantile target; input columns "
                    "are quantile-normalized among themselves"
                )
            matrix = self.quantile_log2(matrix, target)
        return self.center_scale(matrix, reference)

    def quantile_log2(
        self, matrix: ExpressionMatrix, target: Optional[np.ndarray] = None
    ) -> ExpressionMatrix:
        """
        Quantile normalization followed by log2(x + 0.25), for count assays.

        Columns are mapped onto target when given (a reference cohort's
        distribution), otherwise onto the mean distribution of the input.
        """
        values = np.array(matrix.values)
        if np.nanmin(values) < 0:
            raise ConfigurationError(
                "Count data must be non-negative for quantile+log2 normalization"
            )
        if target is None:
            target = quantile_target(values)
        normalized = np.log2(map_to_target(values, target) + LOG2_OFFSET)
        self.logger.log_step(
            "Quantile normalization", f"{matrix.n_samples} samples, log2 offset {LOG2_OFFSET}"
        )
        return matrix.with_values(normalized)

    def fit_reference(
        self, matrix: ExpressionMatrix, strategy: str = "center_scale"
    ) -> ReferenceStatistics:
        """Fit per-feature mean and scale, and for counts the quantile target, on a reference cohort"""
        target = None
        if strategy == "quantile_log2":
            target = quantile_target(np.array(matrix.values))
            target.setflags(write=False)
            matrix = self.quantile_log2(matrix, target)

        scaler = StandardScaler().fit(matrix.values.T)
        self.logger.log_step(
            "Reference statistics",
            f"Fitted on {matrix.n_samples} samples x {matrix.n_features} features",
        )
        return ReferenceStatistics(
            feature_ids=matrix.feature_ids,
            mean=np.array(scaler.mean_),
            scale=np.array(scaler.scale_),
            n_samples=matrix.n_samples,
            quantile_target=target,
        )

    def center_scale(
        self,
        matrix: ExpressionMatrix,
        reference: Optional[ReferenceStatistics] = None,
    ) -> ExpressionMatrix:
        """Row-wise centering and scaling, from the input or a reference cohort"""
        values = matrix.values

        if reference is None:
            if matrix.n_samples < 2:
                self.logger.log_warning(
                    "Scaling fewer than 2 samples without reference statistics "
                    "leaves no usable signal; supply a reference cohort"
                )
            scaled = StandardScaler().fit_transform(values.T).T
        else:
            mean, scale = reference.aligned(matrix.feature_ids)
            missing = int(np.isnan(mean).sum())
            if missing:
                self.logger.log_warning(
                    f"{missing} features have no reference statistics and are ignored"
                )
            scale = np.where(scale == 0, 1.0, scale)
            scaled = (values - mean[:, None]) / scale[:, None]
            self.logger.log_step(
                "Reference scaling",
                f"Using statistics from {reference.n_samples} reference samples",
            )

        return matrix.with_values(scaled)

    def check_scaling(self, matrix: ExpressionMatrix) -> None:
        """Warn when an input declared as prepared does not look centered or log-scale"""
        values = matrix.values
        if values.size == 0 or np.all(np.isnan(values)):
            return

        counts = np.sum(~np.isnan(values), axis=1)
        row_means = np.nansum(values, axis=1)[counts > 0] / counts[counts > 0]
        if matrix.n_samples > 1 and np.max(np.abs(row_means)) > 1.0:
            self.logger.log_warning(
                "Matrix rows do not appear centered; consider normalization "
                "'center_scale'"
            )
        if np.nanmax(values) > 100:
            self.logger.log_warning(
                "Matrix values look like raw counts; consider is_count_data=True"
            )
