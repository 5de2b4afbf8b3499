"""
Correlation-derived distances between samples and class templates.

All similarity functions take a block of sample columns (P x M, NaN allowed)
and the template indicator matrix (P x K) and return an M x K array. Missing
values are handled by pairwise deletion: for each sample only its non-missing
features take part, for every class at once.
"""

from typing import Callable, Dict, Tuple

import numpy as np
from scipy.stats import rankdata

from ntpredict.domain.exceptions import ConfigurationError
from ntpredict.domain.models import (
    DISTANCE_METRICS,
    DistanceMatrix,
    ExpressionMatrix,
    TemplateAlignment,
    TemplateSet,
)
from ntpredict.infrastructure.logger import Logger

# Relative variance below which a restricted vector counts as constant
_VARIANCE_TOLERANCE = 1e-12


def _masked(block: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    mask = ~np.isnan(block)
    return np.where(mask, block, 0.0), mask.astype(np.float64)


def _finite_or_nan(values: np.ndarray) -> np.ndarray:
    values = np.asarray(values, dtype=np.float64)
    values[~np.isfinite(values)] = np.nan
    return values


def cosine_similarity(block: np.ndarray, indicator: np.ndarray) -> np.ndarray:
    x, mask = _masked(block)
    dot = x.T @ indicator
    x_norm = np.sqrt(np.sum(x**2, axis=0))[:, None]
    y_norm = np.sqrt(mask.T @ indicator**2)
    with np.errstate(divide="ignore", invalid="ignore"):
        return _finite_or_nan(dot / (x_norm * y_norm))


def pearson_similarity(block: np.ndarray, indicator: np.ndarray) -> np.ndarray:
    x, mask = _masked(block)
    n = mask.sum(axis=0)[:, None]

    # Center each sample over its own non-missing features
    with np.errstate(divide="ignore", invalid="ignore"):
        x_mean = x.sum(axis=0) / mask.sum(axis=0)
    x_centered = np.where(mask > 0, x - x_mean, 0.0)

    # With x centered, sum((x - mx) * (y - my)) reduces to sum(x * y)
    covariance = x_centered.T @ indicator
    x_ss = np.sum(x_centered**2, axis=0)[:, None]
    y_sum = mask.T @ indicator
    with np.errstate(divide="ignore", invalid="ignore"):
        y_ss = mask.T @ indicator**2 - y_sum**2 / n
        similarity = covariance / np.sqrt(x_ss * y_ss)

    raw_ss = np.sum(x**2, axis=0)[:, None]
    constant_x = x_ss <= _VARIANCE_TOLERANCE * np.maximum(raw_ss, 1.0)
    constant_y = y_ss <= _VARIANCE_TOLERANCE
    similarity = _finite_or_nan(similarity)
    similarity[np.broadcast_to(constant_x, similarity.shape) | constant_y] = np.nan
    return similarity


def spearman_similarity(block: np.ndarray, indicator: np.ndarray) -> np.ndarray:
    # Ranks of a 0/1 indicator are an affine map of the indicator itself,
    # so Pearson against the raw indicator equals Pearson against its ranks.
    ranks = rankdata(block, axis=0, nan_policy="omit")
    return pearson_similarity(ranks, indicator)


def kendall_similarity(block: np.ndarray, indicator: np.ndarray) -> np.ndarray:
    """
    Kendall tau-b against a 0/1 indicator, from rank sums.

    Only marker/non-marker pairs can be concordant or discordant, and their
    balance equals 2U - n1*n0 where U is the Mann-Whitney statistic of the
    markers. The x tie term counts pairs sharing a value.
    """
    ranks, mask = _masked(rankdata(block, axis=0, nan_policy="omit"))
    n = mask.sum(axis=0)[:, None]
    n_markers = mask.T @ indicator
    n_others = n - n_markers

    marker_rank_sum = ranks.T @ indicator
    u_statistic = marker_rank_sum - n_markers * (n_markers + 1) / 2
    balance = 2 * u_statistic - n_markers * n_others

    max_ranks = np.nan_to_num(rankdata(block, method="max", axis=0, nan_policy="omit"))
    min_ranks = np.nan_to_num(rankdata(block, method="min", axis=0, nan_policy="omit"))
    tied_pairs = np.sum((max_ranks - min_ranks) * mask, axis=0)[:, None] / 2
    total_pairs = n * (n - 1) / 2

    with np.errstate(divide="ignore", invalid="ignore"):
        tau = balance / np.sqrt((total_pairs - tied_pairs) * n_markers * n_others)
    return _finite_or_nan(tau)


SIMILARITY_FUNCTIONS: Dict[str, Callable[[np.ndarray, np.ndarray], np.ndarray]] = {
    "cosine": cosine_similarity,
    "pearson": pearson_similarity,
    "spearman": spearman_similarity,
    "kendall": kendall_similarity,
}


def correlation_distance(similarity: np.ndarray) -> np.ndarray:
    """d = sqrt(0.5 * (1 - f)), bounded in [0, 1]; NaN stays NaN"""
    similarity = np.clip(similarity, -1.0, 1.0)
    return np.sqrt(0.5 * (1.0 - similarity))


def template_distances(
    block: np.ndarray, indicator: np.ndarray, metric: str = "cosine"
) -> np.ndarray:
    """M x K distances between each column of block and each template"""
    try:
        similarity_function = SIMILARITY_FUNCTIONS[metric]
    except KeyError:
        raise ConfigurationError(
            f"Unknown distance metric '{metric}', expected one of {DISTANCE_METRICS}"
        ) from None
    block = np.asarray(block, dtype=np.float64)
    if block.ndim == 1:
        block = block[:, None]
    return correlation_distance(similarity_function(block, indicator))


class DistanceEngine:
    """Aligns templates to the feature space and computes the distance matrix"""

    def __init__(self, metric: str = "cosine"):
        if metric not in SIMILARITY_FUNCTIONS:
            raise ConfigurationError(
                f"Unknown distance metric '{metric}', expected one of {DISTANCE_METRICS}"
            )
        self.metric = metric
        self.logger = Logger()

    def align(
        self, matrix: ExpressionMatrix, templates: TemplateSet
    ) -> TemplateAlignment:
        """
        Resolve templates against matrix rows.

        The aligned feature set is every matrix row that is a marker of at
        least one class, in matrix row order. Unmatched markers are dropped.

        Raises:
            ConfigurationError: If any class has no marker among the rows
        """
        all_markers = templates.all_markers()
        feature_indices = np.array(
            [i for i, feature in enumerate(matrix.feature_ids) if feature in all_markers],
            dtype=np.intp,
        )
        feature_ids = tuple(matrix.feature_ids[i] for i in feature_indices)

        indicator = np.zeros((len(feature_ids), templates.n_classes), dtype=np.float64)
        matched, dropped = {}, {}
        for k, template in enumerate(templates.classes):
            indicator[:, k] = [feature in template.markers for feature in feature_ids]
            matched[template.label] = int(indicator[:, k].sum())
            dropped[template.label] = len(template.markers) - matched[template.label]

        unusable = [label for label, count in matched.items() if count == 0]
        if unusable:
            raise ConfigurationError(
                f"Template classes with no markers in the expression matrix: {unusable}"
            )

        for label in templates.labels:
            if dropped[label]:
                self.logger.log_warning(
                    f"Class '{label}': {dropped[label]} of "
                    f"{matched[label] + dropped[label]} markers not found in matrix"
                )
        self.logger.log_step(
            "Template alignment",
            f"{len(feature_ids)} template features across {templates.n_classes} classes",
        )

        indicator.setflags(write=False)
        return TemplateAlignment(
            feature_indices=feature_indices,
            feature_ids=feature_ids,
            indicator=indicator,
            class_labels=templates.labels,
            matched_markers=matched,
            dropped_markers=dropped,
        )

    def compute(
        self, matrix: ExpressionMatrix, alignment: TemplateAlignment
    ) -> DistanceMatrix:
        """Distance of every sample to every template, vectorized over both"""
        block = matrix.values[alignment.feature_indices, :]
        distances = template_distances(block, alignment.indicator, self.metric)

        self.logger.log_matrix_shape("Distance matrix", distances.shape)
        n_undefined = int(np.isnan(distances).sum())
        if n_undefined:
            self.logger.log_warning(
                f"{n_undefined} sample/class distances are undefined (NaN)"
            )

        return DistanceMatrix(
            values=distances,
            sample_ids=matrix.sample_ids,
            class_labels=alignment.class_labels,
        )
