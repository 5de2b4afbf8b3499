"""
Configuration and input validation for the NTP prediction pipeline.

Everything here runs before any computation and raises ConfigurationError,
so a bad invocation fails fast without partial results.
"""

from typing import Dict

from ntpredict.domain.exceptions import ConfigurationError
from ntpredict.domain.models import (
    DISTANCE_METRICS,
    FEATURE_NAMESPACES,
    MIN_PERMUTATIONS,
    NORMALIZATION_STRATEGIES,
    WORKER_BACKENDS,
    ExpressionMatrix,
    PredictionConfig,
    TemplateSet,
)


def validate_config(config: PredictionConfig) -> None:
    """Raise ConfigurationError for any invalid engine option"""
    if config.distance_metric not in DISTANCE_METRICS:
        raise ConfigurationError(
            f"Unknown distance metric '{config.distance_metric}', "
            f"expected one of {DISTANCE_METRICS}"
        )

    if isinstance(config.n_perm, bool) or not isinstance(config.n_perm, int):
        raise ConfigurationError(f"n_perm must be an integer, got {config.n_perm!r}")
    if config.n_perm < 1:
        raise ConfigurationError(f"n_perm must be positive, got {config.n_perm}")
    if config.n_perm < MIN_PERMUTATIONS:
        raise ConfigurationError(
            f"n_perm must be at least {MIN_PERMUTATIONS} for usable p-value "
            f"resolution, got {config.n_perm}"
        )

    if isinstance(config.worker_count, bool) or not isinstance(config.worker_count, int):
        raise ConfigurationError(
            f"worker_count must be an integer, got {config.worker_count!r}"
        )
    if config.worker_count < 1:
        raise ConfigurationError(
            f"worker_count must be positive, got {config.worker_count}"
        )
    if config.worker_backend not in WORKER_BACKENDS:
        raise ConfigurationError(
            f"Unknown worker backend '{config.worker_backend}', "
            f"expected one of {WORKER_BACKENDS}"
        )
    if config.worker_timeout is not None and config.worker_timeout <= 0:
        raise ConfigurationError(
            f"worker_timeout must be positive, got {config.worker_timeout}"
        )
    if config.worker_timeout is not None and config.worker_backend != "process":
        raise ConfigurationError(
            "worker_timeout requires the 'process' backend; threads cannot be stopped"
        )

    if config.normalization not in NORMALIZATION_STRATEGIES:
        raise ConfigurationError(
            f"Unknown normalization '{config.normalization}', "
            f"expected one of {NORMALIZATION_STRATEGIES}"
        )
    if config.namespace not in FEATURE_NAMESPACES:
        raise ConfigurationError(
            f"Unknown feature namespace '{config.namespace}', "
            f"expected one of {FEATURE_NAMESPACES}"
        )

    if config.random_seed is not None and (
        isinstance(config.random_seed, bool) or not isinstance(config.random_seed, int)
    ):
        raise ConfigurationError(
            f"random_seed must be an integer, got {config.random_seed!r}"
        )
    if config.random_seed is not None and config.random_seed < 0:
        raise ConfigurationError(
            f"random_seed must be non-negative, got {config.random_seed}"
        )

    for name in ("p_value_threshold", "fdr_threshold"):
        threshold = getattr(config, name)
        if threshold is not None and not 0.0 <= threshold <= 1.0:
            raise ConfigurationError(f"{name} must lie in [0, 1], got {threshold}")


def marker_overlap(matrix: ExpressionMatrix, templates: TemplateSet) -> Dict[str, int]:
    """Number of each class's markers present among the matrix rows"""
    features = set(matrix.feature_ids)
    return {
        template.label: len(template.markers & features)
        for template in templates.classes
    }


def validate_inputs(matrix: ExpressionMatrix, templates: TemplateSet) -> None:
    """Raise ConfigurationError when the inputs cannot support classification"""
    if matrix.n_features == 0 or matrix.n_samples == 0:
        raise ConfigurationError(
            f"Expression matrix is empty (shape {matrix.shape})"
        )
    if templates.n_classes == 0:
        raise ConfigurationError("Template set contains no classes")
    if matrix.namespace != templates.namespace:
        raise ConfigurationError(
            f"Feature namespace mismatch: matrix uses '{matrix.namespace}', "
            f"templates use '{templates.namespace}'"
        )

    overlap = marker_overlap(matrix, templates)
    unusable = [label for label, count in overlap.items() if count == 0]
    if unusable:
        raise ConfigurationError(
            f"Template classes with no markers in the expression matrix: {unusable}"
        )
