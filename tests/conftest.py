"""Shared fixtures for the NTP prediction tests."""

import sys
from pathlib import Path

import numpy as np
import pytest

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from ntpredict.domain.models import ExpressionMatrix, TemplateSet

SEED = 20240611


def make_templates(n_classes: int, markers_per_class: int, prefix: str = "g") -> TemplateSet:
    """Disjoint marker blocks: class k owns features k*m .. (k+1)*m - 1"""
    return TemplateSet.from_mapping(
        {
            f"C{k + 1}": [
                f"{prefix}{i}"
                for i in range(k * markers_per_class, (k + 1) * markers_per_class)
            ]
            for k in range(n_classes)
        }
    )


def make_matrix(values: np.ndarray, prefix: str = "g") -> ExpressionMatrix:
    n_features, n_samples = values.shape
    return ExpressionMatrix(
        values=values,
        feature_ids=tuple(f"{prefix}{i}" for i in range(n_features)),
        sample_ids=tuple(f"S{j}" for j in range(n_samples)),
    )


@pytest.fixture
def scenario_a():
    """Four features, two classes, one sample clearly closer to class A"""
    matrix = ExpressionMatrix(
        values=np.array([[2.0], [2.0], [-2.0], [-2.0]]),
        feature_ids=("f1", "f2", "f3", "f4"),
        sample_ids=("sample",),
    )
    templates = TemplateSet.from_mapping({"A": ["f1", "f2"], "B": ["f3", "f4"]})
    return matrix, templates


@pytest.fixture
def null_cohort():
    """Standard-normal matrix with no class signal and independent templates"""
    rng = np.random.default_rng(SEED)
    values = rng.standard_normal((300, 200))
    return make_matrix(values), make_templates(n_classes=3, markers_per_class=20)


@pytest.fixture
def signal_cohort():
    """
    Cohort of 60 samples in three groups of 20; group k has its class k
    markers shifted up, so its true class is known.
    """
    rng = np.random.default_rng(SEED + 1)
    n_classes, markers_per_class, n_per_class = 3, 20, 20
    values = rng.standard_normal((200, n_classes * n_per_class))
    truth = []
    for k in range(n_classes):
        columns = slice(k * n_per_class, (k + 1) * n_per_class)
        rows = slice(k * markers_per_class, (k + 1) * markers_per_class)
        values[rows, columns] += 3.0
        truth += [f"C{k + 1}"] * n_per_class
    matrix = make_matrix(values)
    templates = make_templates(n_classes, markers_per_class)
    return matrix, templates, truth
