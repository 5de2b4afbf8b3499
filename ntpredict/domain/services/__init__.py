"""
Algorithm services package for the NTP prediction pipeline.
"""

from .classifier import NearestTemplateClassifier
from .distance_engine import DistanceEngine
from .multiple_testing import MultipleTestingCorrector
from .permutation_tester import PermutationTester
from .prediction_filter import PredictionFilter
from .preprocessor import Preprocessor, ReferenceStatistics

__all__ = [
    "DistanceEngine",
    "MultipleTestingCorrector",
    "NearestTemplateClassifier",
    "PermutationTester",
    "PredictionFilter",
    "Preprocessor",
    "ReferenceStatistics",
]
