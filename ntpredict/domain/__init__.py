"""
This package contains the domain layer for the NTP prediction pipeline.

The domain layer holds the data model, the error taxonomy and the algorithms.
"""

from .exceptions import (
    ConfigurationError,
    NTPError,
    SampleComputationDegeneracy,
    WorkerFailure,
)
from .models import (
    UNASSIGNED,
    ClassTemplate,
    DistanceMatrix,
    ExpressionMatrix,
    PredictionConfig,
    PredictionRecord,
    PredictionTable,
    RunConfig,
    TemplateAlignment,
    TemplateSet,
)

__all__ = [
    "UNASSIGNED",
    "ClassTemplate",
    "ConfigurationError",
    "DistanceMatrix",
    "ExpressionMatrix",
    "NTPError",
    "PredictionConfig",
    "PredictionRecord",
    "PredictionTable",
    "RunConfig",
    "SampleComputationDegeneracy",
    "TemplateAlignment",
    "TemplateSet",
    "WorkerFailure",
]
