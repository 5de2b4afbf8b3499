"""
Error taxonomy for the NTP prediction pipeline.

Configuration problems are raised before any computation starts. Per-sample
degeneracies and worker failures are never raised to the caller; they are
encoded in the output as NaN statistics and "unassigned" predictions.
"""

from typing import Optional


class NTPError(Exception):
    """Base class for all pipeline errors"""


class ConfigurationError(NTPError, ValueError):
    """Invalid configuration or unusable inputs; aborts the whole invocation"""


class SampleComputationDegeneracy(NTPError):
    """A sample whose distances could not be computed for some or all classes"""

    def __init__(self, sample_id: str, classes: Optional[list] = None):
        self.sample_id = sample_id
        self.classes = list(classes or [])
        if self.classes:
            detail = f"undefined distance to {', '.join(map(str, self.classes))}"
        else:
            detail = "no usable distance to any class"
        super().__init__(f"Sample '{sample_id}': {detail}")


class WorkerFailure(NTPError):
    """A chunk of work that crashed or did not finish before the deadline"""

    def __init__(self, chunk_index: int, reason: str):
        self.chunk_index = chunk_index
        self.reason = reason
        super().__init__(f"Chunk {chunk_index} failed: {reason}")
