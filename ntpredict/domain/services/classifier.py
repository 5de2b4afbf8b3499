"""
Nearest-template classification for the NTP prediction pipeline.
"""

from dataclasses import dataclass
from typing import Tuple

import numpy as np

from ntpredict.domain.exceptions import SampleComputationDegeneracy
from ntpredict.domain.models import UNASSIGNED, DistanceMatrix
from ntpredict.infrastructure.logger import Logger


@dataclass(frozen=True)
class Classification:
    """Nearest class per sample; index -1 and NaN distance when unassigned"""

    class_indices: np.ndarray
    predicted_classes: Tuple[str, ...]
    winning_distances: np.ndarray
    degeneracies: Tuple[SampleComputationDegeneracy, ...] = ()


class NearestTemplateClassifier:
    """Picks the template with the smallest distance for every sample"""

    def __init__(self):
        self.logger = Logger()

    def classify(self, distances: DistanceMatrix) -> Classification:
        """
        Select the nearest class per sample.

        NaN distances are excluded. Ties go to the lowest class index, i.e.
        the class listed first in the template set. A sample whose distances
        are all NaN is unassigned rather than treated as an error.

        Args:
            distances: N x K distance matrix

        Returns:
            Classification: Per-sample class index, label and winning distance
        """
        values = distances.values
        undefined = np.isnan(values)
        all_undefined = undefined.all(axis=1)

        # +inf never wins against a finite distance and keeps argmin well defined
        filled = np.where(undefined, np.inf, values)
        class_indices = np.argmin(filled, axis=1).astype(np.intp)
        class_indices[all_undefined] = -1

        winning = np.full(values.shape[0], np.nan)
        assigned = ~all_undefined
        winning[assigned] = values[assigned, class_indices[assigned]]
        winning.setflags(write=False)
        class_indices.setflags(write=False)

        predicted = tuple(
            distances.class_labels[k] if k >= 0 else UNASSIGNED for k in class_indices
        )

        degeneracies = []
        for n in np.flatnonzero(undefined.any(axis=1)):
            classes = [] if all_undefined[n] else [
                distances.class_labels[k] for k in np.flatnonzero(undefined[n])
            ]
            degeneracy = SampleComputationDegeneracy(distances.sample_ids[n], classes)
            self.logger.log_degeneracy(degeneracy)
            degeneracies.append(degeneracy)

        self.logger.log_step(
            "Classification",
            f"{int(assigned.sum())} of {values.shape[0]} samples assigned a nearest class",
        )
        return Classification(
            class_indices=class_indices,
            predicted_classes=predicted,
            winning_distances=winning,
            degeneracies=tuple(degeneracies),
        )
