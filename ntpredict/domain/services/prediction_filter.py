"""
Confidence thresholding of finished predictions.
"""

from dataclasses import replace
from typing import Optional

import numpy as np

from ntpredict.domain.exceptions import ConfigurationError
from ntpredict.domain.models import UNASSIGNED, PredictionRecord, PredictionTable
from ntpredict.infrastructure.logger import Logger


class PredictionFilter:
    """Masks low-confidence predictions as unassigned, leaving statistics intact"""

    def __init__(self):
        self.logger = Logger()

    def apply(
        self,
        table: PredictionTable,
        p_value_threshold: Optional[float] = None,
        fdr_threshold: Optional[float] = None,
    ) -> PredictionTable:
        """
        Return a new table where records above a threshold are unassigned.

        A record is masked when its raw p-value exceeds p_value_threshold or
        its adjusted p-value exceeds fdr_threshold. Distances and p-values are
        copied unchanged; the input table is not modified.
        """
        for name, threshold in (
            ("p_value_threshold", p_value_threshold),
            ("fdr_threshold", fdr_threshold),
        ):
            if threshold is not None and not 0.0 <= threshold <= 1.0:
                raise ConfigurationError(f"{name} must lie in [0, 1], got {threshold}")

        if p_value_threshold is None and fdr_threshold is None:
            return table

        records = tuple(
            self._filter_record(record, p_value_threshold, fdr_threshold)
            for record in table.records
        )
        n_masked = sum(
            before.is_assigned and not after.is_assigned
            for before, after in zip(table.records, records)
        )
        if p_value_threshold is not None:
            self.logger.log_threshold("Raw p-value threshold", p_value_threshold)
        if fdr_threshold is not None:
            self.logger.log_threshold("FDR threshold", fdr_threshold)
        self.logger.log_step("Thresholding", f"{n_masked} predictions set to unassigned")

        return replace(table, records=records)

    @staticmethod
    def _exceeds(value: float, threshold: Optional[float]) -> bool:
        return threshold is not None and (np.isnan(value) or value > threshold)

    def _filter_record(
        self,
        record: PredictionRecord,
        p_value_threshold: Optional[float],
        fdr_threshold: Optional[float],
    ) -> PredictionRecord:
        if not record.is_assigned:
            return record
        if self._exceeds(record.p_value, p_value_threshold) or self._exceeds(
            record.adjusted_p_value, fdr_threshold
        ):
            return replace(record, predicted_class=UNASSIGNED)
        return record
