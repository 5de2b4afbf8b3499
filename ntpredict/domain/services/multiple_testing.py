"""
False-discovery-rate correction across all sample p-values.
"""

import numpy as np
from statsmodels.stats.multitest import fdrcorrection

from ntpredict.infrastructure.logger import Logger


class MultipleTestingCorrector:
    """Benjamini-Hochberg adjustment over the whole batch of samples"""

    def __init__(self, alpha: float = 0.05):
        self.alpha = alpha
        self.logger = Logger()

    def adjust(self, p_values: np.ndarray) -> np.ndarray:
        """
        Adjust raw p-values with Benjamini-Hochberg.

        NaN entries (unassigned samples) are left out of the correction set
        and come back as NaN in their original positions.

        Args:
            p_values: Raw p-values in sample order

        Returns:
            np.ndarray: Adjusted p-values in [0, 1], same order
        """
        p_values = np.asarray(p_values, dtype=np.float64)
        adjusted = np.full(p_values.shape, np.nan)
        tested = ~np.isnan(p_values)

        if tested.any():
            rejected, corrected = fdrcorrection(
                p_values[tested], alpha=self.alpha, method="indep"
            )
            adjusted[tested] = np.clip(corrected, 0.0, 1.0)
            self.logger.log_step(
                "FDR correction",
                f"{int(tested.sum())} p-values adjusted, "
                f"{int(rejected.sum())} significant at FDR {self.alpha}",
            )
        else:
            self.logger.log_warning("No p-values available for FDR correction")

        adjusted.setflags(write=False)
        return adjusted
