"""
Data saving functionality for the NTP prediction pipeline.
"""

import os
from typing import Optional

import pandas as pd

from ntpredict.domain.models import PredictionTable, RunConfig
from ntpredict.infrastructure.logger import Logger


class NTPDataSaver:
    """Responsible for saving predictions and run summaries"""

    def __init__(self):
        self.logger = Logger()

    def save_predictions(self, table: PredictionTable, file_path: str) -> None:
        """
        Save the prediction table to CSV.

        Args:
            table: Prediction records
            file_path: Output file path
        """
        try:
            os.makedirs(os.path.dirname(file_path) or ".", exist_ok=True)
            table.to_dataframe().to_csv(file_path, float_format="%.8f")
            self.logger.log_save(file_path)
        except Exception as e:
            self.logger.log_error(e, f"Saving predictions to {file_path}")
            raise

    def save_distances(self, table: PredictionTable, file_path: str) -> None:
        """Save the samples x classes distance matrix to CSV"""
        try:
            os.makedirs(os.path.dirname(file_path) or ".", exist_ok=True)
            df = pd.DataFrame(
                [record.distances for record in table.records],
                index=pd.Index(table.sample_ids, name="sample"),
                columns=list(table.class_labels),
            )
            df.to_csv(file_path, float_format="%.8f")
            self.logger.log_save(file_path)
        except Exception as e:
            self.logger.log_error(e, f"Saving distances to {file_path}")
            raise

    def save_summary(
        self,
        table: PredictionTable,
        run_config: RunConfig,
        file_path: str,
        seed: Optional[int] = None,
        normalization: Optional[str] = None,
    ) -> None:
        """Save per-class counts and the settings needed to reproduce the run"""
        try:
            config = run_config.prediction
            rows = [
                {"Item": f"class:{label}", "Value": count}
                for label, count in table.class_counts().items()
            ]
            rows += [
                {"Item": "samples", "Value": len(table)},
                {"Item": "degenerate_samples", "Value": len(table.degeneracies)},
                {"Item": "distance_metric", "Value": config.distance_metric},
                {"Item": "n_perm", "Value": config.n_perm},
                {
                    "Item": "normalization",
                    "Value": normalization or config.effective_normalization,
                },
                {"Item": "random_seed", "Value": seed},
                {"Item": "p_value_threshold", "Value": config.p_value_threshold},
                {"Item": "fdr_threshold", "Value": config.fdr_threshold},
            ]
            pd.DataFrame(rows).to_csv(file_path, index=False)
            self.logger.log_save(file_path)
        except Exception as e:
            self.logger.log_error(e, f"Saving summary to {file_path}")
            raise

    def save_results(
        self,
        table: PredictionTable,
        run_config: RunConfig,
        seed: Optional[int] = None,
        normalization: Optional[str] = None,
    ) -> None:
        """
        Save all prediction outputs.

        Args:
            table: Prediction records
            run_config: Run configuration (output directory, sample name)
            seed: Seed actually used for the permutation test
            normalization: Strategy actually applied, when it differs from the config
        """
        try:
            os.makedirs(run_config.out_dir, exist_ok=True)
            prefix = os.path.join(run_config.out_dir, run_config.sample_name)

            self.save_predictions(table, f"{prefix}_NTP_Predictions.csv")
            self.save_distances(table, f"{prefix}_NTP_Distances.csv")
            self.save_summary(
                table,
                run_config,
                f"{prefix}_NTP_Summary.csv",
                seed=seed,
                normalization=normalization,
            )

            self.logger.log_success("All results saved successfully")
        except Exception as e:
            self.logger.log_error(e, "Saving results")
            raise
