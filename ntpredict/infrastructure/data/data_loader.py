"""
Data loading and initial validation for the NTP prediction pipeline.
"""

import os

import numpy as np
import pandas as pd

from ntpredict.domain.models import ExpressionMatrix, TemplateSet
from ntpredict.infrastructure.logger import Logger


class NTPDataLoader:
    """Responsible for loading expression matrices and template tables"""

    def __init__(self):
        self.logger = Logger()

    @staticmethod
    def _delimiter(file_path: str) -> str:
        return "\t" if file_path.endswith((".tsv", ".txt")) else ","

    def _read_table(self, file_path: str, **kwargs) -> pd.DataFrame:
        if not os.path.exists(file_path):
            error = FileNotFoundError(f"File not found: {file_path}")
            self.logger.log_error(error, "Data loading")
            raise error
        try:
            return pd.read_csv(file_path, sep=self._delimiter(file_path), **kwargs)
        except Exception as e:
            self.logger.log_error(e, f"Reading table from {file_path}")
            raise ValueError(f"Invalid file format or corrupted data: {file_path}") from e

    def load_expression_matrix(
        self, file_path: str, namespace: str = "symbol"
    ) -> ExpressionMatrix:
        """
        Load an expression matrix from file.

        Args:
            file_path: CSV or TSV with feature ids in the first column and
                one column per sample
            namespace: Identifier namespace of the feature ids

        Returns:
            ExpressionMatrix: Loaded matrix with float64 values

        Raises:
            FileNotFoundError: If file doesn't exist
            ValueError: If the file is malformed or holds non-numeric values
        """
        df = self._read_table(file_path, index_col=0)
        df.index = df.index.astype(str)

        try:
            df = df.apply(pd.to_numeric, errors="raise")
        except (TypeError, ValueError) as e:
            self.logger.log_error(e, f"Parsing values in {file_path}")
            raise ValueError(f"Non-numeric values in expression matrix: {file_path}") from e

        matrix = ExpressionMatrix.from_dataframe(df, namespace=namespace)
        n_missing = int(np.isnan(matrix.values).sum())

        self.logger.log_matrix_shape("Loaded matrix", matrix.shape)
        if n_missing:
            self.logger.log_warning(
                f"{n_missing} missing values; they are ignored per sample"
            )
        self.logger.log_success(f"Successfully loaded matrix from {file_path}")
        return matrix

    def load_templates(
        self,
        file_path: str,
        feature_column: str = "probe",
        class_column: str = "class",
        namespace: str = "symbol",
    ) -> TemplateSet:
        """
        Load class templates from a long table.

        Args:
            file_path: CSV or TSV with one row per (feature, class) pair
            feature_column: Column holding marker feature ids
            class_column: Column holding class labels
            namespace: Identifier namespace of the marker ids

        Returns:
            TemplateSet: Classes in first-appearance order
        """
        df = self._read_table(file_path, dtype=str)
        templates = TemplateSet.from_dataframe(
            df,
            feature_column=feature_column,
            class_column=class_column,
            namespace=namespace,
        )

        for template in templates.classes:
            self.logger.log_step(
                "Template loaded", f"{template.label}: {len(template.markers)} markers"
            )
        self.logger.log_success(
            f"Loaded {templates.n_classes} templates from {file_path}"
        )
        return templates
