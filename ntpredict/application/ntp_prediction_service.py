"""
Main application service orchestrating the NTP prediction pipeline.
"""

from typing import Optional

import numpy as np

from ntpredict.domain.models import (
    MIN_RECOMMENDED_SAMPLES,
    UNASSIGNED,
    ExpressionMatrix,
    PredictionConfig,
    PredictionRecord,
    PredictionTable,
    RunConfig,
    TemplateSet,
)
from ntpredict.domain.services.classifier import NearestTemplateClassifier
from ntpredict.domain.services.distance_engine import DistanceEngine
from ntpredict.domain.services.multiple_testing import MultipleTestingCorrector
from ntpredict.domain.services.permutation_tester import PermutationTester
from ntpredict.domain.services.prediction_filter import PredictionFilter
from ntpredict.domain.services.preprocessor import Preprocessor, ReferenceStatistics
from ntpredict.domain.validation import validate_config, validate_inputs
from ntpredict.infrastructure.data.data_loader import NTPDataLoader
from ntpredict.infrastructure.data.data_saver import NTPDataSaver
from ntpredict.infrastructure.logger import Logger
from ntpredict.infrastructure.worker_pool import WorkerPool


class NTPPredictionService:
    """Main application service orchestrating the entire pipeline"""

    def __init__(self, config: Optional[PredictionConfig] = None):
        self.config = config or PredictionConfig()
        validate_config(self.config)
        self.logger = Logger()

        # Initialize all services
        self.preprocessor = Preprocessor()
        self.distance_engine = DistanceEngine(self.config.distance_metric)
        self.classifier = NearestTemplateClassifier()
        self.permutation_tester = PermutationTester(
            metric=self.config.distance_metric,
            n_perm=self.config.n_perm,
            random_seed=self.config.random_seed,
            pool=WorkerPool(
                worker_count=self.config.worker_count,
                backend=self.config.worker_backend,
                timeout=self.config.worker_timeout,
            ),
        )
        self.corrector = MultipleTestingCorrector()
        self.prediction_filter = PredictionFilter()
        self.data_loader = NTPDataLoader()
        self.data_saver = NTPDataSaver()

        self.last_seed: Optional[int] = None

    def predict(
        self,
        matrix: ExpressionMatrix,
        templates: TemplateSet,
        reference: Optional[ReferenceStatistics] = None,
        normalization: Optional[str] = None,
    ) -> PredictionTable:
        """
        Main prediction pipeline.

        Args:
            matrix: Features x samples expression matrix
            templates: Class templates in the matrix's feature namespace
            reference: Optional reference-cohort statistics for scaling
            normalization: Strategy for this call; defaults to the configured one

        Returns:
            PredictionTable: One record per input sample, in input order

        Raises:
            ConfigurationError: Before any computation, if the inputs cannot
                support classification
        """
        self.logger.log_step("Prediction pipeline", "Starting nearest template prediction")

        # Step 1: Fail fast on unusable inputs
        validate_inputs(matrix, templates)
        self.logger.log_matrix_shape("Expression matrix", matrix.shape)
        if matrix.n_samples < MIN_RECOMMENDED_SAMPLES and reference is None:
            self.logger.log_warning(
                f"Only {matrix.n_samples} samples; predictions on fewer than "
                f"{MIN_RECOMMENDED_SAMPLES} samples may be unreliable"
            )

        # Step 2: Preprocess
        strategy = normalization or self.config.effective_normalization
        prepared = self.preprocessor.prepare(matrix, strategy, reference)

        # Step 3: Distances to every template
        alignment = self.distance_engine.align(prepared, templates)
        distances = self.distance_engine.compute(prepared, alignment)

        # Step 4: Nearest template per sample
        classification = self.classifier.classify(distances)

        # Step 5: Permutation p-values (parallel across samples)
        block = prepared.values[alignment.feature_indices, :]
        permutation = self.permutation_tester.test(
            block, alignment.indicator, classification.winning_distances
        )
        self.last_seed = permutation.seed

        # Step 6: FDR across the whole batch, once every p-value is in
        adjusted = self.corrector.adjust(permutation.p_values)

        # Step 7: Assemble records in input order
        records = []
        for n, sample_id in enumerate(prepared.sample_ids):
            predicted = classification.predicted_classes[n]
            if permutation.failed[n]:
                predicted = UNASSIGNED
            records.append(
                PredictionRecord(
                    sample_id=sample_id,
                    predicted_class=predicted,
                    distances=tuple(float(d) for d in distances.values[n]),
                    p_value=float(permutation.p_values[n]),
                    adjusted_p_value=float(adjusted[n]),
                )
            )
        table = PredictionTable(
            records=tuple(records),
            class_labels=templates.labels,
            degeneracies=classification.degeneracies,
        )

        # Step 8: Optional confidence masking
        table = self.prediction_filter.apply(
            table, self.config.p_value_threshold, self.config.fdr_threshold
        )

        self.log_summary(table)
        self.logger.log_success("Prediction pipeline completed successfully")
        return table

    def log_summary(self, table: PredictionTable) -> None:
        """Log predicted class counts and degenerate samples"""
        self.logger.log_class_counts(table.class_counts())
        if table.degeneracies:
            self.logger.log_warning(
                f"{len(table.degeneracies)} samples had undefined distances"
            )
        p_values = np.array([record.p_value for record in table.records])
        if np.any(~np.isnan(p_values)):
            self.logger.log_p_value("Median raw p-value", float(np.nanmedian(p_values)))

    def run(self, run_config: RunConfig) -> PredictionTable:
        """
        File-based pipeline: load inputs, predict, save outputs.

        Args:
            run_config: Input/output paths and engine configuration

        Returns:
            PredictionTable: The saved predictions
        """
        namespace = self.config.namespace
        matrix = self.data_loader.load_expression_matrix(run_config.data_file, namespace)
        templates = self.data_loader.load_templates(
            run_config.templates_file,
            feature_column=run_config.feature_column,
            class_column=run_config.class_column,
            namespace=namespace,
        )

        # Per-run strategy; the shared config is never changed
        strategy = self.config.effective_normalization
        reference = None
        if run_config.reference_file:
            reference_matrix = self.data_loader.load_expression_matrix(
                run_config.reference_file, namespace
            )
            if strategy == "none":
                self.logger.log_warning(
                    "Reference cohort supplied with normalization 'none'; "
                    "using 'center_scale'"
                )
                strategy = "center_scale"
            reference = self.preprocessor.fit_reference(reference_matrix, strategy)

        table = self.predict(matrix, templates, reference, strategy)

        self.data_saver.save_results(
            table, run_config, seed=self.last_seed, normalization=strategy
        )
        return table
