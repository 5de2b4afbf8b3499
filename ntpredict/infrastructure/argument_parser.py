"""
Command line argument parsing and validation for the NTP prediction pipeline.
"""

import argparse
import os
from typing import List, Optional

from ntpredict.domain.models import (
    DISTANCE_METRICS,
    FEATURE_NAMESPACES,
    NORMALIZATION_STRATEGIES,
    WORKER_BACKENDS,
    PredictionConfig,
    RunConfig,
)
from ntpredict.domain.validation import validate_config
from ntpredict.infrastructure.logger import Logger


class ArgumentParser:
    """Command line argument parsing and validation"""

    def __init__(self):
        self.logger = Logger()
        self.parser = self._create_parser()

    def _create_parser(self) -> argparse.ArgumentParser:
        """Create and configure the argument parser"""
        parser = argparse.ArgumentParser(
            description="Nearest template prediction with permutation p-values"
        )

        # Required arguments
        parser.add_argument(
            "-d", "--data_file",
            type=str,
            required=True,
            help="Expression matrix (CSV/TSV): feature ids in the first column, one column per sample",
        )
        parser.add_argument(
            "-t", "--templates_file",
            type=str,
            required=True,
            help="Template table (CSV/TSV) with one row per marker feature and class",
        )
        parser.add_argument(
            "-o", "--out_dir",
            type=str,
            required=True,
            help="Output directory for saving results",
        )
        parser.add_argument(
            "-s", "--sample_name",
            type=str,
            required=True,
            help="Name used as prefix for output files",
        )

        # Optional arguments with defaults
        parser.add_argument(
            "-m", "--distance_metric",
            choices=DISTANCE_METRICS,
            default="cosine",
            help="Similarity underlying the template distance (default: cosine)",
        )
        parser.add_argument(
            "-n", "--n_perm",
            type=int,
            default=1000,
            help="Permutations per sample; at least 100 (default: 1000)",
        )
        parser.add_argument(
            "-w", "--workers",
            type=int,
            default=1,
            help="Number of parallel workers for the permutation test (default: 1)",
        )
        parser.add_argument(
            "--backend",
            choices=WORKER_BACKENDS,
            default="process",
            help="Worker pool backend (default: process)",
        )
        parser.add_argument(
            "--timeout",
            type=float,
            default=None,
            help="Seconds after which unfinished workers are terminated and their samples failed (process backend only)",
        )
        parser.add_argument(
            "--count_data",
            action="store_true",
            help="Input holds counts: apply quantile normalization and log2 before scaling",
        )
        parser.add_argument(
            "--normalization",
            choices=NORMALIZATION_STRATEGIES,
            default="none",
            help="Normalization applied before prediction (default: none, input already centered/scaled)",
        )
        parser.add_argument(
            "--seed",
            type=int,
            default=None,
            help="Random seed for reproducible permutation p-values",
        )
        parser.add_argument(
            "--p_threshold",
            type=float,
            default=None,
            help="Set predictions with raw p-value above this to 'unassigned'",
        )
        parser.add_argument(
            "--fdr_threshold",
            type=float,
            default=None,
            help="Set predictions with FDR above this to 'unassigned'",
        )
        parser.add_argument(
            "--namespace",
            choices=FEATURE_NAMESPACES,
            default="symbol",
            help="Identifier namespace shared by matrix rows and template markers (default: symbol)",
        )
        parser.add_argument(
            "--reference_file",
            type=str,
            default=None,
            help="Reference cohort matrix whose feature statistics are used for scaling",
        )
        parser.add_argument(
            "--feature_column",
            type=str,
            default="probe",
            help="Template table column with feature ids (default: probe)",
        )
        parser.add_argument(
            "--class_column",
            type=str,
            default="class",
            help="Template table column with class labels (default: class)",
        )
        parser.add_argument(
            "--log_file",
            type=str,
            default=None,
            help="Optional file to copy log output to",
        )

        return parser

    def parse_arguments(self, argv: Optional[List[str]] = None) -> RunConfig:
        """Parse command line arguments and return RunConfig"""
        args = self.parser.parse_args(argv)

        prediction = PredictionConfig(
            distance_metric=args.distance_metric,
            n_perm=args.n_perm,
            worker_count=args.workers,
            worker_backend=args.backend,
            worker_timeout=args.timeout,
            is_count_data=args.count_data,
            normalization=args.normalization,
            random_seed=args.seed,
            p_value_threshold=args.p_threshold,
            fdr_threshold=args.fdr_threshold,
            namespace=args.namespace,
        )
        config = RunConfig(
            data_file=args.data_file,
            templates_file=args.templates_file,
            out_dir=args.out_dir,
            sample_name=args.sample_name,
            prediction=prediction,
            reference_file=args.reference_file,
            log_file=args.log_file,
            feature_column=args.feature_column,
            class_column=args.class_column,
        )

        self.validate_config(config)
        return config

    def validate_config(self, config: RunConfig) -> None:
        """
        Validate the run configuration.

        Raises:
            ConfigurationError: For invalid engine options
            FileNotFoundError: For missing input files
        """
        validate_config(config.prediction)

        for path in (config.data_file, config.templates_file, config.reference_file):
            if path is not None and not os.path.exists(path):
                raise FileNotFoundError(f"Input file not found: {path}")

        os.makedirs(config.out_dir, exist_ok=True)

        if config.prediction.is_count_data and config.prediction.normalization != "none":
            self.logger.log_warning(
                "--count_data overrides --normalization; using quantile_log2"
            )

        self.logger.log_success("Configuration validation passed")
