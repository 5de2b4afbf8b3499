"""
Centralized logging for the NTP prediction pipeline.
"""

import logging
from typing import Mapping, Optional, Tuple

LOGGER_NAME = "ntpredict"


class Logger:
    """Centralized logging for the NTP prediction pipeline"""

    def __init__(self, log_file: Optional[str] = None, level: int = logging.INFO):
        """Initialize logger with optional file output"""
        self.logger = logging.getLogger(LOGGER_NAME)
        self.logger.setLevel(level)

        # Every service creates a Logger; only the first one (or one asking
        # for a log file) installs handlers
        if self.logger.handlers and not log_file:
            return

        self.logger.handlers.clear()

        formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        )

        console_handler = logging.StreamHandler()
        console_handler.setFormatter(formatter)
        self.logger.addHandler(console_handler)

        if log_file:
            file_handler = logging.FileHandler(log_file, encoding="utf-8")
            file_handler.setFormatter(formatter)
            self.logger.addHandler(file_handler)

    def log_step(self, step: str, details: str) -> None:
        """Log a processing step with details"""
        self.logger.info(f"🔍 {step}: {details}")

    def log_error(self, error: Exception, context: str) -> None:
        """Log an error with context"""
        self.logger.error(f"❌ Error in {context}: {error}", exc_info=True)

    def log_warning(self, warning: str) -> None:
        """Log a warning message"""
        self.logger.warning(f"⚠️ {warning}")

    def log_success(self, message: str) -> None:
        """Log a success message"""
        self.logger.info(f"✅ {message}")

    def log_save(self, file_path: str) -> None:
        """Log a file save operation"""
        self.logger.info(f"💾 Saved to: {file_path}")

    def log_matrix_shape(self, matrix_name: str, shape: Tuple[int, ...]) -> None:
        self.logger.info(f"📊 {matrix_name} shape: {shape}")

    def log_degeneracy(self, degeneracy: Exception) -> None:
        """Log a sample whose distances are partly or wholly undefined"""
        self.logger.warning(f"🕳️ Degenerate sample. {degeneracy}")

    def log_worker_failure(self, failure: Exception) -> None:
        self.logger.warning(f"💥 Worker failure. {failure}")

    def log_seed(self, seed: int, drawn: bool) -> None:
        """Log the permutation seed; a drawn seed is needed to replay the run"""
        source = "drawn from OS entropy" if drawn else "configured"
        self.logger.info(f"🎲 Permutation seed ({source}): {seed}")

    def log_p_value(self, name: str, value: float) -> None:
        """Log a p-value statistic; NaN when no sample produced one"""
        self.logger.info(f"📈 {name}: {value:.6g}")

    def log_threshold(self, threshold_name: str, value: float) -> None:
        self.logger.info(f"🎯 {threshold_name}: {value:.4f}")

    def log_class_counts(self, counts: Mapping[str, int]) -> None:
        """Log predicted samples per class in a single line"""
        summary = ", ".join(f"{label}={count}" for label, count in counts.items())
        self.logger.info(f"🧬 Predictions per class: {summary}")
