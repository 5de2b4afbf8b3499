"""
Core domain models for the NTP prediction pipeline.
Contains data structures for inputs, configuration and results.
"""

from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

import numpy as np
import pandas as pd

from ntpredict.domain.exceptions import ConfigurationError, SampleComputationDegeneracy

UNASSIGNED = "unassigned"

DISTANCE_METRICS = ("cosine", "pearson", "spearman", "kendall")
FEATURE_NAMESPACES = ("entrez", "ensembl", "symbol")
NORMALIZATION_STRATEGIES = ("none", "center_scale", "quantile_log2")
WORKER_BACKENDS = ("thread", "process")

MIN_PERMUTATIONS = 100
MIN_RECOMMENDED_SAMPLES = 40


def _frozen_array(values: np.ndarray) -> np.ndarray:
    array = np.array(values, dtype=np.float64, copy=True)
    array.setflags(write=False)
    return array


def _duplicates(items: Iterable[str]) -> List[str]:
    return [item for item, count in Counter(items).items() if count > 1]


@dataclass(frozen=True)
class ExpressionMatrix:
    """P features (rows) x N samples (columns) of real-valued measurements"""

    values: np.ndarray
    feature_ids: Tuple[str, ...]
    sample_ids: Tuple[str, ...]
    namespace: str = "symbol"

    def __post_init__(self):
        values = _frozen_array(self.values)
        if values.ndim != 2:
            raise ConfigurationError(
                f"Expression matrix must be 2-dimensional, got {values.ndim} dimensions"
            )
        feature_ids = tuple(str(f) for f in self.feature_ids)
        sample_ids = tuple(str(s) for s in self.sample_ids)
        if values.shape != (len(feature_ids), len(sample_ids)):
            raise ConfigurationError(
                f"Matrix shape {values.shape} does not match "
                f"{len(feature_ids)} feature ids x {len(sample_ids)} sample ids"
            )

        duplicated_features = _duplicates(feature_ids)
        if duplicated_features:
            raise ConfigurationError(
                f"Duplicate feature ids in expression matrix: {duplicated_features[:5]}"
            )
        duplicated_samples = _duplicates(sample_ids)
        if duplicated_samples:
            raise ConfigurationError(
                f"Duplicate sample ids in expression matrix: {duplicated_samples[:5]}"
            )

        object.__setattr__(self, "values", values)
        object.__setattr__(self, "feature_ids", feature_ids)
        object.__setattr__(self, "sample_ids", sample_ids)

    @classmethod
    def from_dataframe(
        cls, df: pd.DataFrame, namespace: str = "symbol"
    ) -> "ExpressionMatrix":
        """Build a matrix from a DataFrame indexed by feature id with one column per sample"""
        return cls(
            values=df.to_numpy(dtype=np.float64),
            feature_ids=tuple(df.index),
            sample_ids=tuple(df.columns),
            namespace=namespace,
        )

    def to_dataframe(self) -> pd.DataFrame:
        return pd.DataFrame(
            np.array(self.values),
            index=list(self.feature_ids),
            columns=list(self.sample_ids),
        )

    def with_values(self, values: np.ndarray) -> "ExpressionMatrix":
        """Return a new matrix with the same labels and replaced values"""
        return ExpressionMatrix(
            values=values,
            feature_ids=self.feature_ids,
            sample_ids=self.sample_ids,
            namespace=self.namespace,
        )

    @property
    def shape(self) -> Tuple[int, int]:
        return self.values.shape

    @property
    def n_features(self) -> int:
        return self.values.shape[0]

    @property
    def n_samples(self) -> int:
        return self.values.shape[1]


@dataclass(frozen=True)
class ClassTemplate:
    """Marker features characterizing one class"""

    label: str
    markers: frozenset


@dataclass(frozen=True)
class TemplateSet:
    """Ordered collection of class templates, validated once at construction"""

    classes: Tuple[ClassTemplate, ...]
    namespace: str = "symbol"

    def __post_init__(self):
        classes = tuple(self.classes)
        if not classes:
            raise ConfigurationError("Template set contains no classes")

        labels = [template.label for template in classes]
        if any(not str(label).strip() for label in labels):
            raise ConfigurationError("Template class labels must be non-empty")
        if UNASSIGNED in labels:
            raise ConfigurationError(
                f"'{UNASSIGNED}' is reserved and cannot be used as a class label"
            )
        duplicated = _duplicates(labels)
        if duplicated:
            raise ConfigurationError(f"Duplicate template classes: {duplicated}")

        empty = [template.label for template in classes if not template.markers]
        if empty:
            raise ConfigurationError(f"Template classes without markers: {empty}")

        object.__setattr__(self, "classes", classes)

    @classmethod
    def from_mapping(
        cls, mapping: Mapping[str, Iterable[str]], namespace: str = "symbol"
    ) -> "TemplateSet":
        """Build templates from a class label -> marker ids mapping (insertion order kept)"""
        return cls(
            classes=tuple(
                ClassTemplate(label=str(label), markers=frozenset(str(m) for m in markers))
                for label, markers in mapping.items()
            ),
            namespace=namespace,
        )

    @classmethod
    def from_dataframe(
        cls,
        df: pd.DataFrame,
        feature_column: str = "probe",
        class_column: str = "class",
        namespace: str = "symbol",
    ) -> "TemplateSet":
        """
        Build templates from a long table with one row per (feature, class) pair.

        Classes keep the order in which they first appear in the table.
        """
        missing = {feature_column, class_column} - set(df.columns)
        if missing:
            raise ConfigurationError(
                f"Template table is missing columns: {sorted(missing)}"
            )

        rows = df[[feature_column, class_column]].dropna()
        mapping: Dict[str, List[str]] = {}
        for feature, label in zip(rows[feature_column], rows[class_column]):
            mapping.setdefault(str(label), []).append(str(feature))
        return cls.from_mapping(mapping, namespace=namespace)

    @property
    def labels(self) -> Tuple[str, ...]:
        return tuple(template.label for template in self.classes)

    @property
    def n_classes(self) -> int:
        return len(self.classes)

    def all_markers(self) -> frozenset:
        return frozenset().union(*(template.markers for template in self.classes))


@dataclass(frozen=True)
class TemplateAlignment:
    """Template indicator matrix resolved against the matrix feature space"""

    feature_indices: np.ndarray
    feature_ids: Tuple[str, ...]
    indicator: np.ndarray
    class_labels: Tuple[str, ...]
    matched_markers: Dict[str, int] = field(default_factory=dict)
    dropped_markers: Dict[str, int] = field(default_factory=dict)

    @property
    def n_features(self) -> int:
        return self.indicator.shape[0]


@dataclass(frozen=True)
class DistanceMatrix:
    """N samples x K classes of distances in [0, 1] (NaN where undefined)"""

    values: np.ndarray
    sample_ids: Tuple[str, ...]
    class_labels: Tuple[str, ...]

    def __post_init__(self):
        object.__setattr__(self, "values", _frozen_array(self.values))

    def to_dataframe(self) -> pd.DataFrame:
        return pd.DataFrame(
            np.array(self.values),
            index=list(self.sample_ids),
            columns=list(self.class_labels),
        )


@dataclass(frozen=True)
class PredictionRecord:
    """Prediction and significance for one sample"""

    sample_id: str
    predicted_class: str
    distances: Tuple[float, ...]
    p_value: float
    adjusted_p_value: float

    @property
    def is_assigned(self) -> bool:
        return self.predicted_class != UNASSIGNED


@dataclass(frozen=True)
class PredictionTable:
    """Ordered prediction records, one per input sample"""

    records: Tuple[PredictionRecord, ...]
    class_labels: Tuple[str, ...]
    degeneracies: Tuple[SampleComputationDegeneracy, ...] = ()

    def __len__(self) -> int:
        return len(self.records)

    def __iter__(self):
        return iter(self.records)

    def __getitem__(self, index: int) -> PredictionRecord:
        return self.records[index]

    @property
    def sample_ids(self) -> Tuple[str, ...]:
        return tuple(record.sample_id for record in self.records)

    def to_dataframe(self) -> pd.DataFrame:
        """Render the output table: prediction, one distance per class, p-value, FDR"""
        distance_columns = [f"d_{label}" for label in self.class_labels]
        df = pd.DataFrame(
            [record.distances for record in self.records],
            index=pd.Index(self.sample_ids, name="sample"),
            columns=distance_columns,
            dtype=np.float64,
        )
        df.insert(0, "prediction", [record.predicted_class for record in self.records])
        df["p_value"] = [record.p_value for record in self.records]
        df["fdr"] = [record.adjusted_p_value for record in self.records]
        return df

    def class_counts(self) -> Dict[str, int]:
        """Number of samples predicted per class, unassigned last"""
        counts = Counter(record.predicted_class for record in self.records)
        summary = {label: counts.get(label, 0) for label in self.class_labels}
        summary[UNASSIGNED] = counts.get(UNASSIGNED, 0)
        return summary


@dataclass
class PredictionConfig:
    """Configuration for the NTP prediction engine"""

    distance_metric: str = "cosine"
    n_perm: int = 1000
    worker_count: int = 1
    worker_backend: str = "process"
    worker_timeout: Optional[float] = None
    is_count_data: bool = False
    normalization: str = "none"
    random_seed: Optional[int] = None
    p_value_threshold: Optional[float] = None
    fdr_threshold: Optional[float] = None
    namespace: str = "symbol"

    @property
    def effective_normalization(self) -> str:
        """Count data always goes through quantile normalization and log2"""
        if self.is_count_data:
            return "quantile_log2"
        return self.normalization


@dataclass
class RunConfig:
    """Configuration for a file-based prediction run"""

    data_file: str
    templates_file: str
    out_dir: str
    sample_name: str
    prediction: PredictionConfig
    reference_file: Optional[str] = None
    log_file: Optional[str] = None
    feature_column: str = "probe"
    class_column: str = "class"
