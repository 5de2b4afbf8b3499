"""Tests for loading inputs and saving outputs."""

import os

import numpy as np
import pandas as pd
import pytest

from ntpredict.domain.exceptions import ConfigurationError, SampleComputationDegeneracy
from ntpredict.domain.models import (
    UNASSIGNED,
    PredictionConfig,
    PredictionRecord,
    PredictionTable,
    RunConfig,
)
from ntpredict.infrastructure.data.data_loader import NTPDataLoader
from ntpredict.infrastructure.data.data_saver import NTPDataSaver


@pytest.fixture
def loader():
    return NTPDataLoader()


@pytest.fixture
def table():
    return PredictionTable(
        records=(
            PredictionRecord("s1", "A", (0.25, 0.5), 0.01, 0.02),
            PredictionRecord("s2", UNASSIGNED, (np.nan, np.nan), np.nan, np.nan),
        ),
        class_labels=("A", "B"),
        degeneracies=(SampleComputationDegeneracy("s2"),),
    )


class TestNTPDataLoader:
    def test_load_csv_matrix(self, loader, tmp_path):
        path = tmp_path / "matrix.csv"
        path.write_text(",s1,s2\nTP53,1.5,-0.5\nMYC,0.25,2\n")

        matrix = loader.load_expression_matrix(str(path))

        assert matrix.feature_ids == ("TP53", "MYC")
        assert matrix.sample_ids == ("s1", "s2")
        np.testing.assert_array_equal(matrix.values, [[1.5, -0.5], [0.25, 2.0]])

    def test_load_tsv_matrix_with_missing_values(self, loader, tmp_path):
        path = tmp_path / "matrix.tsv"
        path.write_text("gene\ts1\ts2\nTP53\t1.5\t\nMYC\tNA\t2\n")

        matrix = loader.load_expression_matrix(str(path))

        assert matrix.shape == (2, 2)
        assert np.isnan(matrix.values[0, 1])
        assert np.isnan(matrix.values[1, 0])

    def test_missing_file_raises(self, loader, tmp_path):
        with pytest.raises(FileNotFoundError):
            loader.load_expression_matrix(str(tmp_path / "absent.csv"))

    def test_non_numeric_values_raise(self, loader, tmp_path):
        path = tmp_path / "matrix.csv"
        path.write_text(",s1\nTP53,high\n")

        with pytest.raises(ValueError, match="Non-numeric"):
            loader.load_expression_matrix(str(path))

    def test_duplicate_features_raise(self, loader, tmp_path):
        path = tmp_path / "matrix.csv"
        path.write_text(",s1\nTP53,1\nTP53,2\n")

        with pytest.raises(ConfigurationError):
            loader.load_expression_matrix(str(path))

    def test_load_templates_keeps_first_appearance_order(self, loader, tmp_path):
        path = tmp_path / "templates.csv"
        path.write_text("probe,class\nMYC,B\nTP53,A\nEGFR,B\n007,A\n")

        templates = loader.load_templates(str(path))

        assert templates.labels == ("B", "A")
        assert templates.classes[0].markers == frozenset({"MYC", "EGFR"})
        # Identifiers are read as text
        assert "007" in templates.classes[1].markers

    def test_load_templates_with_custom_columns(self, loader, tmp_path):
        path = tmp_path / "templates.tsv"
        path.write_text("gene\tsubtype\nMYC\tbasal\nTP53\tluminal\n")

        templates = loader.load_templates(
            str(path), feature_column="gene", class_column="subtype"
        )

        assert templates.labels == ("basal", "luminal")


class TestNTPDataSaver:
    def test_save_results_writes_three_files(self, table, tmp_path):
        run_config = RunConfig(
            data_file="matrix.csv",
            templates_file="templates.csv",
            out_dir=str(tmp_path / "results"),
            sample_name="batch",
            prediction=PredictionConfig(n_perm=500, fdr_threshold=0.1),
        )

        NTPDataSaver().save_results(table, run_config, seed=99)

        out = tmp_path / "results"
        predictions = pd.read_csv(out / "batch_NTP_Predictions.csv", index_col=0)
        distances = pd.read_csv(out / "batch_NTP_Distances.csv", index_col=0)
        summary = pd.read_csv(out / "batch_NTP_Summary.csv").set_index("Item")["Value"]

        assert list(predictions.columns) == ["prediction", "d_A", "d_B", "p_value", "fdr"]
        assert list(predictions["prediction"]) == ["A", UNASSIGNED]
        assert np.isnan(predictions.loc["s2", "p_value"])
        assert distances.loc["s1", "B"] == pytest.approx(0.5)
        assert summary["class:A"] == "1"
        assert summary["class:unassigned"] == "1"
        assert summary["n_perm"] == "500"
        assert summary["random_seed"] == "99"
        assert summary["degenerate_samples"] == "1"

    def test_save_predictions_creates_parent_directory(self, table, tmp_path):
        path = os.path.join(str(tmp_path), "nested", "predictions.csv")

        NTPDataSaver().save_predictions(table, path)

        assert os.path.exists(path)
