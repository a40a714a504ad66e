"""
Tests for core/preparation.py: sample table and count filtering.
"""

import logging

import numpy as np
import pandas as pd
import pytest

from rnaseq_de.core.preparation import (
    align_counts_to_metadata,
    build_sample_table,
    drop_zero_rows,
    expressed_genes,
    expression_threshold,
    filter_by_expression,
    remove_technical_rows,
)


@pytest.fixture
def metadata():
    return pd.DataFrame(
        {
            "sex": ["male", "female", "female"],
            "tissue": ["liver"] * 3,
            "genotype": ["wt", "ko", "wt"],
            "treatment_duration": ["7d"] * 3,
        },
        index=pd.Index(["S3", "S1", "S2"], name="sample_id"),
    )


class TestBuildSampleTable:
    def test_sorted_by_covariates_then_ids(self, metadata):
        alignment = pd.DataFrame(
            {
                "sample_id": ["S1", "S1", "S2", "S3"],
                "unit_id": ["lane2", "lane1", "lane1", "lane1"],
                "uniquely_aligned": [100, 200, 300, 400],
            }
        )
        table = build_sample_table(metadata, alignment)
        # female < male; within female ko < wt; units sorted within sample
        assert table["sample_id"].tolist() == ["S1", "S1", "S2", "S3"]
        assert table["unit_id"].tolist() == ["lane1", "lane2", "lane1", "lane1"]
        assert list(table.index) == [0, 1, 2, 3]

    def test_unaligned_sample_kept_with_warning(self, metadata, caplog):
        alignment = pd.DataFrame(
            {
                "sample_id": ["S1", "S2"],
                "unit_id": ["lane1", "lane1"],
                "uniquely_aligned": [100, 200],
            }
        )
        with caplog.at_level(logging.WARNING):
            table = build_sample_table(metadata, alignment)
        assert "S3" in table["sample_id"].tolist()
        row = table.loc[table["sample_id"] == "S3"].iloc[0]
        assert pd.isna(row["uniquely_aligned"])
        assert "S3" in caplog.text


class TestAlignCounts:
    def test_columns_follow_metadata_order(self, metadata):
        counts = pd.DataFrame(
            {"S1": [1, 2], "S2": [3, 4], "S3": [5, 6]}, index=["g1", "g2"]
        )
        aligned = align_counts_to_metadata(counts, metadata)
        assert list(aligned.columns) == list(metadata.index)
        assert aligned.loc["g1", "S3"] == 5

    def test_mismatch_names_both_sides(self, metadata):
        counts = pd.DataFrame({"S1": [1], "S2": [2], "S9": [3]}, index=["g1"])
        with pytest.raises(ValueError) as excinfo:
            align_counts_to_metadata(counts, metadata)
        assert "S3" in str(excinfo.value)
        assert "S9" in str(excinfo.value)


class TestRowFilters:
    def test_technical_rows_removed(self):
        counts = pd.DataFrame(
            {"S1": [1, 2, 3, 4, 5]},
            index=["ENSG1", "ERCC-00002", "__no_feature", "__ambiguous", "ENSG2"],
        )
        kept = remove_technical_rows(counts)
        assert list(kept.index) == ["ENSG1", "ENSG2"]

    def test_zero_row_absent(self):
        counts = pd.DataFrame(
            [[0, 0, 0, 0], [0, 1, 0, 0], [5, 5, 5, 5]],
            index=["zero", "one", "five"],
            columns=["S1", "S2", "S3", "S4"],
        )
        kept = drop_zero_rows(counts)
        assert "zero" not in kept.index
        assert list(kept.index) == ["one", "five"]


class TestExpressionThreshold:
    def test_linear_threshold(self):
        assert expression_threshold(3) == 7.0
        assert expression_threshold(0) == 0.0

    def test_strictly_greater(self):
        normalized = pd.DataFrame(
            {"S1": [7.0, 7.5, 0.0], "S2": [7.0, 0.0, 8.0]},
            index=["at", "above", "other_sample"],
        )
        kept = expressed_genes(normalized, 3)
        assert list(kept) == ["above", "other_sample"]

    def test_filter_keeps_raw_counts(self):
        counts = pd.DataFrame({"S1": [10, 1], "S2": [20, 1]}, index=["hi", "lo"])
        sf = pd.Series([0.5, 2.0], index=["S1", "S2"])
        normalized = counts.div(sf, axis=1)
        kept = filter_by_expression(counts, normalized, 3)
        assert list(kept.index) == ["hi"]
        assert np.array_equal(kept.to_numpy(), counts.loc[["hi"]].to_numpy())
