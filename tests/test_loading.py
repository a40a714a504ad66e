"""
Tests for core/loading.py and services/io.py readers.
"""

import pandas as pd
import pytest

from rnaseq_de.config import Settings
from rnaseq_de.core.loading import (
    AnalysisInputs,
    load_inputs,
    read_alignment_summary,
    read_counts,
    read_gene_annotation,
    read_metadata,
    read_threshold,
)
from rnaseq_de.services.io import read_dataframe, write_table


class TestReadDataframe:
    """Test extension based table reading."""

    def test_csv_and_tsv(self, tmp_path):
        df = pd.DataFrame({"a": [1, 2], "b": ["x", "y"]})
        df.to_csv(tmp_path / "t.csv", index=False)
        df.to_csv(tmp_path / "t.tsv", sep="\t", index=False)
        df.to_csv(tmp_path / "t.txt", sep="\t", index=False)

        for name in ("t.csv", "t.tsv", "t.txt"):
            pd.testing.assert_frame_equal(read_dataframe(tmp_path / name), df)

    def test_unknown_extension_reads_tab(self, tmp_path):
        path = tmp_path / "table.dat"
        path.write_text("a\tb\n1\t2\n")
        df = read_dataframe(path)
        assert list(df.columns) == ["a", "b"]

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            read_dataframe(tmp_path / "nope.tsv")

    def test_write_table_roundtrip(self, tmp_path):
        df = pd.DataFrame({"gene_id": ["g1", "g2"], "value": [1.5, 2.5]})
        out = write_table(df, tmp_path / "tables", "values")
        assert out.name == "values.tsv"
        pd.testing.assert_frame_equal(pd.read_csv(out, sep="\t"), df)


class TestGeneAnnotation:
    def test_symbol_and_link(self, tmp_path):
        path = tmp_path / "annotation.tsv"
        pd.DataFrame(
            {"gene_id": ["ENSG1", "ENSG2"], "symbol": ["Xist", None]}
        ).to_csv(path, sep="\t", index=False)

        ann = read_gene_annotation(
            path, url_template="https://example.org/{gene_id}"
        )
        assert ann.index.name == "gene_id"
        assert ann.loc["ENSG1", "symbol"] == "Xist"
        assert ann.loc["ENSG1", "link"] == (
            '<a href="https://example.org/ENSG1">Xist</a>'
        )
        # missing symbol falls back to the id
        assert ann.loc["ENSG2", "symbol"] == "ENSG2"

    def test_missing_column(self, tmp_path):
        path = tmp_path / "annotation.tsv"
        pd.DataFrame({"gene_id": ["ENSG1"]}).to_csv(path, sep="\t", index=False)
        with pytest.raises(ValueError, match="symbol"):
            read_gene_annotation(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            read_gene_annotation(tmp_path / "absent.tsv")


class TestAlignmentAndMetadata:
    def test_duplicate_sample_unit_pair(self, tmp_path):
        path = tmp_path / "alignment.tsv"
        pd.DataFrame(
            {
                "sample_id": ["S1", "S1"],
                "unit_id": ["lane1", "lane1"],
                "uniquely_aligned": [10, 20],
            }
        ).to_csv(path, sep="\t", index=False)
        with pytest.raises(ValueError, match="Duplicate"):
            read_alignment_summary(path)

    def test_metadata_indexed_in_file_order(self, tmp_path):
        path = tmp_path / "metadata.csv"
        pd.DataFrame(
            {"sample_id": ["S2", "S1"], "sex": ["female", "male"]}
        ).to_csv(path, index=False)
        meta = read_metadata(path, required_cols=["sex"])
        assert list(meta.index) == ["S2", "S1"]
        assert meta.index.name == "sample_id"

    def test_metadata_missing_covariate(self, tmp_path):
        path = tmp_path / "metadata.csv"
        pd.DataFrame({"sample_id": ["S1"], "sex": ["male"]}).to_csv(
            path, index=False
        )
        with pytest.raises(ValueError, match="genotype"):
            read_metadata(path, required_cols=["sex", "genotype"])

    def test_metadata_duplicate_ids(self, tmp_path):
        path = tmp_path / "metadata.csv"
        pd.DataFrame({"sample_id": ["S1", "S1"], "sex": ["male", "male"]}).to_csv(
            path, index=False
        )
        with pytest.raises(ValueError, match="S1"):
            read_metadata(path)


class TestCounts:
    def test_integer_counts_indexed_by_gene(self, tmp_path):
        path = tmp_path / "counts.tsv"
        pd.DataFrame(
            {"gene_id": ["g1", "g2"], "S1": [1.0, 2.0], "S2": [3, 4]}
        ).to_csv(path, sep="\t", index=False)
        counts = read_counts(path)
        assert list(counts.index) == ["g1", "g2"]
        assert all(pd.api.types.is_integer_dtype(t) for t in counts.dtypes)

    def test_negative_counts(self, tmp_path):
        path = tmp_path / "counts.tsv"
        pd.DataFrame({"gene_id": ["g1"], "S1": [-1]}).to_csv(
            path, sep="\t", index=False
        )
        with pytest.raises(ValueError, match="negative"):
            read_counts(path)

    def test_non_numeric_counts(self, tmp_path):
        path = tmp_path / "counts.tsv"
        pd.DataFrame({"gene_id": ["g1", "g2"], "S1": ["a", "3"]}).to_csv(
            path, sep="\t", index=False
        )
        with pytest.raises(ValueError, match="non-numeric"):
            read_counts(path)

    def test_fractional_counts_rejected(self, tmp_path):
        path = tmp_path / "counts.tsv"
        pd.DataFrame({"gene_id": ["g1", "g2"], "S1": [1, 2], "S2": [2.7, 4.0]}).to_csv(
            path, sep="\t", index=False
        )
        with pytest.raises(ValueError, match="'S2' contains non-integer"):
            read_counts(path)

    def test_missing_count_names_column(self, tmp_path):
        path = tmp_path / "counts.tsv"
        path.write_text("gene_id\tS1\tS2\ng1\t\t3\ng2\t5\t4\n")
        with pytest.raises(ValueError, match="'S1' contains missing"):
            read_counts(path)


class TestThreshold:
    def test_single_value(self, tmp_path):
        path = tmp_path / "threshold.txt"
        path.write_text("  2.5\n")
        assert read_threshold(path) == 2.5

    def test_more_than_one_value(self, tmp_path):
        path = tmp_path / "threshold.txt"
        path.write_text("1 2\n")
        with pytest.raises(ValueError):
            read_threshold(path)

    def test_not_a_number(self, tmp_path):
        path = tmp_path / "threshold.txt"
        path.write_text("high\n")
        with pytest.raises(ValueError):
            read_threshold(path)

    def test_missing(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            read_threshold(tmp_path / "threshold.txt")


class TestLoadInputs:
    def test_all_inputs(self, input_files):
        inputs = load_inputs(Settings(**input_files))
        assert isinstance(inputs, AnalysisInputs)
        assert inputs.log2_threshold == 3.0
        assert inputs.counts.shape == (204, 8)
        assert len(inputs.metadata) == 8
        assert len(inputs.alignment) == 16
        assert len(inputs.annotation) == 150

    def test_unset_path(self, input_files):
        paths = dict(input_files)
        paths["counts_path"] = None
        with pytest.raises(ValueError, match="counts_path"):
            load_inputs(Settings(**paths))
