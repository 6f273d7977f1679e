"""
Command-line tests: run and size-factors subcommands end to end.
"""

import json

import pandas as pd
import pytest

from countnorm.cli import main
from conftest import generate_negative_binomial_counts


@pytest.fixture
def counts_file(tmp_path):
    """Simulated featureCounts-style table (no annotation columns)."""
    counts = generate_negative_binomial_counts(n_genes=400, n_per_condition=3, de_fraction=0.2, seed=9)
    path = tmp_path / "counts.tsv"
    df = counts.to_frame().astype(int)
    df.index.name = "Geneid"
    df.to_csv(path, sep="\t")
    return path


class TestRunCommand:

    def test_writes_outputs(self, tmp_path, counts_file):
        out = tmp_path / "results"
        assert main(["run", "-i", str(counts_file), "-o", str(out)]) == 0

        for name in (
            "normalized.data.csv", "log2.data.csv", "vst.data.csv", "size_factors.csv",
            "samples.csv", "correlation.csv", "linkage.csv", "summary.json",
        ):
            assert (out / name).exists(), name

        summary = json.loads((out / "summary.json").read_text())
        assert summary["parameters"]["stabilizer"] == "vst"
        assert summary["n_samples"] == 6
        assert sorted(summary["leaf_order"]) == sorted(
            ['WT_1', 'WT_2', 'WT_3', 'KO_1', 'KO_2', 'KO_3']
        )

        samples = pd.read_csv(out / "samples.csv")
        assert list(samples.columns) == ['sample_id', 'condition']

    def test_options(self, tmp_path, counts_file):
        out = tmp_path / "rlog"
        code = main([
            "run", "-i", str(counts_file), "-o", str(out),
            "--stabilizer", "rlog", "--no-blind", "--linkage", "complete",
            "--fit-type", "local", "--min-total", "5",
        ])
        assert code == 0
        summary = json.loads((out / "summary.json").read_text())
        assert summary["parameters"] == {
            "stabilizer": "rlog",
            "blind": False,
            "fit_type": "local",
            "linkage": "complete",
            "pseudocount": 1.0,
            "min_total": 5,
        }
        assert (out / "rlog.data.csv").exists()

    def test_config_file(self, tmp_path, counts_file):
        out = tmp_path / "configured"
        config = tmp_path / "run.yaml"
        config.write_text(
            f"input: {counts_file}\n"
            f"output: {out}\n"
            "stabilization:\n"
            "  method: rlog\n"
            "clustering:\n"
            "  linkage: complete\n"
        )
        assert main(["run", "--config", str(config), "--linkage", "average"]) == 0
        params = json.loads((out / "summary.json").read_text())["parameters"]
        assert params["stabilizer"] == "rlog"
        assert params["linkage"] == "average"

    def test_metadata_file(self, tmp_path, counts_file):
        meta = tmp_path / "samples.csv"
        meta.write_text(
            "sample,condition\n"
            + "".join(f"{c}_{i},{c.lower()}\n" for c in ("WT", "KO") for i in (1, 2, 3))
        )
        out = tmp_path / "meta"
        assert main(["run", "-i", str(counts_file), "-o", str(out), "-m", str(meta)]) == 0
        samples = pd.read_csv(out / "samples.csv", index_col=0)
        assert set(samples['condition']) == {'wt', 'ko'}

    def test_missing_input(self, tmp_path):
        assert main(["run", "-o", str(tmp_path / "x")]) == 1

    def test_missing_file(self, tmp_path):
        assert main(["run", "-i", str(tmp_path / "nope.txt"), "-o", str(tmp_path / "x")]) == 1

    def test_domain_error_exit_code(self, tmp_path):
        path = tmp_path / "zeros.tsv"
        path.write_text("Geneid\tA_1\tA_2\ng1\t0\t0\ng2\t0\t0\n")
        assert main(["run", "-i", str(path), "-o", str(tmp_path / "x")]) == 1
        assert not (tmp_path / "x").exists()

    def test_invalid_config(self, tmp_path, counts_file):
        config = tmp_path / "bad.yaml"
        config.write_text("stabilization:\n  method: asinh\n")
        assert main(["run", "-c", str(config), "-i", str(counts_file), "-o", str(tmp_path / "x")]) == 1

    def test_invalid_min_total_rejected_by_parser(self, counts_file):
        with pytest.raises(SystemExit):
            main(["run", "-i", str(counts_file), "-o", "x", "--min-total", "0"])


class TestSizeFactorsCommand:

    def test_stdout(self, counts_file, capsys):
        assert main(["size-factors", "-i", str(counts_file)]) == 0
        out = capsys.readouterr().out.splitlines()
        assert out[0] == "sample_id,size_factor"
        assert len(out) == 7

    def test_output_file(self, tmp_path, counts_file):
        path = tmp_path / "sf.csv"
        assert main(["size-factors", "-i", str(counts_file), "-o", str(path)]) == 0
        sf = pd.read_csv(path, index_col=0)['size_factor']
        assert (sf > 0).all()


class TestMain:

    def test_no_command_prints_help(self, capsys):
        assert main([]) == 0
        assert "countnorm" in capsys.readouterr().out

    def test_version(self, capsys):
        with pytest.raises(SystemExit) as exc:
            main(["--version"])
        assert exc.value.code == 0
        assert "0.1.0" in capsys.readouterr().out
