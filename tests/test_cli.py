"""Tests for the command line entry points."""
import json

from click.testing import CliRunner

from improvement.cli import cli as improvement_cli
from training.store import ExampleStore
from verifier.cli import cli as verifier_cli

from conftest import make_example, make_tender


def seeded_store(tmp_path):
    store = ExampleStore(tmp_path / "training_data")
    store.initialize()
    for n in range(3):
        make_example(store, ground_truth=make_tender(bil=n + 1), bil=n + 1)
    make_example(store, ground_truth=make_tender(kod_bidang="010302"), kod_bidang="010303")
    return store


class TestConfigErrors:
    def test_malformed_environment_value(self, tmp_path, monkeypatch):
        monkeypatch.setenv("TRAINING_DATA_DIR", str(tmp_path / "training_data"))
        monkeypatch.setenv("BATCH_SIZE", "abc")

        result = CliRunner().invoke(verifier_cli, ["analyze"])

        assert result.exit_code == 1
        assert "Invalid configuration" in result.output
        assert "BATCH_SIZE" in result.output


class TestVerifierCli:
    def test_analyze(self, tmp_path, monkeypatch):
        store = seeded_store(tmp_path)
        monkeypatch.setenv("TRAINING_DATA_DIR", str(store.root))

        result = CliRunner().invoke(verifier_cli, ["analyze"])

        assert result.exit_code == 0, result.output
        assert "Extraction accuracy: 75.0%" in result.output
        assert store.load_report()["extraction_accuracy_percentage"] == 75.0

    def test_analyze_json(self, tmp_path, monkeypatch):
        store = seeded_store(tmp_path)
        monkeypatch.setenv("TRAINING_DATA_DIR", str(store.root))
        result = CliRunner().invoke(verifier_cli, ["analyze", "--json"])
        assert json.loads(result.stdout)["failure_patterns"] == ["code_format"]

    def test_report_html(self, tmp_path, monkeypatch):
        store = seeded_store(tmp_path)
        monkeypatch.setenv("TRAINING_DATA_DIR", str(store.root))
        out = tmp_path / "report.html"
        result = CliRunner().invoke(verifier_cli, ["report", "--html", str(out)])
        assert result.exit_code == 0, result.output
        assert "Tender Extraction Training Report" in out.read_text()

    def test_corrupt_store_exits_nonzero(self, tmp_path, monkeypatch):
        store = seeded_store(tmp_path)
        store.sessions_path.write_text("{oops")
        monkeypatch.setenv("TRAINING_DATA_DIR", str(store.root))
        result = CliRunner().invoke(verifier_cli, ["analyze"])
        assert result.exit_code == 1
        assert "Error:" in result.output


class TestImprovementCli:
    def test_instructions(self, tmp_path, monkeypatch):
        monkeypatch.setenv("TRAINING_DATA_DIR", str(tmp_path / "training_data"))
        result = CliRunner().invoke(improvement_cli, ["instructions"])
        assert result.exit_code == 0
        assert "v1.0.0" in result.output

    def test_rollback_missing(self, tmp_path, monkeypatch):
        monkeypatch.setenv("TRAINING_DATA_DIR", str(tmp_path / "training_data"))
        result = CliRunner().invoke(improvement_cli, ["rollback", "3"])
        assert result.exit_code == 1
        assert "No instruction snapshots found for iteration 3" in result.output
