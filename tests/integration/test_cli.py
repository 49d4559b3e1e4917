"""
Integration tests for the command line interface.
"""

import json

import pytest
from click.testing import CliRunner

from agora.cli.main import cli
from agora.utils.logger import AgoraLogger, setup_logging


@pytest.fixture(autouse=True)
def restore_logging():
    """CliRunner swaps stdout; rebind the console handler once it is gone."""
    yield
    setup_logging()


class TestCli:
    """Tests for the agora command group."""

    def test_config(self, monkeypatch):
        monkeypatch.setenv("AGORA_DEFAULT_FEE_RATIO", "300")

        result = CliRunner().invoke(cli, ["config"])

        assert result.exit_code == 0, result.output
        assert json.loads(result.output)["default_fee_ratio"] == 300

    def test_demo_and_events(self, tmp_path):
        runner = CliRunner()

        demo = runner.invoke(cli, ["demo", "--journal", str(tmp_path)])
        assert demo.exit_code == 0, demo.output
        assert "Demo complete" in demo.output

        events = runner.invoke(cli, ["events", str(tmp_path), "--type", "TRADE_EXECUTED"])
        assert events.exit_code == 0, events.output
        assert events.output.count("TRADE_EXECUTED") == 3

    def test_repeated_demo_appends_runs(self, tmp_path):
        runner = CliRunner()
        for _ in range(2):
            assert runner.invoke(cli, ["demo", "--journal", str(tmp_path)]).exit_code == 0

        both = runner.invoke(cli, ["events", str(tmp_path), "--type", "TRADE_EXECUTED"])
        second = runner.invoke(cli, ["events", str(tmp_path), "--type", "TRADE_EXECUTED", "--run", "2"])

        assert both.output.count("TRADE_EXECUTED") == 6
        assert second.output.count("TRADE_EXECUTED") == 3
        assert "run=1" not in second.output

    def test_events_defaults_to_data_dir(self, tmp_path, monkeypatch):
        runner = CliRunner()
        assert runner.invoke(cli, ["demo", "--journal", str(tmp_path)]).exit_code == 0

        monkeypatch.setenv("AGORA_DATA_DIR", str(tmp_path))
        events = runner.invoke(cli, ["events", "--type", "SALE_LISTED"])

        assert events.exit_code == 0, events.output
        assert "SALE_LISTED" in events.output

    def test_events_missing_data_dir(self, tmp_path, monkeypatch):
        monkeypatch.setenv("AGORA_DATA_DIR", str(tmp_path / "absent"))

        result = CliRunner().invoke(cli, ["events"])

        assert result.exit_code != 0
        assert "No journal directory" in result.output

    def test_events_rejects_bad_address(self, tmp_path):
        result = CliRunner().invoke(cli, ["events", str(tmp_path), "--address", "nope"])
        assert result.exit_code != 0

    def test_log_file_written_to_log_dir(self, tmp_path, monkeypatch):
        monkeypatch.setenv("AGORA_LOG_DIR", str(tmp_path / "logs"))

        result = CliRunner().invoke(cli, ["--log-file", "demo"])

        assert result.exit_code == 0, result.output
        assert AgoraLogger.log_file() == tmp_path / "logs" / "agora.log"
        assert "Marketplace initialized" in (tmp_path / "logs" / "agora.log").read_text()
