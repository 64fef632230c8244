"""Tests for the command-line interface."""

import json
import logging

from typer.testing import CliRunner

from vbus_sync.cli import app

runner = CliRunner()


class TestInfo:
    def test_default_specification(self):
        result = runner.invoke(app, ["info"])

        assert result.exit_code == 0
        assert "DeltaSol BS Plus" in result.output
        assert "Temperatur Sensor 1 [°C]" in result.output

    def test_custom_specification(self, tmp_path, two_device_spec_data):
        spec = tmp_path / "spec.json"
        spec.write_text(json.dumps(two_device_spec_data), encoding="utf-8")

        result = runner.invoke(app, ["--spec", str(spec), "info"])

        assert result.exit_code == 0
        assert "Leistung [W]" in result.output


class TestConvert:
    def test_converts_cached_captures(self, tmp_path, recording, june_first):
        host_dir = tmp_path / "logger"
        host_dir.mkdir()
        (host_dir / "20210601.vbus").write_bytes(recording.hourly_capture(june_first))

        result = runner.invoke(
            app,
            ["--root", str(tmp_path), "--strategy", "rolling-window", "convert", "logger"],
        )

        assert result.exit_code == 0
        assert "1 CSV files written" in result.output
        assert (host_dir / "20210601.csv").exists()

    def test_missing_host_fails(self, tmp_path, caplog):
        with caplog.at_level(logging.ERROR, logger="vbus_sync.cli"):
            result = runner.invoke(app, ["--root", str(tmp_path), "convert", "nowhere"])

        assert result.exit_code == 1
        assert "Converting nowhere failed" in caplog.text

    def test_invalid_timezone_fails(self, tmp_path):
        result = runner.invoke(app, ["--timezone", "Nowhere/Special", "convert", "logger"])

        assert result.exit_code == 1


class TestLogLevel:
    def test_lowercase_level_accepted(self):
        result = runner.invoke(app, ["--log-level", "debug", "info"])

        assert result.exit_code == 0

    def test_unknown_level_is_a_usage_error(self):
        result = runner.invoke(app, ["--log-level", "FOO", "info"])

        assert result.exit_code == 2
        assert not isinstance(result.exception, ValueError)
