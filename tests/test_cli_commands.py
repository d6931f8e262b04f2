import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

from capslap import __version__
from capslap.cli.commands import app

runner = CliRunner()


@pytest.fixture
def config_path(tmp_path: Path) -> Path:
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"sidecar": {"appRoot": str(tmp_path / "checkout"), "writeDelayMs": 0}}), encoding="utf-8")
    return path


def test_version(config_path: Path):
    result = runner.invoke(app, ["--config", str(config_path), "version"])

    assert result.exit_code == 0
    assert __version__ in result.output


def test_doctor_reports_missing_worker(config_path: Path):
    result = runner.invoke(app, ["--config", str(config_path), "doctor", "--json"])

    assert result.exit_code == 1
    assert '"binaryExists": false' in result.output


def test_invalid_config_exits_with_code_2(tmp_path: Path):
    path = tmp_path / "config.json"
    path.write_text("{broken", encoding="utf-8")

    result = runner.invoke(app, ["--config", str(path), "version"])

    assert result.exit_code == 2
    assert "CONFIG_ERROR" in result.output


@pytest.mark.spawns_worker
def test_doctor_with_binary(config_path: Path, worker_binary: Path):
    result = runner.invoke(app, ["--config", str(config_path), "--binary", str(worker_binary), "doctor"])

    assert result.exit_code == 0
    assert "Worker Requirements" in result.output


@pytest.mark.spawns_worker
def test_ping(config_path: Path, worker_binary: Path):
    result = runner.invoke(app, ["--config", str(config_path), "--binary", str(worker_binary), "ping"])

    assert result.exit_code == 0
    assert "responding" in result.output


@pytest.mark.spawns_worker
def test_call_prints_result(config_path: Path, worker_binary: Path):
    result = runner.invoke(
        app,
        ["--config", str(config_path), "--binary", str(worker_binary), "call", "echo", '{"hello": "world"}'],
    )

    assert result.exit_code == 0
    assert '"hello": "world"' in result.output


@pytest.mark.spawns_worker
def test_call_shows_friendly_error(config_path: Path, worker_binary: Path):
    result = runner.invoke(
        app,
        [
            "--config",
            str(config_path),
            "--binary",
            str(worker_binary),
            "call",
            "fail",
            '{"message": "insufficient_quota"}',
            "--timeout",
            "5",
        ],
    )

    assert result.exit_code == 1
    assert "API Quota Exhausted" in result.output
    assert "QUOTA_EXCEEDED" in result.output


def test_call_rejects_bad_json(config_path: Path):
    result = runner.invoke(app, ["--config", str(config_path), "call", "echo", "{nope"])

    assert result.exit_code == 2
    assert "Invalid JSON params" in result.output
