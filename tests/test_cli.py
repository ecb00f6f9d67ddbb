from __future__ import annotations

import json
from pathlib import Path

from typer.testing import CliRunner

from neural_stand.adapters.left.cli import app, parse_structure

runner = CliRunner()


def test_parse_structure() -> None:
    assert parse_structure("200;64;4") == (200, 64, 4)
    assert parse_structure("10,5,2;") == (10, 5, 2)


def test_info_describes_the_network() -> None:
    result = runner.invoke(app, ["info", "--structure", "200;64;4"])

    assert result.exit_code == 0, result.output
    assert "Structure: 200 -> 64 -> 4" in result.output
    assert "Total weights: 13,056" in result.output


def test_info_rejects_a_two_layer_structure() -> None:
    result = runner.invoke(app, ["info", "--structure", "200;4"])
    assert result.exit_code != 0


def test_train_runs_in_the_background(tmp_path: Path) -> None:
    log_path = tmp_path / "train.jsonl"

    result = runner.invoke(
        app,
        [
            "train",
            "--classes", "2",
            "--train-size", "16",
            "--test-size", "4",
            "--epochs", "3",
            "--hidden", "8",
            "--log-every", "1",
            "--log-path", str(log_path),
        ],
    )

    assert result.exit_code == 0, result.output
    assert "Training complete" in result.output
    assert "Test accuracy" in result.output
    assert "triangle: " in result.output
    assert "rectangle: " in result.output

    events = [json.loads(line)["metrics"].get("event") for line in log_path.read_text(encoding="utf-8").splitlines()]
    assert events[0] == "run_start"
    assert "run_end" in events


def test_train_rejects_unknown_activation() -> None:
    result = runner.invoke(app, ["train", "--activation", "tanh", "--epochs", "1"])
    assert result.exit_code != 0
