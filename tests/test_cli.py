"""Tests for the belief-mesh CLI."""

import json

import pytest

from belief_mesh.cli import main
from belief_mesh.cli.simulate import build_parser


@pytest.fixture
def isolated_cwd(tmp_path, monkeypatch):
    """Run in an empty directory so no config file is discovered."""
    monkeypatch.chdir(tmp_path)
    return tmp_path


class TestSimulate:
    """Tests for the simulate command."""

    def test_simulate_prints_report(self, isolated_cwd, capsys):
        code = main(["simulate", "--agents", "4", "--beliefs", "6", "--seed", "3"])

        assert code == 0
        report = json.loads(capsys.readouterr().out)
        assert report["agents"] == 4
        assert report["beliefs"] == 6
        assert report["strategy"] == "highest_confidence"
        assert report["plan"]["batch_count"] == 1
        assert report["plan"]["error"] is None
        assert report["alignment"]["agents"] == 4
        assert 0.0 <= report["verification"]["convergence_score"] <= 1.0

    def test_batches_and_strategy(self, isolated_cwd, capsys):
        code = main([
            "simulate", "--agents", "7", "--beliefs", "4",
            "--batch-size", "3", "--strategy", "newest",
        ])

        assert code == 0
        report = json.loads(capsys.readouterr().out)
        assert report["strategy"] == "newest"
        assert report["plan"]["batch_count"] == 3

    def test_same_seed_same_report(self, isolated_cwd, capsys):
        args = ["simulate", "--agents", "5", "--beliefs", "8", "--seed", "11"]

        main(args)
        first = json.loads(capsys.readouterr().out)
        main(args)
        second = json.loads(capsys.readouterr().out)

        assert first == second

    def test_config_file(self, isolated_cwd, capsys):
        path = isolated_cwd / "mesh.yaml"
        path.write_text("consistency:\n  batch_size: 2\n")

        code = main(["simulate", "--agents", "4", "--beliefs", "2", "--config", str(path)])

        assert code == 0
        assert json.loads(capsys.readouterr().out)["plan"]["batch_count"] == 2

    def test_invalid_config_file(self, isolated_cwd, capsys):
        path = isolated_cwd / "mesh.yaml"
        path.write_text("sync:\n  interval: -3\n")

        code = main(["simulate", "--config", str(path)])

        assert code == 1
        assert "Error" in capsys.readouterr().err

    @pytest.mark.parametrize(
        "args",
        [
            ["--agents", "0"],
            ["--beliefs", "-1"],
            ["--batch-size", "0"],
        ],
    )
    def test_invalid_counts(self, isolated_cwd, capsys, args):
        assert main(["simulate", *args]) == 2
        assert "Error" in capsys.readouterr().err


class TestParser:
    """Tests for argument parsing."""

    def test_no_command_prints_help(self, capsys):
        assert main([]) == 1
        assert "simulate" in capsys.readouterr().out

    def test_unknown_strategy_rejected(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["simulate", "--strategy", "loudest"])

    def test_defaults(self):
        args = build_parser().parse_args(["simulate"])

        assert args.agents == 5
        assert args.beliefs == 10
        assert args.batch_size is None
        assert args.time_scale == 0.0
        assert args.log_level == "WARNING"
