"""
Forensic Reporter CLI Tests

Runs the CLI entry point against exported game files.
"""

import json

import pytest

from deduction import DeductionTable, TableConfig
from deduction.contracts.base import CellState
from deduction.core import InferenceConfig
from deduction.forensic import main, render_grid


@pytest.fixture
def game_file(tmp_path):
    table = DeductionTable(("Alice", "Bob", "Carol"), "Alice", ("rope", "hall"))
    table.submit_suggestion("p0", ("col_mustard", "dagger", "kitchen"), responder_id="p2")
    table.submit_suggestion("p1", ("prof_plum", "wrench", "lounge"))
    table.submit_manual_claim("p2", ("col_mustard", "dagger"), asserts_possession=False)
    path = tmp_path / "game.json"
    path.write_text(table.dumps(), encoding="utf-8")
    return path


class TestVerify:

    def test_verify_passes(self, game_file, capsys):
        assert main(["verify", str(game_file)]) == 0
        out = capsys.readouterr().out
        assert "[PASS] Verified 3 entries. Integrity intact." in out
        assert "[INFO] HEAD Hash:" in out

    def test_verify_detects_tampering(self, game_file, capsys):
        data = json.loads(game_file.read_text(encoding="utf-8"))
        data["events"][0]["triple"][2] = "hall"
        game_file.write_text(json.dumps(data), encoding="utf-8")

        assert main(["verify", str(game_file)]) == 1
        assert "[FAIL] Integrity Error:" in capsys.readouterr().out

    def test_verify_reports_replay_contradiction(self, tmp_path, capsys):
        config = TableConfig(inference=InferenceConfig(strict_contradictions=False))
        table = DeductionTable(("Alice", "Bob", "Carol"), "Alice", ("rope",), config)
        table.set_cell("p1", "rope", CellState.HAS)
        path = tmp_path / "bad.json"
        path.write_text(table.dumps(), encoding="utf-8")

        assert main(["verify", str(path)]) == 1
        assert "[FAIL] Replay Error:" in capsys.readouterr().out

        assert main(["--tolerant", "verify", str(path)]) == 0
        assert "[WARN] Contradiction:" in capsys.readouterr().out

    def test_missing_file(self, tmp_path, capsys):
        assert main(["verify", str(tmp_path / "absent.json")]) == 1
        assert "[FAIL] Cannot read" in capsys.readouterr().out


class TestInspection:

    def test_log(self, game_file, capsys):
        assert main(["log", str(game_file)]) == 0
        out = capsys.readouterr().out
        assert "turn_1" in out
        assert "Claim: Carol holds none of [col_mustard, dagger]." in out

    def test_grid_now_and_earlier(self, game_file, capsys):
        assert main(["grid", str(game_file)]) == 0
        now = capsys.readouterr().out
        assert main(["grid", str(game_file), "--at", "0"]) == 0
        initial = capsys.readouterr().out

        assert now != initial
        assert "p0=Alice (6)" in now

    def test_grid_symbols(self):
        table = DeductionTable(("Alice", "Bob"), "Alice", ("rope",))
        lines = render_grid(table)
        rope = next(line for line in lines if line.startswith("Rope"))
        assert rope.split("|")[1].split() == ["+", "-"]

    def test_explain(self, game_file, capsys):
        assert main(["explain", str(game_file), "p2", "kitchen"]) == 0
        assert "p2 / kitchen: HAS via constraint_forced [turn_1]" in capsys.readouterr().out

    def test_explain_unknown_cell(self, game_file, capsys):
        assert main(["explain", str(game_file), "p1", "study"]) == 0
        assert "UNKNOWN" in capsys.readouterr().out

    def test_explain_unknown_id(self, game_file, capsys):
        assert main(["explain", str(game_file), "p7", "study"]) == 1
        assert "[FAIL] UNKNOWN_PLAYER" in capsys.readouterr().out

    def test_solution(self, game_file, capsys):
        assert main(["solution", str(game_file), "-v"]) == 0
        out = capsys.readouterr().out
        assert "suspect :" in out
        assert "undetermined" in out

    def test_history(self, game_file, capsys):
        assert main(["history", str(game_file), "--limit", "1"]) == 0
        assert capsys.readouterr().out.strip() == "Turn 3: Claim: Carol holds none of [col_mustard, dagger]."

    def test_history_by_player(self, game_file, capsys):
        assert main(["history", str(game_file), "--player", "Bob"]) == 0
        assert capsys.readouterr().out.strip().startswith("Turn 2: Bob asked")

    def test_report(self, game_file, capsys):
        assert main(["report", str(game_file)]) == 0
        report = json.loads(capsys.readouterr().out)
        assert report["metrics"]["replays_total"] == 1
        assert report["by_layer"]["temporal"] == 1

    def test_no_command(self, capsys):
        assert main([]) == 2
