"""
Query Interface Tests
=====================

Read-only queries over the table: solution verdicts, provenance,
board views, turn history and what-if suggestions.

INVARIANTS TESTED:
1. Queries never mutate state or the log
2. Unknown ids fail fast
3. What-ifs run on a scratch derivation
"""

import pytest

from deduction import DeductionTable, TableConfig
from deduction.contracts.base import (
    Category, CellState, ErrorCode, InvalidQueryError, UnknownIdentifierError
)
from deduction.contracts.events import SolutionStatus, Suggestion
from deduction.query import QueryEngineConfig


def make_table(**kwargs):
    return DeductionTable(("Alice", "Bob", "Carol"), "Alice", **kwargs)


def played_table():
    table = make_table(observer_cards=("miss_scarlett", "rope", "kitchen"))
    table.submit_suggestion("p0", ("col_mustard", "dagger", "hall"), responder_id="p2")
    table.submit_accusation_failure("p1", ("prof_plum", "wrench", "lounge"))
    table.submit_manual_claim("p2", ("study", "library"))
    table.submit_suggestion("p2")
    table.submit_suggestion("p1", ("mrs_peacock", "lead_pipe", "ballroom"),
                            responder_id="p0", revealed_card="lead_pipe")
    return table


class TestSolutionVerdict:

    def test_nothing_known(self):
        verdict = make_table().solution_verdict()
        assert verdict == {Category.SUSPECT: None, Category.WEAPON: None, Category.ROOM: None}

    def test_verdict_by_elimination(self):
        table = make_table()
        for card in ("rope", "dagger", "wrench", "revolver", "candlestick"):
            table.set_cell("p1", card, CellState.HAS)

        assert table.solution_status()["lead_pipe"] is SolutionStatus.UNDETERMINED
        assert table.solution_verdict()[Category.WEAPON] == "lead_pipe"
        assert table.solution_verdict()[Category.SUSPECT] is None

    def test_confirmed_card_wins(self):
        table = make_table()
        for player_id in ("p0", "p1", "p2"):
            table.set_cell(player_id, "conservatory", CellState.LACKS)

        assert table.solution_status()["conservatory"] is SolutionStatus.CONFIRMED_IN
        assert table.solution_verdict()[Category.ROOM] == "conservatory"

    def test_held_card_is_out(self):
        table = make_table(observer_cards=("rope",))
        assert table.solution_status()["rope"] is SolutionStatus.CONFIRMED_OUT


class TestProvenance:

    def test_unknown_cell_has_no_explanation(self):
        table = make_table()
        assert table.explain("p1", "hall") is None
        assert table.explain_cell("p1", "hall") == {
            "player_id": "p1",
            "card_id": "hall",
            "state": "unknown",
            "reason": None,
            "kind": None,
            "origin_event_id": None,
        }

    def test_explain_cell_for_settled_cell(self):
        table = played_table()
        info = table.explain_cell("p1", "col_mustard")

        assert info["state"] == "lacks"
        assert info["kind"] == "suggestion_pass"
        assert info["origin_event_id"] == "turn_1"

    def test_explain_unknown_ids(self):
        table = make_table()
        with pytest.raises(UnknownIdentifierError):
            table.explain("p5", "hall")
        with pytest.raises(UnknownIdentifierError):
            table.explain("p1", "attic")


class TestBoardState:

    def test_full_board_uses_display_names_and_labels(self):
        board = make_table(observer_cards=("rope",)).board_state()

        assert set(board) == {"Alice", "Bob", "Carol"}
        assert board["Alice"]["Rope"] == "has"
        assert board["Bob"]["Rope"] == "lacks"
        assert board["Bob"]["Hall"] == "unknown"
        assert len(board["Carol"]) == 21

    def test_filtered_board(self):
        board = make_table().board_state(players=["p1"], cards=["hall", "rope"])
        assert board == {"Bob": {"Rope": "unknown", "Hall": "unknown"}}

    def test_filters_reject_unknown_ids(self):
        table = make_table()
        with pytest.raises(UnknownIdentifierError):
            table.board_state(players=["p3"])
        with pytest.raises(UnknownIdentifierError):
            table.board_state(cards=["attic"])


class TestTurnHistory:

    def test_newest_first_with_default_limit(self):
        lines = played_table().turn_history()

        assert len(lines) == 5
        assert lines[0] == "Turn 5: Bob asked [mrs_peacock, lead_pipe, ballroom]. Responder: Alice. (Showed lead_pipe)"
        assert lines[1] == "Turn 4: Carol made no suggestion."
        assert lines[2] == "Turn 3: Claim: Carol holds one of [library, study]."
        assert lines[3] == "Turn 2: Bob accused [prof_plum, wrench, lounge] and was wrong."
        assert lines[4] == "Turn 1: Alice asked [col_mustard, dagger, hall]. Responder: Carol."

    def test_limit(self):
        lines = played_table().turn_history(limit=2)
        assert [line.split(":")[0] for line in lines] == ["Turn 5", "Turn 4"]

    def test_limit_out_of_range(self):
        table = played_table()
        with pytest.raises(InvalidQueryError):
            table.turn_history(limit=0)
        with pytest.raises(InvalidQueryError) as exc_info:
            table.turn_history(limit=21)
        assert exc_info.value.error.code is ErrorCode.INVALID_QUERY

    def test_configured_limits(self):
        config = TableConfig(query=QueryEngineConfig(default_history_limit=1, max_history_limit=3))
        table = make_table(config=config)
        table.submit_suggestion("p0")
        table.submit_suggestion("p1")

        assert table.turn_history() == ["Turn 2: Bob made no suggestion."]
        with pytest.raises(InvalidQueryError):
            table.turn_history(limit=4)

    def test_filter_by_player_id_or_name(self):
        table = played_table()
        by_id = table.turn_history(involved_player="p1")
        by_name = table.turn_history(involved_player="bo")

        assert by_id == by_name
        assert [line.split(":")[0] for line in by_id] == ["Turn 5", "Turn 2"]

    def test_responder_counts_as_involved(self):
        lines = played_table().turn_history(involved_player="Carol")
        assert [line.split(":")[0] for line in lines] == ["Turn 4", "Turn 3", "Turn 1"]

    def test_unmatched_or_ambiguous_name(self):
        table = played_table()
        with pytest.raises(UnknownIdentifierError):
            table.turn_history(involved_player="Zed")
        # Names match from the start, not anywhere inside
        with pytest.raises(UnknownIdentifierError):
            table.turn_history(involved_player="rol")

    def test_whole_name_beats_longer_name_sharing_it(self):
        table = DeductionTable(("Al", "Alice", "Bob"), "Bob")
        table.submit_suggestion("p0")
        table.submit_suggestion("p1")

        assert table.turn_history(involved_player="Al") == ["Turn 1: Al made no suggestion."]
        assert table.turn_history(involved_player="ALI") == ["Turn 2: Alice made no suggestion."]
        # "a" starts both names
        with pytest.raises(UnknownIdentifierError):
            table.turn_history(involved_player="a")

    def test_describe_event_for_unseated_player(self):
        table = make_table()
        with pytest.raises(UnknownIdentifierError) as exc_info:
            table.describe_event(Suggestion("p7"))
        assert exc_info.value.error.code is ErrorCode.UNKNOWN_PLAYER

    def test_empty_log(self):
        assert make_table().turn_history() == []


class TestSimulateSuggestion:

    def test_simulation_does_not_touch_table(self):
        table = played_table()
        state, events = table.state, table.event_log()

        report = table.simulate_suggestion("p0", ("col_mustard", "dagger", "dining_room"))

        assert report.success
        assert table.state == state
        assert table.event_log() == events

    def test_heuristic_counts_undetermined_cards(self):
        table = make_table()
        report = table.simulate_suggestion("p0", ("col_mustard", "dagger", "hall"), responder_id="p1")
        assert report.heuristic_value == 30

        table.set_cell("p2", "dagger", CellState.HAS)
        report = table.simulate_suggestion("p0", ("col_mustard", "dagger", "hall"), responder_id="p1")
        assert report.heuristic_value == 20

    def test_settled_cells_and_confirmations(self):
        table = make_table()
        table.set_cell("p0", "hall", CellState.LACKS)

        # Nobody else can answer: Bob and Carol lack all three.
        report = table.simulate_suggestion("p0", ("col_mustard", "dagger", "hall"))

        assert report.settled_cells == 6
        assert dict(report.newly_confirmed) == {"hall": SolutionStatus.CONFIRMED_IN}
        assert report.to_dict()["newly_confirmed"] == {"hall": "confirmed_in"}

    def test_contradictory_hypothetical_reports_failure(self):
        table = make_table(observer_cards=("rope",))
        report = table.simulate_suggestion(
            "p0", ("col_mustard", "rope", "hall"), responder_id="p1", revealed_card="rope"
        )

        assert not report.success
        assert report.error.code is ErrorCode.CONTRADICTION
        assert report.settled_cells == 0

    def test_bad_ids_raise(self):
        table = make_table()
        with pytest.raises(UnknownIdentifierError):
            table.simulate_suggestion("p8", ("col_mustard", "dagger", "hall"))

    def test_queries_are_audited(self):
        table = make_table()
        table.solution_verdict()
        table.simulate_suggestion("p0", ("col_mustard", "dagger", "hall"))

        actions = [e.action for e in table.get_audit_log(layers=["query"])]
        assert actions == ["solution_verdict", "simulate_suggestion"]
