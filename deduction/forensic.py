"""
Forensic Reporter CLI
=====================

Tool for forensic inspection of an exported game file.
Works on the persisted JSON shape directly, without a running table.

COMMANDS:
- verify:   Check hash chain integrity and replay determinism
- log:      Dump linear event log (Git-style)
- grid:     Render the belief grid, optionally at an earlier point
- explain:  Why a cell holds its value
- solution: Per-category solution verdict
- history:  Recent turns, optionally for one player
- report:   Audit report of the replay

USAGE:
    python -m deduction.forensic [COMMAND] GAME_FILE [ARGS]
"""
import argparse
import json
import sys
from typing import List, Optional

from .contracts.base import CellState, Category, DeductionError
from .contracts.events import SolutionStatus
from .core import InferenceConfig
from .domain.serialization import StrictForensicEncoder, load_log, game_from_dict
from .engine import DeductionTable, TableConfig

GRID_SYMBOLS = {
    CellState.HAS: "+",
    CellState.LACKS: "-",
    CellState.UNKNOWN: "?",
}


def read_game(path: str) -> dict:
    with open(path, 'r', encoding='utf-8') as f:
        return json.load(f)


def load_table(args) -> DeductionTable:
    config = TableConfig(inference=InferenceConfig(strict_contradictions=not args.tolerant))
    with open(args.game_file, 'r', encoding='utf-8') as f:
        return DeductionTable.loads(f.read(), config)


def cmd_verify(args) -> int:
    """Verify hash chain integrity and replay."""
    print(f"[*] Verifying game file: {args.game_file}")
    data = read_game(args.game_file)

    print("[*] Verifying hash chain...")
    try:
        log = load_log(data)
    except DeductionError as e:
        print(f"[FAIL] Integrity Error: {e}")
        return 1
    print(f"    Loaded {len(log)} entries.")

    print("[*] Replaying events...")
    setup, events = game_from_dict(data)
    config = TableConfig(inference=InferenceConfig(strict_contradictions=not args.tolerant))
    try:
        table = DeductionTable.from_setup(setup, events, config)
    except DeductionError as e:
        print(f"[FAIL] Replay Error: {e}")
        return 1

    ok, difference = table.verify_integrity()
    if not ok:
        print(f"[FAIL] {difference}")
        return 1

    for error in table.contradictions():
        print(f"[WARN] Contradiction: {error.message}")
    print(f"[PASS] Verified {len(log)} entries. Integrity intact.")
    print(f"[INFO] HEAD Hash: {log.state.head_hash}")
    print(f"[INFO] State Hash: {table.state.state_hash}")
    return 0


def cmd_log(args) -> int:
    """Dump linear log."""
    table = load_table(args)
    entries = table.log_entries()
    if not entries:
        print("No log.")
        return 0

    print("SEQ  | EVENT ID | TYPE               | HASH        | SUMMARY")
    print("-" * 80)
    for entry in entries:
        print(
            f"{entry.sequence.value:<4} | {entry.event_id:<8} | {entry.event.kind.value:<18} | "
            f"{entry.entry_hash[:8]}... | {table.describe_event(entry.event)}"
        )
    return 0


def render_grid(table: DeductionTable, sequence: Optional[int] = None) -> List[str]:
    """Cards as rows, players as columns."""
    state = table.state if sequence is None else table.state_at(sequence)
    cards = table.universe.cards
    players = state.players
    width = max(len(card.label) for card in cards)

    header = " " * width + " | " + " ".join(f"{p.player_id:>3}" for p in players)
    lines = [header, "-" * len(header)]
    for card in cards:
        row = " ".join(f"{GRID_SYMBOLS[state.grid.state(p.player_id, card.card_id)]:>3}" for p in players)
        lines.append(f"{card.label:<{width}} | {row}")
    lines.append("")
    lines.append("  ".join(f"{p.player_id}={p.display_name} ({p.hand_size})" for p in players))
    return lines


def cmd_grid(args) -> int:
    table = load_table(args)
    for line in render_grid(table, args.at):
        print(line)
    return 0


def cmd_explain(args) -> int:
    table = load_table(args)
    info = table.explain_cell(args.player_id, args.card_id)
    if info["reason"] is None:
        print(f"{args.player_id} / {args.card_id}: UNKNOWN (no deduction yet)")
        return 0
    origin = f" [{info['origin_event_id']}]" if info["origin_event_id"] else ""
    print(f"{args.player_id} / {args.card_id}: {info['state'].upper()} via {info['kind']}{origin}")
    print(f"    {info['reason']}")
    return 0


def cmd_solution(args) -> int:
    table = load_table(args)
    verdict = table.solution_verdict()
    status = table.solution_status()

    print("SOLUTION")
    print("========")
    for category in Category:
        card = verdict[category]
        print(f"{category.value:<8}: {card if card else '(undetermined)'}")
    if args.verbose:
        print("")
        for card_id, card_status in status.items():
            if card_status is not SolutionStatus.CONFIRMED_OUT:
                print(f"  {card_id:<16} {card_status.value}")
    return 0


def cmd_history(args) -> int:
    table = load_table(args)
    for line in table.turn_history(limit=args.limit, involved_player=args.player):
        print(line)
    return 0


def cmd_report(args) -> int:
    table = load_table(args)
    print(json.dumps(table.get_audit_report(), cls=StrictForensicEncoder, indent=2))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Forensic Reporter")
    parser.add_argument("--tolerant", action="store_true",
                        help="Record contradictions instead of failing on them")

    subparsers = parser.add_subparsers(dest="command")

    def game_command(name: str, help_text: str) -> argparse.ArgumentParser:
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument("game_file", help="Exported game JSON")
        return sub

    game_command("verify", "Verify integrity")
    game_command("log", "Dump log")

    grid_parser = game_command("grid", "Render belief grid")
    grid_parser.add_argument("--at", type=int, default=None, help="Sequence to render at")

    explain_parser = game_command("explain", "Explain a cell")
    explain_parser.add_argument("player_id")
    explain_parser.add_argument("card_id")

    solution_parser = game_command("solution", "Show solution verdict")
    solution_parser.add_argument("-v", "--verbose", action="store_true")

    history_parser = game_command("history", "Show recent turns")
    history_parser.add_argument("--limit", type=int, default=None)
    history_parser.add_argument("--player", default=None)

    game_command("report", "Audit report")
    return parser


COMMANDS = {
    "verify": cmd_verify,
    "log": cmd_log,
    "grid": cmd_grid,
    "explain": cmd_explain,
    "solution": cmd_solution,
    "history": cmd_history,
    "report": cmd_report,
}


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    handler = COMMANDS.get(args.command)
    if handler is None:
        parser.print_help()
        return 2
    try:
        return handler(args)
    except DeductionError as e:
        print(f"[FAIL] {e.error.code.name}: {e}")
        return 1
    except (OSError, json.JSONDecodeError) as e:
        print(f"[FAIL] Cannot read {args.game_file}: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
