"""
Integration Test Fixtures

Versioned, explicit game fixtures for deterministic testing.
All fixtures are explicit - no random generation.
"""

from deduction import DeductionTable, TableConfig
from deduction.contracts.events import (
    AccusationFailure, GameSetup, ManualClaim, Suggestion
)
from deduction.core import InferenceConfig


# =============================================================================
# SETUPS
# =============================================================================

PLAYERS_THREE = ("Alice", "Bob", "Carol")
PLAYERS_FOUR = ("Alice", "Bob", "Carol", "Dave")

SETUP_THREE = GameSetup(
    player_names=PLAYERS_THREE,
    observer_name="Alice",
    observer_cards=frozenset({"miss_scarlett", "rope", "kitchen"})
)

SETUP_FOUR = GameSetup(player_names=PLAYERS_FOUR, observer_name="Carol")


# =============================================================================
# EVENT STREAMS
# =============================================================================

# A short, consistent game at a three-player table.
GAME_THREE = (
    Suggestion("p0", ("col_mustard", "dagger", "hall"), responder_id="p2"),
    Suggestion("p1", ("prof_plum", "wrench", "lounge"), responder_id="p0"),
    Suggestion("p2", ("mrs_peacock", "candlestick", "study"), responder_id="p1"),
    ManualClaim("p1", frozenset({"col_mustard", "dagger"}), asserts_possession=False),
    AccusationFailure("p2", ("rev_green", "lead_pipe", "library")),
    Suggestion("p0", ("col_mustard", "dagger", "ballroom"), responder_id="p1", revealed_card="ballroom"),
)


# =============================================================================
# FACTORIES
# =============================================================================

def tolerant_config() -> TableConfig:
    return TableConfig(inference=InferenceConfig(strict_contradictions=False))


def create_table_three(config: TableConfig = None) -> DeductionTable:
    return DeductionTable.from_setup(SETUP_THREE, config=config)


def create_table_with_game(config: TableConfig = None) -> DeductionTable:
    return DeductionTable.from_setup(SETUP_THREE, GAME_THREE, config)


def create_table_four(config: TableConfig = None) -> DeductionTable:
    return DeductionTable.from_setup(SETUP_FOUR, config=config)
