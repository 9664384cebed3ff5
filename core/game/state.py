"""Round phase enumeration."""

from enum import Enum


class Phase(Enum):
    """
    Round state machine phases.

    Flow: WAITING → BETTING → DEALING → PLAYER_TURN → DEALER_TURN → SETTLED → BETTING

    DEALING goes straight to SETTLED when anyone is dealt a natural.
    """

    # No players at the table
    WAITING = "waiting"

    # Collecting bets for the next round
    BETTING = "betting"

    # Cards being dealt
    DEALING = "dealing"

    # Players act in turn order
    PLAYER_TURN = "playerTurn"

    # Dealer plays
    DEALER_TURN = "dealerTurn"

    # Payouts done, waiting for the next round
    SETTLED = "settled"

    def __str__(self) -> str:
        return self.value


# Valid phase transitions
VALID_TRANSITIONS: dict[Phase, list[Phase]] = {
    Phase.WAITING: [Phase.BETTING],
    Phase.BETTING: [Phase.DEALING, Phase.BETTING, Phase.WAITING],
    Phase.DEALING: [Phase.PLAYER_TURN, Phase.SETTLED, Phase.BETTING, Phase.WAITING],
    Phase.PLAYER_TURN: [Phase.DEALER_TURN, Phase.BETTING, Phase.WAITING],
    Phase.DEALER_TURN: [Phase.SETTLED, Phase.BETTING, Phase.WAITING],
    Phase.SETTLED: [Phase.BETTING, Phase.WAITING],
}


def is_valid_transition(from_phase: Phase, to_phase: Phase) -> bool:
    """
    Check if a phase transition is valid.

    Args:
        from_phase: Current phase
        to_phase: Desired phase

    Returns:
        True if the transition is allowed
    """
    return to_phase in VALID_TRANSITIONS.get(from_phase, [])
