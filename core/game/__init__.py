"""Table engine and state management."""

from core.game.events import GameEvent, EventType
from core.game.ledger import PlayerLedgerEntry, RoundResult
from core.game.state import Phase
from core.game.engine import BlackjackTable

__all__ = [
    "GameEvent",
    "EventType",
    "PlayerLedgerEntry",
    "RoundResult",
    "Phase",
    "BlackjackTable",
]
