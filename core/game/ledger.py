"""Per-player ledger entries."""

from dataclasses import dataclass, field
from enum import Enum

from core.cards import Card
from core.hand import score


class RoundResult(Enum):
    """Outcome of a player's round."""

    NONE = "none"
    WIN = "win"
    LOSE = "lose"
    PUSH = "push"
    BLACKJACK = "blackjack"
    BUST = "bust"
    FORFEIT = "forfeit"

    def __str__(self) -> str:
        return self.value


@dataclass
class PlayerLedgerEntry:
    """A seated player's money and round state."""

    player_id: str
    display_name: str
    balance: int = 0
    hand: list[Card] = field(default_factory=list)
    current_bet: int = 0
    standing: bool = False
    busted: bool = False
    result: RoundResult = RoundResult.NONE

    @property
    def score(self) -> int:
        return score(self.hand)

    @property
    def has_bet(self) -> bool:
        return self.current_bet > 0

    @property
    def is_done(self) -> bool:
        """Check if the player can take no further action this round."""
        return self.standing or self.busted

    def escrow(self, amount: int) -> None:
        """Move ``amount`` from the balance into the current bet."""
        if amount > self.balance:
            raise ValueError(f"Cannot escrow {amount} from balance {self.balance}")
        self.balance -= amount
        self.current_bet += amount

    def credit(self, amount: int) -> None:
        self.balance += amount

    def clear_round(self) -> None:
        """Reset everything that only lives for one round."""
        self.hand.clear()
        self.current_bet = 0
        self.standing = False
        self.busted = False
        self.result = RoundResult.NONE
