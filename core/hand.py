"""Hand scoring for blackjack."""

from typing import Sequence

from core.cards import Card

BLACKJACK = 21


def score(cards: Sequence[Card]) -> int:
    """
    Calculate the best value of a hand.

    Aces count 11 until the total goes over 21, then drop to 1 one at a
    time. Returns the highest value that doesn't bust, or the lowest bust
    value.
    """
    total = 0
    aces = 0

    for card in cards:
        if card.is_ace:
            aces += 1
        total += card.value

    while total > BLACKJACK and aces > 0:
        total -= 10
        aces -= 1

    return total


def is_soft(cards: Sequence[Card]) -> bool:
    """Check if the hand still counts an ace as 11."""
    if not any(card.is_ace for card in cards):
        return False
    hard_total = sum(1 if card.is_ace else card.value for card in cards)
    return hard_total + 10 <= BLACKJACK


def is_natural_blackjack(cards: Sequence[Card]) -> bool:
    """Check if the hand is a natural blackjack (21 with 2 cards)."""
    return len(cards) == 2 and score(cards) == BLACKJACK


def is_bust(cards: Sequence[Card]) -> bool:
    return score(cards) > BLACKJACK


def describe(cards: Sequence[Card]) -> str:
    """Render a hand for log lines, e.g. ``A♠ 6♥ (soft 17)``."""
    cards_str = " ".join(str(card) for card in cards)
    if is_natural_blackjack(cards):
        value_str = "(BLACKJACK)"
    elif is_bust(cards):
        value_str = "(BUST)"
    elif is_soft(cards):
        value_str = f"(soft {score(cards)})"
    else:
        value_str = f"({score(cards)})"
    return f"{cards_str} {value_str}"
