"""Core blackjack table engine - 100% transport-agnostic."""

from core.cards import Card, Color, Deck, EmptyDeck, Rank, Suit
from core.hand import is_natural_blackjack, is_soft, score

__all__ = [
    "Card",
    "Color",
    "Deck",
    "EmptyDeck",
    "Rank",
    "Suit",
    "score",
    "is_soft",
    "is_natural_blackjack",
]
