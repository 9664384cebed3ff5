"""Card and Deck classes - immutable card representations."""

import logging
from dataclasses import dataclass
from enum import Enum, auto
from random import Random
from typing import Iterable, Iterator

logger = logging.getLogger(__name__)

DEFAULT_LOW_WATER_MARK = 10


class Color(Enum):
    """Card colors."""

    RED = "red"
    BLACK = "black"

    def __str__(self) -> str:
        return self.value


class Suit(Enum):
    """Card suits."""

    CLUBS = auto()
    DIAMONDS = auto()
    HEARTS = auto()
    SPADES = auto()

    def __str__(self) -> str:
        symbols = {
            Suit.CLUBS: "♣",
            Suit.DIAMONDS: "♦",
            Suit.HEARTS: "♥",
            Suit.SPADES: "♠",
        }
        return symbols[self]

    @property
    def color(self) -> Color:
        """Return the suit color (hearts and diamonds are red)."""
        if self in (Suit.HEARTS, Suit.DIAMONDS):
            return Color.RED
        return Color.BLACK


class Rank(Enum):
    """Card ranks with blackjack values."""

    TWO = 2
    THREE = 3
    FOUR = 4
    FIVE = 5
    SIX = 6
    SEVEN = 7
    EIGHT = 8
    NINE = 9
    TEN = 10
    JACK = 11
    QUEEN = 12
    KING = 13
    ACE = 14

    def __str__(self) -> str:
        if self.value <= 10:
            return str(self.value)
        return {
            Rank.JACK: "J",
            Rank.QUEEN: "Q",
            Rank.KING: "K",
            Rank.ACE: "A",
        }[self]

    @property
    def blackjack_value(self) -> int:
        """Return the blackjack point value (Ace = 11, face cards = 10)."""
        if self.value <= 10:
            return self.value
        if self == Rank.ACE:
            return 11
        return 10

    @property
    def is_ace(self) -> bool:
        return self == Rank.ACE


_RANK_CODES = {str(rank): rank for rank in Rank} | {"T": Rank.TEN}

_SUIT_CODES = {
    "C": Suit.CLUBS,
    "♣": Suit.CLUBS,
    "D": Suit.DIAMONDS,
    "♦": Suit.DIAMONDS,
    "H": Suit.HEARTS,
    "♥": Suit.HEARTS,
    "S": Suit.SPADES,
    "♠": Suit.SPADES,
}


@dataclass(frozen=True, slots=True)
class Card:
    """Immutable playing card."""

    rank: Rank
    suit: Suit

    def __str__(self) -> str:
        return f"{self.rank}{self.suit}"

    def __repr__(self) -> str:
        return f"Card({self.rank.name}, {self.suit.name})"

    @property
    def value(self) -> int:
        """Return the blackjack point value."""
        return self.rank.blackjack_value

    @property
    def is_ace(self) -> bool:
        return self.rank.is_ace

    @property
    def color(self) -> Color:
        return self.suit.color

    @classmethod
    def from_string(cls, s: str) -> "Card":
        """Create a card from a string like '2♣', 'AS', 'Kh'."""
        s = s.strip().upper()
        if len(s) < 2:
            raise ValueError(f"Invalid card string: {s}")

        rank_str = s[:-1]
        suit_str = s[-1]

        if rank_str not in _RANK_CODES:
            raise ValueError(f"Invalid rank: {rank_str}")
        if suit_str not in _SUIT_CODES:
            raise ValueError(f"Invalid suit: {suit_str}")

        return cls(_RANK_CODES[rank_str], _SUIT_CODES[suit_str])


def full_set() -> list[Card]:
    """Return one of each of the 52 suit and rank combinations, in order."""
    return [Card(rank, suit) for suit in Suit for rank in Rank]


class EmptyDeck(IndexError):
    """Raised when a draw cannot produce a card."""


class Deck:
    """
    A single 52-card deck drawn from the tail.

    The deck refills itself with a freshly shuffled set whenever it is empty
    or fewer than ``low_water_mark`` cards remain at draw time. Cards currently held in
    hands are not reclaimed by that refill.
    """

    def __init__(
        self,
        low_water_mark: int = DEFAULT_LOW_WATER_MARK,
        rng: Random | None = None,
    ) -> None:
        """
        Initialize an empty deck.

        Args:
            low_water_mark: Remaining-card threshold that triggers a reshuffle
            rng: Random number generator for shuffling
        """
        if low_water_mark < 0 or low_water_mark > 52:
            raise ValueError("Low-water mark must be between 0 and 52")

        self._low_water_mark = low_water_mark
        self._rng = rng or Random()
        self._cards: list[Card] = []

    def shuffle(self) -> None:
        """Replace the contents with a freshly shuffled 52-card set."""
        cards = full_set()
        # Random.shuffle is a Fisher-Yates pass from the last index down
        self._rng.shuffle(cards)
        self._cards = cards
        logger.debug("Deck shuffled")

    def draw(self) -> Card:
        """Draw the top card, reshuffling first if the deck is running low."""
        if self.needs_shuffle:
            logger.debug(
                "Deck low (%d left, mark %d), reshuffling",
                len(self._cards),
                self._low_water_mark,
            )
            self.shuffle()
        if not self._cards:
            raise EmptyDeck("Cannot draw from empty deck")
        return self._cards.pop()

    def return_cards(self, cards: Iterable[Card]) -> None:
        """Push cards back onto the top; the last one returned is drawn next."""
        self._cards.extend(cards)

    @property
    def needs_shuffle(self) -> bool:
        """Check if the next draw would trigger a reshuffle."""
        return not self._cards or len(self._cards) < self._low_water_mark

    @property
    def cards_remaining(self) -> int:
        return len(self._cards)

    @property
    def low_water_mark(self) -> int:
        return self._low_water_mark

    def __len__(self) -> int:
        return len(self._cards)

    def __iter__(self) -> Iterator[Card]:
        return iter(self._cards)
