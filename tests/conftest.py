"""Pytest fixtures for blackjack table tests."""

import pytest
from random import Random

from core.admin import AdminGate
from core.cards import Card, Deck
from core.game import BlackjackTable


ADMIN_PASSWORD = "secret"


@pytest.fixture
def rng():
    """Seeded random number generator for reproducible tests."""
    return Random(42)


@pytest.fixture
def deck(rng):
    """A shuffled deck."""
    d = Deck(rng=rng)
    d.shuffle()
    return d


@pytest.fixture
def admin_gate():
    """An admin gate with a known password."""
    return AdminGate(ADMIN_PASSWORD)


@pytest.fixture
def table(rng, admin_gate):
    """A fresh table with a 100 starting balance."""
    return BlackjackTable(starting_balance=100, admin_gate=admin_gate, rng=rng)


@pytest.fixture
def stack():
    """
    Push known cards onto a table's deck.

    Cards are drawn in the order given: stack(table, "AH", "KS") makes the
    next draw the ace of hearts.
    """

    def _stack(table, *codes):
        table.deck.return_cards(Card.from_string(code) for code in reversed(codes))

    return _stack

