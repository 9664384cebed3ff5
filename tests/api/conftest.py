"""Fixtures for API tests."""

import pytest
from random import Random

from api.websocket import create_table, dispatcher


@pytest.fixture(autouse=True)
def fresh_table():
    """Give every API test its own empty table."""
    dispatcher.table = create_table(rng=Random(42))
    yield dispatcher.table
