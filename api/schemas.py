"""Pydantic schemas for table commands and snapshots."""

from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, StrictInt, TypeAdapter
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model serialized with camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# Inbound commands
class JoinGame(CamelModel):
    type: Literal["joinGame"]
    name: str = Field(..., min_length=1, max_length=24)


class PlaceBet(CamelModel):
    type: Literal["placeBet"]
    amount: StrictInt


class Hit(CamelModel):
    type: Literal["hit"]


class Stand(CamelModel):
    type: Literal["stand"]


class Double(CamelModel):
    type: Literal["double"]


class NextRound(CamelModel):
    type: Literal["nextRound"]


class Leave(CamelModel):
    type: Literal["leave"]


class GetState(CamelModel):
    type: Literal["getState"]


class SetAdmin(CamelModel):
    type: Literal["setAdmin"]
    password: str


class AdminReset(CamelModel):
    type: Literal["adminReset"]


class AdminShuffle(CamelModel):
    type: Literal["adminShuffle"]


class AdminRemovePlayer(CamelModel):
    type: Literal["adminRemovePlayer"]
    player_id: str


class AdminShowDeck(CamelModel):
    type: Literal["adminShowDeck"]


Command = Annotated[
    Union[
        JoinGame,
        PlaceBet,
        Hit,
        Stand,
        Double,
        NextRound,
        Leave,
        GetState,
        SetAdmin,
        AdminReset,
        AdminShuffle,
        AdminRemovePlayer,
        AdminShowDeck,
    ],
    Field(discriminator="type"),
]

command_adapter: TypeAdapter[Command] = TypeAdapter(Command)


# Outbound snapshots
class CardResponse(CamelModel):
    """Card representation."""

    rank: str
    suit: str
    color: str | None = None
    hidden: bool = False


class PlayerResponse(CamelModel):
    """A seated player as every viewer sees them."""

    name: str
    hand: list[CardResponse]
    score: int
    bet: int
    balance: int
    standing: bool
    busted: bool
    result: Literal["none", "win", "lose", "push", "blackjack", "bust", "forfeit"]


class TableStateResponse(CamelModel):
    """Full table snapshot."""

    phase: Literal["waiting", "betting", "dealing", "playerTurn", "dealerTurn", "settled"]
    dealer_cards: list[CardResponse]
    dealer_score: int
    players: dict[str, PlayerResponse]
    current_player_id: str | None
    cards_remaining: int


class SessionResponse(CamelModel):
    """A freshly issued connection token."""

    token: str
    player_id: str


class DeckCardResponse(CardResponse):
    index: int
